"""
Error taxonomy for the Coupang Partners integration layer
"""

from typing import Optional


class CoupangAPIError(Exception):
    """Base class for upstream integration failures"""


class MissingCredentials(CoupangAPIError):
    """Access key or secret key is not configured"""

    def __init__(self, message: str = "Coupang API keys are not configured"):
        super().__init__(message)


class RateLimitExceeded(CoupangAPIError):
    """Local call budget for a category is exhausted"""

    def __init__(self, category: str, retry_after_seconds: int):
        self.category = category
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit exceeded for '{category}' calls. "
            f"Retry after {retry_after_seconds}s"
        )


class UpstreamHttpError(CoupangAPIError):
    """Upstream answered with a non-2xx status"""

    def __init__(self, status_code: int, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Coupang API call failed: HTTP {status_code}")

    @property
    def is_quota_signal(self) -> bool:
        """429/403 from upstream means we are being throttled or blocked"""
        return self.status_code in (403, 429)


class UpstreamEmptyResponse(CoupangAPIError):
    """2xx response without a usable body, usually bad credentials"""

    def __init__(self):
        super().__init__("Coupang API returned an empty response. Check the API key configuration")


class UpstreamBusinessError(CoupangAPIError):
    """2xx response whose rCode reports a business-level failure"""

    def __init__(self, r_code, r_message: Optional[str] = None):
        self.r_code = r_code
        self.r_message = r_message
        super().__init__(r_message or f"Coupang API business error (rCode: {r_code})")
