"""
HMAC request signing for the Coupang Partners API

The gateway verifies each request against its own clock, so the signed
date is always rendered in UTC as yyMMdd'T'HHmmss'Z'.
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Optional

from price_tracker.core.exceptions import MissingCredentials

ALGORITHM = "HmacSHA256"
SIGNED_DATE_FORMAT = "%y%m%dT%H%M%SZ"


def format_signed_date(moment: Optional[datetime] = None) -> str:
    """Render a timestamp in the gateway's signed-date pattern (UTC)"""
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    else:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(SIGNED_DATE_FORMAT)


def build_signing_message(signed_date: str, method: str, path: str) -> str:
    # Only '?' is dropped; query keys and values stay in the message
    return f"{signed_date}{method.upper()}{path.replace('?', '')}"


class CoupangSigner:
    """Builds the CEA authorization header for a request"""

    def __init__(self, access_key: Optional[str], secret_key: Optional[str]):
        if not access_key or not secret_key:
            raise MissingCredentials()
        self.access_key = access_key
        self._secret_key = secret_key.encode("utf-8")

    def sign(self, method: str, path: str, signed_date: str) -> str:
        """Hex HMAC-SHA256 of the signing message"""
        message = build_signing_message(signed_date, method, path)
        return hmac.new(self._secret_key, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def authorization_header(self, method: str, path: str, now: Optional[datetime] = None) -> str:
        """
        Build the Authorization header value

        Args:
            method: HTTP method (GET/POST)
            path: request path including the query string
            now: signing time, defaults to the current UTC time

        Returns:
            "CEA algorithm=HmacSHA256, access-key=..., signed-date=..., signature=..."
        """
        signed_date = format_signed_date(now)
        signature = self.sign(method, path, signed_date)
        return (
            f"CEA algorithm={ALGORITHM}, access-key={self.access_key}, "
            f"signed-date={signed_date}, signature={signature}"
        )
