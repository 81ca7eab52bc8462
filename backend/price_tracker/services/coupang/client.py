"""
Coupang Partners API client

Every call goes through the local rate limiter and is signed with the
CEA HMAC header. Read endpoints are cached per resource.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from price_tracker.core.exceptions import (
    MissingCredentials,
    RateLimitExceeded,
    UpstreamBusinessError,
    UpstreamEmptyResponse,
    UpstreamHttpError,
)
from price_tracker.schemas.products import CoupangProduct, SearchResult
from price_tracker.services.coupang.signing import CoupangSigner
from price_tracker.services.rate_limiter import CallCategory, RateLimiter
from price_tracker.services.response_cache import ResponseCache, create_cache_key

logger = logging.getLogger(__name__)

API_PREFIX = "/v2/providers/affiliate_open_api/apis/openapi/v1"
DEFAULT_IMAGE_SIZE = "340x340"

CATEGORIES: Dict[int, str] = {
    1001: "여성패션",
    1002: "남성패션",
    1010: "뷰티",
    1011: "출산/유아동",
    1012: "식품",
    1013: "주방용품",
    1014: "생활용품",
    1015: "홈인테리어",
    1016: "가전디지털",
    1017: "스포츠/레저",
    1018: "자동차용품",
    1019: "도서/음반/DVD",
    1020: "완구/취미",
    1021: "문구/오피스",
    1024: "헬스/건강식품",
    1025: "국내여행",
    1026: "해외여행",
    1029: "반려동물용품",
    1030: "유아동패션",
}

DEFAULT_CACHE_TTLS = {
    "goldbox": 60 * 60 * 24,
    "best": 60 * 60 * 24,
    "search": 60 * 60 * 24,
}


def get_all_categories() -> List[Dict[str, Any]]:
    return [{"id": category_id, "name": name} for category_id, name in CATEGORIES.items()]


class CoupangClient:
    """Rate-limited, signed, cached access to the Coupang Partners API"""

    def __init__(
        self,
        signer: Optional[CoupangSigner],
        rate_limiter: RateLimiter,
        cache: ResponseCache,
        base_url: str = "https://api-gateway.coupang.com",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        cache_ttls: Optional[Dict[str, float]] = None
    ):
        self.signer = signer
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.cache_ttls = {**DEFAULT_CACHE_TTLS, **(cache_ttls or {})}
        self._http_client = http_client
        self._timeout = timeout

    async def _send(self, method: str, url: str, headers: dict, body: Optional[dict]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, headers=headers, json=body)

        timeout = self._timeout if self._timeout is not None else httpx.USE_CLIENT_DEFAULT
        async with httpx.AsyncClient() as client:
            return await client.request(method, url, headers=headers, json=body, timeout=timeout)

    async def _call(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        category: CallCategory = CallCategory.GENERAL
    ) -> Dict[str, Any]:
        """
        Perform one signed upstream call

        Raises:
            MissingCredentials: keys are not configured
            RateLimitExceeded: local budget exhausted (nothing was sent)
            UpstreamHttpError: non-2xx status
            UpstreamEmptyResponse: 2xx with an empty body
            UpstreamBusinessError: rCode other than 0
        """
        if self.signer is None:
            logger.error("Coupang API keys not configured")
            raise MissingCredentials()

        decision = self.rate_limiter.acquire(category)
        if not decision.allowed:
            raise RateLimitExceeded(decision.category, decision.retry_after_seconds)

        status = self.rate_limiter.status(CallCategory.GENERAL)
        logger.info(f"[API Call] {path} - Remaining: {status['remaining']}/{status['limit']}")

        headers = {
            "Content-Type": "application/json;charset=UTF-8",
            "Authorization": self.signer.authorization_header(method, path),
        }
        payload = body if method == "POST" else None
        response = await self._send(method, self.base_url + path, headers, payload)

        if not response.is_success:
            logger.error(f"Coupang API error: {response.status_code} {response.text}")
            raise UpstreamHttpError(response.status_code, response.text)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None

        if not data:
            logger.error("Coupang API returned an empty response - check the API keys")
            raise UpstreamEmptyResponse()

        r_code = data.get("rCode")
        if str(r_code) != "0":
            logger.error(f"Coupang API business error: {data}")
            raise UpstreamBusinessError(r_code, data.get("rMessage"))

        return data

    async def get_goldbox_products(
        self,
        image_size: str = DEFAULT_IMAGE_SIZE,
        refresh: bool = False
    ) -> List[CoupangProduct]:
        """Today's goldbox deals (refreshed upstream every morning); refresh skips the cached copy"""
        path = f"{API_PREFIX}/products/goldbox?imageSize={image_size}"

        async def fetch():
            response = await self._call("GET", path)
            return [CoupangProduct.model_validate(item) for item in response.get("data") or []]

        return await self.cache.get_or_fetch("goldbox", fetch, self.cache_ttls["goldbox"], refresh=refresh)

    async def get_best_products(
        self,
        category_id: int,
        limit: int = 20,
        image_size: str = DEFAULT_IMAGE_SIZE,
        refresh: bool = False
    ) -> List[CoupangProduct]:
        """Best products of a category; upstream accepts limit 1..100"""
        safe_limit = min(max(limit, 1), 100)
        cache_key = create_cache_key("best", category_id, safe_limit)
        path = f"{API_PREFIX}/products/bestcategories/{category_id}?limit={safe_limit}&imageSize={image_size}"

        async def fetch():
            response = await self._call("GET", path)
            return [CoupangProduct.model_validate(item) for item in response.get("data") or []]

        return await self.cache.get_or_fetch(cache_key, fetch, self.cache_ttls["best"], refresh=refresh)

    async def search_products(
        self,
        keyword: str,
        limit: int = 10,
        image_size: str = DEFAULT_IMAGE_SIZE,
        refresh: bool = False
    ) -> SearchResult:
        """Keyword search; upstream accepts limit 1..10 and has its own budget"""
        safe_limit = min(max(limit, 1), 10)
        cache_key = create_cache_key("search", keyword, safe_limit)
        path = (
            f"{API_PREFIX}/products/search?keyword={quote(keyword, safe='')}"
            f"&limit={safe_limit}&imageSize={image_size}"
        )

        async def fetch():
            response = await self._call("GET", path, category=CallCategory.SEARCH)
            return SearchResult.model_validate(response.get("data") or {})

        return await self.cache.get_or_fetch(cache_key, fetch, self.cache_ttls["search"], refresh=refresh)

    async def create_deeplinks(self, coupang_urls: List[str]) -> List[Dict[str, str]]:
        """Convert plain Coupang URLs into affiliate links"""
        response = await self._call("POST", f"{API_PREFIX}/deeplink", {"coupangUrls": coupang_urls})
        return response.get("data") or []

    async def get_click_report(self, start_date: str, end_date: str) -> List[Dict[str, Any]]:
        """Daily click report, dates as yyyyMMdd"""
        path = f"{API_PREFIX}/reports/clicks?startDate={start_date}&endDate={end_date}"
        response = await self._call("GET", path, category=CallCategory.REPORTING)
        return response.get("data") or []
