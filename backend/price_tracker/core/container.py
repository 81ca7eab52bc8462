"""
Composition root for the integration layer

The rate limiter and the response cache hold process-local state, so one
instance of each is built per application and shared by every request.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from price_tracker.core.config import Settings, settings as default_settings
from price_tracker.core.exceptions import MissingCredentials
from price_tracker.services.coupang.client import CoupangClient
from price_tracker.services.coupang.signing import CoupangSigner
from price_tracker.services.deeplink_service import DeeplinkService
from price_tracker.services.price_ingestion_service import PriceIngestionService
from price_tracker.services.rate_limiter import CallCategory, RateLimitConfig, RateLimiter
from price_tracker.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    rate_limiter: RateLimiter
    cache: ResponseCache
    client: CoupangClient
    ingestion: PriceIngestionService
    deeplinks: DeeplinkService


def build_signer(config: Settings) -> Optional[CoupangSigner]:
    try:
        return CoupangSigner(config.COUPANG_ACCESS_KEY, config.COUPANG_SECRET_KEY)
    except MissingCredentials:
        logger.warning("Coupang API keys not configured - upstream calls will be refused")
        return None


def build_container(
    config: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None
) -> ServiceContainer:
    """Wire the integration services from settings"""
    config = config or default_settings

    rate_limiter = RateLimiter({
        CallCategory.GENERAL: RateLimitConfig(config.RATE_LIMIT_GENERAL_CALLS, config.RATE_LIMIT_GENERAL_WINDOW),
        CallCategory.SEARCH: RateLimitConfig(config.RATE_LIMIT_SEARCH_CALLS, config.RATE_LIMIT_SEARCH_WINDOW),
        CallCategory.REPORTING: RateLimitConfig(config.RATE_LIMIT_REPORTING_CALLS, config.RATE_LIMIT_REPORTING_WINDOW),
    })
    cache = ResponseCache(default_ttl=config.CACHE_TTL_DEFAULT)

    client = CoupangClient(
        signer=build_signer(config),
        rate_limiter=rate_limiter,
        cache=cache,
        base_url=config.COUPANG_API_BASE_URL,
        http_client=http_client,
        timeout=config.COUPANG_HTTP_TIMEOUT,
        cache_ttls={
            "goldbox": config.CACHE_TTL_GOLDBOX,
            "best": config.CACHE_TTL_BEST_PRODUCTS,
            "search": config.CACHE_TTL_SEARCH,
        }
    )

    ingestion = PriceIngestionService(
        client,
        delay_seconds=config.INGESTION_DELAY_SECONDS,
        best_limit=config.INGESTION_BEST_LIMIT,
        max_execution_seconds=config.INGESTION_MAX_EXECUTION_SECONDS,
        retention_days=config.PRICE_HISTORY_RETENTION_DAYS,
        user_products_limit=config.INGESTION_USER_PRODUCTS_LIMIT,
        user_products_delay_seconds=config.INGESTION_USER_PRODUCTS_DELAY_SECONDS,
        viewed_within_days=config.INGESTION_VIEWED_WITHIN_DAYS,
        tz=config.PRICE_TIMEZONE
    )

    deeplinks = DeeplinkService(client, upstream_validity_hours=config.DEEPLINK_UPSTREAM_VALIDITY_HOURS)

    return ServiceContainer(
        rate_limiter=rate_limiter,
        cache=cache,
        client=client,
        ingestion=ingestion,
        deeplinks=deeplinks
    )
