"""
Deeplink Service

Turns a product reference into an affiliate link. Generated links are
cached in the database for half of their upstream validity so an expiring
link is never served. Resolution never fails: when the upstream call does,
the plain product URL is returned instead.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from price_tracker.models.deeplink_cache import DeeplinkCacheEntry
from price_tracker.services.coupang.client import CoupangClient

logger = logging.getLogger(__name__)

COUPANG_HOME_URL = "https://www.coupang.com"
PRODUCT_URL_TEMPLATE = "https://www.coupang.com/vp/products/{product_id}"
_PRODUCT_ID_PATTERN = re.compile(r"products/(\d+)")


@dataclass
class DeeplinkResult:
    original_url: str
    shorten_url: str
    landing_url: str
    cached: bool = False
    fallback: bool = False

    @classmethod
    def from_url(cls, url: str) -> "DeeplinkResult":
        return cls(original_url=url, shorten_url=url, landing_url=url, fallback=True)

    def to_api_dict(self) -> dict:
        return {
            "originalUrl": self.original_url,
            "shortenUrl": self.shorten_url,
            "landingUrl": self.landing_url,
        }


def normalize_product_target(
    product_id: Optional[str] = None,
    product_url: Optional[str] = None
) -> Tuple[str, str]:
    """
    Work out the cache key and the Coupang URL to convert

    Returns:
        (cache_key, target_url)
    """
    if product_id:
        product_id = str(product_id).strip()
        return product_id, PRODUCT_URL_TEMPLATE.format(product_id=product_id)

    if product_url:
        match = _PRODUCT_ID_PATTERN.search(product_url)
        if match:
            return match.group(1), PRODUCT_URL_TEMPLATE.format(product_id=match.group(1))
        return product_url, product_url

    raise ValueError("productId or productUrl is required")


def _as_aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class DeeplinkCacheRepository:
    """Database-backed deeplink cache"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, product_key: str) -> Optional[DeeplinkCacheEntry]:
        result = await self.db.execute(
            select(DeeplinkCacheEntry).where(DeeplinkCacheEntry.product_key == product_key)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        product_key: str,
        original_url: str,
        shorten_url: str,
        landing_url: str,
        expires_at: datetime
    ):
        values = {
            "product_key": product_key,
            "original_url": original_url,
            "shorten_url": shorten_url,
            "landing_url": landing_url,
            "expires_at": expires_at,
        }
        stmt = insert(DeeplinkCacheEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DeeplinkCacheEntry.product_key],
            set_={key: value for key, value in values.items() if key != "product_key"}
        )
        await self.db.execute(stmt)
        await self.db.commit()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeeplinkService:
    """Resolves product references into cached affiliate links"""

    def __init__(
        self,
        client: CoupangClient,
        upstream_validity_hours: float = 48,
        clock: Callable[[], datetime] = _utc_now
    ):
        self.client = client
        # Half the upstream validity so a cached link is never close to dying
        self.ttl = timedelta(hours=upstream_validity_hours) / 2
        self._clock = clock

    async def resolve(
        self,
        repository,
        product_id: Optional[str] = None,
        product_url: Optional[str] = None
    ) -> DeeplinkResult:
        """
        Return a usable outbound link for the product

        Order: unexpired cache entry, fresh upstream deeplink, plain URL.
        """
        try:
            cache_key, target_url = normalize_product_target(product_id, product_url)
        except ValueError:
            return DeeplinkResult.from_url(COUPANG_HOME_URL)

        now = self._clock()

        try:
            entry = await repository.get(cache_key)
        except Exception as e:
            logger.warning(f"[Deeplink] Cache lookup failed for {cache_key}: {e}")
            entry = None

        if entry is not None and _as_aware(entry.expires_at) > now:
            logger.info(f"[Deeplink] Cache hit for {cache_key}")
            return DeeplinkResult(
                original_url=entry.original_url,
                shorten_url=entry.shorten_url,
                landing_url=entry.landing_url,
                cached=True
            )

        try:
            links = await self.client.create_deeplinks([target_url])
        except Exception as e:
            logger.error(f"[Deeplink] Generation failed for {cache_key}: {e}")
            return DeeplinkResult.from_url(target_url)

        if not links:
            logger.warning(f"[Deeplink] Upstream returned no link for {cache_key}")
            return DeeplinkResult.from_url(target_url)

        link = links[0]
        result = DeeplinkResult(
            original_url=link.get("originalUrl") or target_url,
            shorten_url=link.get("shortenUrl") or link.get("landingUrl") or target_url,
            landing_url=link.get("landingUrl") or target_url
        )

        try:
            await repository.upsert(
                cache_key,
                result.original_url,
                result.shorten_url,
                result.landing_url,
                now + self.ttl
            )
        except Exception as e:
            logger.warning(f"[Deeplink] Failed to cache link for {cache_key}: {e}")

        return result
