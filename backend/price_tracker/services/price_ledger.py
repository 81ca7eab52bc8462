"""
Price history ledger

Folds one observed price into a product's history:
- at most one history point per product per local calendar day
- a later observation on the same day overwrites that day's point
- lowest/highest/average are recomputed on every observation
- points older than the retention window are hard-deleted
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional, Tuple
from zoneinfo import ZoneInfo

from price_tracker.schemas.products import CoupangProduct

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceStats:
    lowest: int
    highest: int
    average: int


@dataclass
class UpsertResult:
    """Outcome of folding one observation into the store"""
    external_id: str
    ok: bool
    created: bool = False
    history_created: bool = False
    error: Optional[str] = None


def compute_price_stats(prices: Iterable[int]) -> PriceStats:
    """Lowest, highest and half-up rounded average of the given prices"""
    prices = list(prices)
    if not prices:
        raise ValueError("at least one price is required")

    average = (Decimal(sum(prices)) / Decimal(len(prices))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return PriceStats(lowest=min(prices), highest=max(prices), average=int(average))


def local_date(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar date of moment in tz; naive values are taken as UTC"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def local_day_bounds(moment: datetime, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of moment's calendar day in tz"""
    day = local_date(moment, tz)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PriceLedger:
    """Upserts observations and maintains derived price statistics"""

    def __init__(
        self,
        repository,
        tz: str = "Asia/Seoul",
        clock: Callable[[], datetime] = _utc_now
    ):
        self.repository = repository
        self.tz = ZoneInfo(tz)
        self._clock = clock

    async def upsert(self, observation: CoupangProduct, category_name: Optional[str] = None) -> UpsertResult:
        """
        Fold one observation into the product table and its history.

        Never raises: persistence failures are rolled back and reported
        in the returned result.
        """
        external_id = str(observation.product_id)
        try:
            result = await self._upsert(observation, category_name or observation.category_name)
            await self.repository.commit()
            return result
        except Exception as e:
            logger.error(f"[Ingestion] Failed to save product {external_id}: {e}", exc_info=True)
            try:
                await self.repository.rollback()
            except Exception as rollback_error:
                logger.warning(f"Rollback failed for product {external_id}: {rollback_error}")
            return UpsertResult(external_id=external_id, ok=False, error=f"Product {external_id}: {e}")

    async def _upsert(self, observation: CoupangProduct, category_name: Optional[str]) -> UpsertResult:
        external_id = str(observation.product_id)
        price = observation.product_price
        now = self._clock()

        product = await self.repository.get_by_coupang_id(external_id)

        if product is None:
            product = await self.repository.create_product(
                coupang_id=external_id,
                name=observation.product_name,
                image_url=observation.product_image,
                product_url=observation.product_url,
                category_name=category_name,
                is_rocket=observation.is_rocket,
                is_free_shipping=observation.is_free_shipping,
                current_price=price,
                lowest_price=price,
                highest_price=price,
                average_price=price,
            )
            await self.repository.add_point(product, price, now)
            logger.debug(f"New product tracked: {external_id} at {price}")
            return UpsertResult(external_id=external_id, ok=True, created=True, history_created=True)

        history = await self.repository.get_history(product)
        day_start, day_end = local_day_bounds(now, self.tz)
        today_point = next(
            (point for point in history if day_start <= point.created_at < day_end),
            None
        )

        history_created = False
        if today_point is not None:
            if today_point.price != price:
                await self.repository.update_point_price(today_point, price)
            prices = [point.price for point in history if point is not today_point]
        else:
            await self.repository.add_point(product, price, now)
            history_created = True
            prices = [point.price for point in history]
        prices.append(price)

        stats = compute_price_stats(prices)

        product.name = observation.product_name
        product.image_url = observation.product_image
        product.product_url = observation.product_url
        product.is_rocket = observation.is_rocket
        product.is_free_shipping = observation.is_free_shipping
        if category_name:
            product.category_name = category_name
        product.current_price = price
        product.lowest_price = stats.lowest
        product.highest_price = stats.highest
        product.average_price = stats.average
        await self.repository.save_product(product)

        return UpsertResult(external_id=external_id, ok=True, history_created=history_created)

    async def purge_expired(self, retention_days: int = 30) -> int:
        """Hard-delete history points older than now - retention_days"""
        cutoff = self._clock() - timedelta(days=retention_days)
        deleted = await self.repository.delete_points_before(cutoff)
        await self.repository.commit()
        logger.info(f"[Ingestion] Purged {deleted} history points older than {cutoff.isoformat()}")
        return deleted
