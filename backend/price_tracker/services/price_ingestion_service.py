"""
Price Ingestion Service

Scheduled job that collects prices from the Coupang Partners API:

1. Fetch today's goldbox list and upsert every product
2. Fetch the best list of each category and upsert every product
3. Refresh recently viewed products that are not in those lists
4. Purge history points past the retention window

Upstream quota is the binding constraint: the job pauses between calls and
stops fetching as soon as any call reports rate limiting. Whatever was
already persisted is kept. Reads skip the response cache so every run
records the prices upstream reports that day, and refill it as they go.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from price_tracker.core.exceptions import RateLimitExceeded, UpstreamHttpError
from price_tracker.schemas.products import CoupangProduct, IngestionSummary
from price_tracker.services.coupang.client import CATEGORIES, CoupangClient
from price_tracker.services.price_ledger import PriceLedger, UpsertResult

logger = logging.getLogger(__name__)

RATE_LIMIT_ERROR = "Rate limit exceeded - collection stopped"


class _StopIngestion(Exception):
    """Raised internally when the upstream signals quota exhaustion"""


def _is_quota_signal(error: Exception) -> bool:
    if isinstance(error, RateLimitExceeded):
        return True
    return isinstance(error, UpstreamHttpError) and error.is_quota_signal


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PriceIngestionService:
    """Collects upstream prices into the product store"""

    def __init__(
        self,
        client: CoupangClient,
        categories: Optional[Dict[int, str]] = None,
        delay_seconds: float = 6.0,
        best_limit: int = 100,
        max_execution_seconds: float = 270.0,
        retention_days: int = 30,
        user_products_limit: int = 30,
        user_products_delay_seconds: float = 12.0,
        viewed_within_days: int = 7,
        tz: str = "Asia/Seoul",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utc_now,
        timer: Callable[[], float] = time.monotonic
    ):
        self.client = client
        self.categories = dict(CATEGORIES if categories is None else categories)
        self.delay_seconds = delay_seconds
        self.best_limit = best_limit
        self.max_execution_seconds = max_execution_seconds
        self.retention_days = retention_days
        self.user_products_limit = user_products_limit
        self.user_products_delay_seconds = user_products_delay_seconds
        self.viewed_within_days = viewed_within_days
        self.tz = tz
        self._sleep = sleep
        self._clock = clock
        self._timer = timer
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self, repository) -> IngestionSummary:
        """
        Run one ingestion pass against the given repository

        Returns:
            IngestionSummary; failures are reported in it, never raised
        """
        if self._lock.locked():
            logger.warning("[Ingestion] Run requested while another run is in progress")
            return IngestionSummary(
                success=False,
                errors=["Ingestion already running"],
                started_at=self._clock(),
                finished_at=self._clock()
            )

        async with self._lock:
            return await self._run(repository)

    async def _run(self, repository) -> IngestionSummary:
        started = self._timer()
        summary = IngestionSummary(started_at=self._clock())
        ledger = PriceLedger(repository, tz=self.tz, clock=self._clock)
        logger.info(f"[Ingestion] Price collection started at {summary.started_at.isoformat()}")

        try:
            try:
                await self._collect_goldbox(ledger, summary)
                await self._collect_categories(ledger, summary, started)
                await self._collect_viewed_products(repository, ledger, summary, started)
            except _StopIngestion:
                summary.success = False
                summary.errors.append(RATE_LIMIT_ERROR)
                logger.error("[Ingestion] Rate limit detected - stopping collection")

            try:
                summary.purged = await ledger.purge_expired(self.retention_days)
            except Exception as e:
                logger.error(f"[Ingestion] History purge failed: {e}", exc_info=True)
                summary.errors.append(f"Purge: {e}")
                await repository.rollback()

        except Exception as e:
            logger.error(f"[Ingestion] Price collection failed: {e}", exc_info=True)
            summary.success = False
            summary.errors.append(str(e))

        summary.finished_at = self._clock()
        summary.duration_seconds = self._timer() - started
        logger.info(
            f"[Ingestion] Price collection finished: {summary.total_products} products, "
            f"{summary.categories} categories, {len(summary.errors)} errors, "
            f"{summary.duration_seconds:.1f}s"
        )
        return summary

    async def _fetch(self, fetch_fn: Callable[[], Awaitable], name: str):
        """Run an upstream fetch; None on ordinary failure, _StopIngestion on quota signals"""
        try:
            result = await fetch_fn()
            logger.info(f"[Ingestion] {name}: ok")
            return result
        except Exception as e:
            if _is_quota_signal(e):
                raise _StopIngestion() from e
            logger.error(f"[Ingestion] {name}: failed - {e}")
            raise

    async def _save_all(
        self,
        ledger: PriceLedger,
        products: List[CoupangProduct],
        summary: IngestionSummary,
        category_name: Optional[str] = None
    ) -> int:
        saved = 0
        for product in products:
            result: UpsertResult = await ledger.upsert(product, category_name)
            if result.ok:
                saved += 1
            else:
                summary.errors.append(result.error)
        summary.total_products += saved
        return saved

    async def _collect_goldbox(self, ledger: PriceLedger, summary: IngestionSummary):
        try:
            products = await self._fetch(
                lambda: self.client.get_goldbox_products(refresh=True),
                "Goldbox"
            )
        except _StopIngestion:
            raise
        except Exception as e:
            summary.errors.append(f"Goldbox: {e}")
            products = None

        if products:
            summary.goldbox = await self._save_all(ledger, products, summary)

        await self._sleep(self.delay_seconds)

    async def _collect_categories(self, ledger: PriceLedger, summary: IngestionSummary, started: float):
        for category_id, category_name in self.categories.items():
            if self._timer() - started > self.max_execution_seconds:
                logger.warning("[Ingestion] Execution time limit reached - stopping category collection")
                summary.errors.append("Timeout - categories stopped early")
                break

            try:
                products = await self._fetch(
                    lambda: self.client.get_best_products(category_id, self.best_limit, refresh=True),
                    f"Category {category_id}"
                )
            except _StopIngestion:
                raise
            except Exception as e:
                summary.errors.append(f"Category {category_id}: {e}")
            else:
                await self._save_all(ledger, products or [], summary, category_name)
                summary.categories += 1

            await self._sleep(self.delay_seconds)

    async def _collect_viewed_products(
        self,
        repository,
        ledger: PriceLedger,
        summary: IngestionSummary,
        started: float
    ):
        """Refresh products users looked at recently, matched by search on their name"""
        if self.user_products_limit <= 0:
            return

        since = self._clock() - timedelta(days=self.viewed_within_days)
        # Plain values: a ledger rollback expires the loaded rows
        viewed = [
            (product.coupang_id, product.name)
            for product in await repository.get_recently_viewed(since, self.user_products_limit)
        ]
        logger.info(f"[Ingestion] {len(viewed)} recently viewed products to refresh")

        for coupang_id, name in viewed:
            if self._timer() - started > self.max_execution_seconds:
                summary.errors.append("Timeout - user products stopped early")
                break

            try:
                result = await self._fetch(
                    lambda: self.client.search_products(name, 1, refresh=True),
                    f"Viewed product {coupang_id}"
                )
            except _StopIngestion:
                raise
            except Exception as e:
                logger.warning(f"[Ingestion] Viewed product {coupang_id} skipped: {e}")
                continue

            match = next(
                (item for item in result.product_data if str(item.product_id) == coupang_id),
                None
            )
            if match is not None:
                saved = await self._save_all(ledger, [match], summary)
                summary.user_products += saved

            await self._sleep(self.user_products_delay_seconds)
