"""
Pytest configuration and fixtures for the price tracker tests

Provides in-memory stand-ins for the database repositories and a
controllable clock so ledger, limiter and cache behaviour can be
exercised without PostgreSQL or the upstream API.
"""

import pytest
import uuid
from datetime import datetime, timezone
from pathlib import Path
import sys

# Add the backend directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from price_tracker.models.deeplink_cache import DeeplinkCacheEntry
from price_tracker.models.product import Product, PriceHistoryPoint
from price_tracker.schemas.products import CoupangProduct, SearchResult


class ManualClock:
    """Epoch-seconds clock that only moves when told to"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ManualDateTimeClock:
    """Aware-datetime clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, moment: datetime):
        self.now = moment


class FakeProductRepository:
    """In-memory ProductRepository"""

    def __init__(self):
        self.products = {}
        self.points = []
        self.commits = 0
        self.rollbacks = 0
        self.failing_ids = set()

    async def get_by_coupang_id(self, coupang_id):
        return self.products.get(coupang_id)

    async def get_history(self, product, limit=None):
        points = sorted(
            (point for point in self.points if point.product_id == product.id),
            key=lambda point: point.created_at
        )
        return points[-limit:] if limit else points

    async def create_product(self, **fields):
        if fields["coupang_id"] in self.failing_ids:
            raise RuntimeError("database unavailable")
        product = Product(id=uuid.uuid4(), **fields)
        self.products[product.coupang_id] = product
        return product

    async def add_point(self, product, price, created_at):
        point = PriceHistoryPoint(id=uuid.uuid4(), product_id=product.id, price=price, created_at=created_at)
        self.points.append(point)
        return point

    async def update_point_price(self, point, price):
        point.price = price

    async def save_product(self, product):
        if product.coupang_id in self.failing_ids:
            raise RuntimeError("database unavailable")
        self.products[product.coupang_id] = product

    async def delete_points_before(self, cutoff):
        kept = [point for point in self.points if point.created_at >= cutoff]
        deleted = len(self.points) - len(kept)
        self.points = kept
        return deleted

    async def get_recently_viewed(self, since, limit):
        viewed = [
            product for product in self.products.values()
            if product.last_viewed_at is not None and product.last_viewed_at >= since
        ]
        viewed.sort(key=lambda product: product.last_viewed_at, reverse=True)
        return viewed[:limit]

    async def touch_viewed(self, product, viewed_at):
        product.last_viewed_at = viewed_at
        self.commits += 1

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1

    def history_prices(self, coupang_id):
        product = self.products[coupang_id]
        return [
            point.price
            for point in sorted(self.points, key=lambda point: point.created_at)
            if point.product_id == product.id
        ]


class FakeDeeplinkRepository:
    """In-memory DeeplinkCacheRepository"""

    def __init__(self):
        self.entries = {}
        self.upserts = 0

    async def get(self, product_key):
        return self.entries.get(product_key)

    async def upsert(self, product_key, original_url, shorten_url, landing_url, expires_at):
        self.upserts += 1
        self.entries[product_key] = DeeplinkCacheEntry(
            product_key=product_key,
            original_url=original_url,
            shorten_url=shorten_url,
            landing_url=landing_url,
            expires_at=expires_at
        )


class FakeCoupangClient:
    """Upstream client returning canned data; values that are exceptions get raised"""

    def __init__(self, goldbox=None, best=None, search=None, deeplinks=None):
        self.goldbox = goldbox if goldbox is not None else []
        self.best = best or {}
        self.search = search or {}
        self.deeplinks = deeplinks
        self.calls = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def get_goldbox_products(self, refresh=False):
        self.calls.append(("goldbox",))
        return self._answer(self.goldbox)

    async def get_best_products(self, category_id, limit=20, refresh=False):
        self.calls.append(("best", category_id, limit))
        return self._answer(self.best.get(category_id, []))

    async def search_products(self, keyword, limit=10, refresh=False):
        self.calls.append(("search", keyword, limit))
        return self._answer(self.search.get(keyword, SearchResult()))

    async def create_deeplinks(self, urls):
        self.calls.append(("deeplink", tuple(urls)))
        return self._answer(self.deeplinks if self.deeplinks is not None else [])


def make_product(product_id: int, price: int, name: str = None, **extra) -> CoupangProduct:
    """Helper function to build an upstream product observation"""
    return CoupangProduct(
        productId=product_id,
        productName=name or f"Product {product_id}",
        productPrice=price,
        productImage=f"https://image.example/{product_id}.jpg",
        productUrl=f"https://link.coupang.com/re/{product_id}",
        **extra
    )


@pytest.fixture
def clock():
    """Provide a manual epoch clock"""
    return ManualClock()


@pytest.fixture
def datetime_clock():
    """Provide a manual datetime clock starting at 2025-03-10 01:00 UTC (10:00 KST)"""
    return ManualDateTimeClock(datetime(2025, 3, 10, 1, 0, tzinfo=timezone.utc))


@pytest.fixture
def product_repository():
    """Provide an empty in-memory product repository"""
    return FakeProductRepository()


@pytest.fixture
def deeplink_repository():
    """Provide an empty in-memory deeplink cache"""
    return FakeDeeplinkRepository()


@pytest.fixture
def sample_products():
    """Provide a few upstream observations"""
    return [
        make_product(1001, 15900, isRocket=True),
        make_product(1002, 32000, categoryName="식품"),
        make_product(1003, 8900, isFreeShipping=True),
    ]


# Pytest configuration
def pytest_configure(config):
    """Configure pytest settings"""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
