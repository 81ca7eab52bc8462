"""
API tests using FastAPI TestClient

Database repositories are overridden with in-memory fakes and the
upstream API is served by an httpx.MockTransport.
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import httpx
from fastapi.testclient import TestClient

from conftest import FakeCoupangClient, FakeDeeplinkRepository, FakeProductRepository, make_product
from price_tracker.api.deps import get_deeplink_repository, get_product_repository
from price_tracker.core.config import settings
from price_tracker.core.container import ServiceContainer
from price_tracker.core.exceptions import UpstreamHttpError
from price_tracker.core.security import create_access_token
from price_tracker.main import create_app
from price_tracker.models.product import PriceHistoryPoint, Product
from price_tracker.services.coupang.client import CoupangClient
from price_tracker.services.coupang.signing import CoupangSigner
from price_tracker.services.deeplink_service import DeeplinkService
from price_tracker.services.price_ingestion_service import PriceIngestionService
from price_tracker.services.rate_limiter import CallCategory, RateLimitConfig, RateLimiter
from price_tracker.services.response_cache import ResponseCache

GOLDBOX_ITEM = {
    "productId": 555,
    "productName": "에어프라이어",
    "productPrice": 59000,
    "productImage": "https://image.example/555.jpg",
    "productUrl": "https://link.coupang.com/re/555",
    "isRocket": True,
    "isFreeShipping": False,
}


async def _no_sleep(seconds):
    return None


class ApiHarness:
    """App wired to fakes, with handles on every moving part"""

    def __init__(self, search_limit=35, ingestion_client=None, deeplink_client=None):
        self.upstream_requests = []
        self.rate_limiter = RateLimiter({
            CallCategory.SEARCH: RateLimitConfig(limit=search_limit, window_seconds=60)
        })
        self.cache = ResponseCache()
        self.client = CoupangClient(
            signer=CoupangSigner("test-access-key", "test-secret-key"),
            rate_limiter=self.rate_limiter,
            cache=self.cache,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.upstream))
        )
        self.ingestion_client = ingestion_client or FakeCoupangClient(goldbox=[make_product(1, 1000)])
        self.deeplink_client = deeplink_client or FakeCoupangClient(deeplinks=[{
            "originalUrl": "https://www.coupang.com/vp/products/555",
            "shortenUrl": "https://link.coupang.com/a/short",
            "landingUrl": "https://link.coupang.com/re/landing",
        }])
        container = ServiceContainer(
            rate_limiter=self.rate_limiter,
            cache=self.cache,
            client=self.client,
            ingestion=PriceIngestionService(self.ingestion_client, categories={}, sleep=_no_sleep),
            deeplinks=DeeplinkService(self.deeplink_client)
        )

        self.products = FakeProductRepository()
        self.deeplinks = FakeDeeplinkRepository()
        self.app = create_app(container)
        self.app.dependency_overrides[get_product_repository] = lambda: self.products
        self.app.dependency_overrides[get_deeplink_repository] = lambda: self.deeplinks
        self.http = TestClient(self.app)

    def upstream(self, request: httpx.Request) -> httpx.Response:
        self.upstream_requests.append(request)
        if "/search" in request.url.path:
            return httpx.Response(200, json={
                "rCode": "0",
                "data": {"landingUrl": "https://link.coupang.com/search", "productData": [GOLDBOX_ITEM]}
            })
        return httpx.Response(200, json={"rCode": "0", "data": [GOLDBOX_ITEM]})


@pytest.fixture
def harness():
    return ApiHarness()


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "cron-secret")
    return "cron-secret"


@pytest.fixture
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET", "jwt-test-secret")


class TestCronEndpoint:
    """Scheduled trigger"""

    def test_missing_secret_header(self, harness, cron_secret):
        response = harness.http.get("/api/v1/cron/collect-prices")
        assert response.status_code == 401

    def test_wrong_secret(self, harness, cron_secret):
        response = harness.http.get(
            "/api/v1/cron/collect-prices",
            headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_non_ascii_secret_is_rejected(self, harness, cron_secret):
        response = harness.http.get(
            "/api/v1/cron/collect-prices",
            headers={"Authorization": "Bearer \u00e9".encode("latin-1")}
        )
        assert response.status_code == 401

    def test_unconfigured_secret_rejects_everything(self, harness, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", None)
        response = harness.http.get(
            "/api/v1/cron/collect-prices",
            headers={"Authorization": "Bearer None"}
        )
        assert response.status_code == 401

    def test_successful_run(self, harness, cron_secret):
        response = harness.http.get(
            "/api/v1/cron/collect-prices",
            headers={"Authorization": f"Bearer {cron_secret}"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["goldbox"] == 1
        assert body["total_products"] == 1
        assert body["errors"] == []
        assert "1" in harness.products.products

    def test_rate_limited_run_reports_500(self, cron_secret):
        harness = ApiHarness(ingestion_client=FakeCoupangClient(goldbox=UpstreamHttpError(429)))

        response = harness.http.get(
            "/api/v1/cron/collect-prices",
            headers={"Authorization": f"Bearer {cron_secret}"}
        )

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["errors"] == ["Rate limit exceeded - collection stopped"]


class TestDeeplinkEndpoint:
    """Outbound link resolution"""

    def test_resolves_product_id(self, harness):
        response = harness.http.post("/api/v1/deeplink", json={"productId": 555})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["shortenUrl"] == "https://link.coupang.com/a/short"
        assert "555" in harness.deeplinks.entries

    def test_second_request_is_cached(self, harness):
        harness.http.post("/api/v1/deeplink", json={"productId": "555"})
        harness.http.post("/api/v1/deeplink", json={"productUrl": "https://www.coupang.com/vp/products/555"})

        assert len(harness.deeplink_client.calls) == 1

    def test_requires_a_reference(self, harness):
        response = harness.http.post("/api/v1/deeplink", json={})
        assert response.status_code == 400

    def test_upstream_failure_still_succeeds(self):
        harness = ApiHarness(deeplink_client=FakeCoupangClient(deeplinks=UpstreamHttpError(500)))

        response = harness.http.post("/api/v1/deeplink", json={"productId": 555})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["shortenUrl"] == "https://www.coupang.com/vp/products/555"


class TestCatalogEndpoints:
    """Cached upstream reads"""

    def test_categories(self, harness):
        response = harness.http.get("/api/v1/categories")
        assert response.status_code == 200
        assert len(response.json()["data"]) == 19

    def test_goldbox_is_cached(self, harness):
        first = harness.http.get("/api/v1/products/goldbox")
        second = harness.http.get("/api/v1/products/goldbox")

        assert first.status_code == second.status_code == 200
        assert first.json()["data"][0]["productId"] == 555
        assert len(harness.upstream_requests) == 1

    def test_best_products(self, harness):
        response = harness.http.get("/api/v1/products/best/1016?limit=50")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["categoryName"] == "가전디지털"
        assert data["products"][0]["productName"] == "에어프라이어"
        assert harness.upstream_requests[0].url.params["limit"] == "50"

    def test_best_products_unknown_category(self, harness):
        response = harness.http.get("/api/v1/products/best/9999")
        assert response.status_code == 400
        assert harness.upstream_requests == []

    def test_search(self, harness):
        response = harness.http.get("/api/v1/search", params={"keyword": "에어프라이어"})

        assert response.status_code == 200
        assert response.json()["data"]["landingUrl"] == "https://link.coupang.com/search"

    def test_search_blank_keyword(self, harness):
        response = harness.http.get("/api/v1/search", params={"keyword": "   "})
        assert response.status_code == 400

    def test_search_budget_exhausted(self):
        harness = ApiHarness(search_limit=0)

        response = harness.http.get("/api/v1/search", params={"keyword": "tv"})

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert harness.upstream_requests == []


class TestTrackedProductEndpoints:
    """Stored products and their history"""

    def register(self, harness, price=59000):
        return harness.http.post("/api/v1/products/register", json={
            "productId": 555,
            "productName": "에어프라이어",
            "productPrice": price,
        })

    def test_unknown_product(self, harness):
        assert harness.http.get("/api/v1/products/404404").status_code == 404

    def test_register_then_read(self, harness):
        response = self.register(harness)
        assert response.status_code == 200
        assert response.json()["data"]["registered"] is True

        response = harness.http.get("/api/v1/products/555")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["productId"] == 555
        assert data["lowestPrice"] == 59000
        assert data["isLowestPrice"] is True
        assert harness.products.products["555"].last_viewed_at is not None

    def test_register_twice_keeps_price_bounds(self, harness):
        self.register(harness)
        response = self.register(harness, price=40000)

        assert response.json()["data"]["registered"] is False
        product = harness.products.products["555"]
        assert product.current_price == 40000
        assert product.lowest_price <= product.current_price <= product.highest_price
        assert product.is_lowest_price is True
        # Same day: the day's point is replaced, not duplicated
        assert harness.products.history_prices("555") == [40000]

    def test_price_history(self, harness):
        self.register(harness)

        response = harness.http.get("/api/v1/products/555/price-history")

        data = response.json()["data"]
        assert data["hasHistory"] is True
        assert [point["price"] for point in data["history"]] == [59000]
        assert data["stats"]["dataPoints"] == 1
        assert data["stats"]["averagePrice"] == 59000

    def test_price_history_days_follow_local_timezone(self, harness):
        product = Product(
            id=uuid.uuid4(), coupang_id="555", name="에어프라이어",
            current_price=90, lowest_price=90, highest_price=100, average_price=95
        )
        harness.products.products["555"] = product
        # 10:00 KST on 3/10, then 01:00 KST on 3/11 (still 3/10 in UTC)
        harness.products.points += [
            PriceHistoryPoint(id=uuid.uuid4(), product_id=product.id, price=100,
                              created_at=datetime(2025, 3, 10, 1, 0, tzinfo=timezone.utc)),
            PriceHistoryPoint(id=uuid.uuid4(), product_id=product.id, price=90,
                              created_at=datetime(2025, 3, 10, 16, 0, tzinfo=timezone.utc)),
        ]

        data = harness.http.get("/api/v1/products/555/price-history").json()["data"]

        assert data["history"] == [
            {"time": "2025-03-10", "price": 100},
            {"time": "2025-03-11", "price": 90},
        ]
        assert data["stats"]["firstDate"] == "2025-03-10"
        assert data["stats"]["lastDate"] == "2025-03-11"

    def test_price_history_for_untracked_product(self, harness):
        data = harness.http.get("/api/v1/products/1/price-history").json()["data"]
        assert data["hasHistory"] is False
        assert data["history"] == []
        assert data["message"]


class TestAdminEndpoints:
    """Token-gated operational endpoints"""

    def test_requires_token(self, harness, jwt_secret):
        assert harness.http.get("/api/v1/admin/rate-limits").status_code == 401

    def test_requires_admin_claim(self, harness, jwt_secret):
        token = create_access_token("viewer")
        response = harness.http.get(
            "/api/v1/admin/rate-limits",
            headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403

    def test_rate_limits_and_cache(self, harness, jwt_secret):
        headers = {"Authorization": f"Bearer {create_access_token('ops', is_admin=True)}"}
        harness.http.get("/api/v1/products/goldbox")

        limits = harness.http.get("/api/v1/admin/rate-limits", headers=headers).json()["data"]
        assert [item["category"] for item in limits] == ["general", "search", "reporting"]
        assert limits[0]["count"] == 1

        assert harness.http.get("/api/v1/admin/cache", headers=headers).json()["data"]["total"] == 1

        response = harness.http.post("/api/v1/admin/cache/invalidate", headers=headers, json={"prefix": "goldbox"})
        assert response.json()["data"]["removed"] == 1
        assert harness.cache.stats()["total"] == 0

    def test_scheduler_status_when_disabled(self, harness, jwt_secret):
        headers = {"Authorization": f"Bearer {create_access_token('ops', is_admin=True)}"}
        response = harness.http.get("/api/v1/scheduler/status", headers=headers)

        assert response.status_code == 200
        assert response.json()["data"]["scheduler"]["status"] == "disabled"


def test_health(harness):
    response = harness.http.get("/health")
    assert response.status_code == 200
    assert response.json()["upstream_configured"] is True
    assert harness.http.get("/api/v1/health").json()["status"] == "healthy"


def test_startup_creates_tables_without_scheduler(harness, monkeypatch):
    create_tables = AsyncMock()
    monkeypatch.setattr("price_tracker.main.init_models", create_tables)
    monkeypatch.setattr(settings, "SCHEDULER_ENABLED", False)

    with harness.http:
        assert harness.http.get("/health").json()["scheduler_running"] is False

    create_tables.assert_awaited_once()
