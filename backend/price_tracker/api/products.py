"""
Product API endpoints

Catalog reads go through the response cache first and only reach the
upstream API (rate limited and signed) on a miss.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from fastapi import APIRouter, Depends, HTTPException, Query, status
import logging

from price_tracker.api.deps import get_container, get_product_repository
from price_tracker.core.container import ServiceContainer
from price_tracker.core.exceptions import CoupangAPIError, MissingCredentials, RateLimitExceeded
from price_tracker.schemas.common import DataResponse, ErrorResponse
from price_tracker.schemas.products import RegisterProductRequest
from price_tracker.services.coupang.client import CATEGORIES, get_all_categories
from price_tracker.services.price_ledger import PriceLedger, compute_price_stats, local_date
from price_tracker.services.product_repository import ProductRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["products"])

HISTORY_POINTS_LIMIT = 30
COLLECTING_MESSAGE = "Price data is being collected. Please check again tomorrow."


def upstream_exception(error: Exception, action: str) -> HTTPException:
    """Map an integration failure to an HTTP error"""
    if isinstance(error, RateLimitExceeded):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(error),
            headers={"Retry-After": str(error.retry_after_seconds)}
        )
    if isinstance(error, MissingCredentials):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upstream API is not configured"
        )
    if isinstance(error, CoupangAPIError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch {action}"
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error"
    )


@router.get("/categories", response_model=DataResponse)
async def list_categories():
    """All best-product categories"""
    return DataResponse(data=get_all_categories())


@router.get(
    "/products/goldbox",
    response_model=DataResponse,
    responses={
        429: {"description": "Upstream quota exhausted", "model": ErrorResponse},
        502: {"description": "Upstream error", "model": ErrorResponse}
    }
)
async def get_goldbox_products(container: ServiceContainer = Depends(get_container)):
    """Today's goldbox deals"""
    try:
        products = await container.client.get_goldbox_products()
        return DataResponse(data=[p.model_dump(by_alias=True) for p in products])
    except Exception as e:
        logger.error(f"Error fetching goldbox products: {str(e)}")
        raise upstream_exception(e, "goldbox products")


@router.get(
    "/products/best/{category_id}",
    response_model=DataResponse,
    responses={
        400: {"description": "Unknown category", "model": ErrorResponse},
        429: {"description": "Upstream quota exhausted", "model": ErrorResponse}
    }
)
async def get_best_products(
    category_id: int,
    limit: int = Query(20, ge=1, le=100),
    container: ServiceContainer = Depends(get_container)
):
    """Best products of one category"""
    if category_id not in CATEGORIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unknown category"
        )

    try:
        products = await container.client.get_best_products(category_id, limit)
    except Exception as e:
        logger.error(f"Error fetching best products for {category_id}: {str(e)}")
        raise upstream_exception(e, "best products")

    return DataResponse(data={
        "categoryId": category_id,
        "categoryName": CATEGORIES[category_id],
        "products": [p.model_dump(by_alias=True) for p in products]
    })


@router.get(
    "/search",
    response_model=DataResponse,
    responses={
        400: {"description": "Blank keyword", "model": ErrorResponse},
        429: {"description": "Upstream quota exhausted", "model": ErrorResponse}
    }
)
async def search_products(
    keyword: str = Query(""),
    limit: int = Query(10, ge=1, le=10),
    container: ServiceContainer = Depends(get_container)
):
    """Keyword search"""
    keyword = keyword.strip()
    if not keyword:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="keyword is required"
        )

    try:
        result = await container.client.search_products(keyword, limit)
    except Exception as e:
        logger.error(f"Error searching products for '{keyword}': {str(e)}")
        raise upstream_exception(e, "search results")

    return DataResponse(data={
        "keyword": keyword,
        "landingUrl": result.landing_url,
        "products": [p.model_dump(by_alias=True) for p in result.product_data]
    })


@router.post(
    "/products/register",
    response_model=DataResponse,
    responses={500: {"description": "Internal server error", "model": ErrorResponse}}
)
async def register_product(
    request: RegisterProductRequest,
    container: ServiceContainer = Depends(get_container),
    repository: ProductRepository = Depends(get_product_repository)
):
    """Start tracking a product a user looked at (no upstream call)"""
    now = datetime.now(timezone.utc)
    existing = await repository.get_by_coupang_id(str(request.product_id))

    # Known products go through the ledger too: same daily point, recomputed stats
    ledger = PriceLedger(repository, tz=container.ingestion.tz)
    result = await ledger.upsert(request.to_observation())
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register product"
        )

    product = await repository.get_by_coupang_id(result.external_id)
    if product is not None:
        await repository.touch_viewed(product, now)

    if existing is not None:
        return DataResponse(
            message="Product is already tracked",
            data={"registered": False}
        )
    return DataResponse(
        message="Price tracking started",
        data={"registered": True}
    )


@router.get(
    "/products/{external_id}",
    response_model=DataResponse,
    responses={404: {"description": "Product not tracked", "model": ErrorResponse}}
)
async def get_product(
    external_id: str,
    repository: ProductRepository = Depends(get_product_repository)
):
    """Stored product with its price statistics"""
    product = await repository.get_by_coupang_id(external_id)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )

    data = product.to_api_dict()
    try:
        await repository.touch_viewed(product, datetime.now(timezone.utc))
    except Exception as e:
        logger.warning(f"Could not record view for {external_id}: {e}")
    return DataResponse(data=data)


@router.get("/products/{external_id}/price-history", response_model=DataResponse)
async def get_price_history(
    external_id: str,
    container: ServiceContainer = Depends(get_container),
    repository: ProductRepository = Depends(get_product_repository)
):
    """Daily price history (oldest first) and summary statistics"""
    product = await repository.get_by_coupang_id(external_id)
    if product is None:
        return DataResponse(data={
            "hasHistory": False,
            "history": [],
            "stats": None,
            "message": COLLECTING_MESSAGE
        })

    points = await repository.get_history(product, limit=HISTORY_POINTS_LIMIT)
    tz = ZoneInfo(container.ingestion.tz)
    history = [
        {"time": local_date(point.created_at, tz).isoformat(), "price": point.price}
        for point in points
    ]

    stats = None
    if points:
        computed = compute_price_stats(point.price for point in points)
        stats = {
            "currentPrice": product.current_price,
            "lowestPrice": product.lowest_price if product.lowest_price is not None else computed.lowest,
            "highestPrice": product.highest_price if product.highest_price is not None else computed.highest,
            "averagePrice": product.average_price if product.average_price is not None else computed.average,
            "isLowestPrice": product.is_lowest_price,
            "dataPoints": len(points),
            "firstDate": history[0]["time"],
            "lastDate": history[-1]["time"]
        }

    return DataResponse(data={
        "hasHistory": bool(history),
        "history": history,
        "stats": stats,
        "message": None if history else COLLECTING_MESSAGE
    })
