"""
Admin API endpoints for the integration layer
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
import logging

from price_tracker.api.deps import get_container
from price_tracker.api.products import upstream_exception
from price_tracker.core.container import ServiceContainer
from price_tracker.core.security import require_admin
from price_tracker.schemas.common import DataResponse
from price_tracker.services.rate_limiter import CallCategory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class CacheInvalidateRequest(BaseModel):
    """Cache invalidation request"""
    prefix: str = ""


@router.get("/rate-limits", response_model=DataResponse)
async def get_rate_limits(container: ServiceContainer = Depends(get_container)):
    """Current usage of every call budget"""
    return DataResponse(data=[
        container.rate_limiter.status(category) for category in CallCategory
    ])


@router.get("/cache", response_model=DataResponse)
async def get_cache_stats(container: ServiceContainer = Depends(get_container)):
    """Response cache entry counts"""
    return DataResponse(data=container.cache.stats())


@router.post("/cache/invalidate", response_model=DataResponse)
async def invalidate_cache(
    request: CacheInvalidateRequest,
    container: ServiceContainer = Depends(get_container)
):
    """Drop cached responses whose key starts with prefix (all when empty)"""
    if request.prefix:
        removed = container.cache.invalidate(request.prefix)
    else:
        removed = container.cache.stats()["total"]
        container.cache.clear()

    logger.info(f"Invalidated {removed} cache entries (prefix='{request.prefix}')")
    return DataResponse(data={"removed": removed})


@router.get("/reports/clicks", response_model=DataResponse)
async def get_click_report(
    start_date: str = Query(..., alias="startDate", pattern=r"^\d{8}$"),
    end_date: str = Query(..., alias="endDate", pattern=r"^\d{8}$"),
    container: ServiceContainer = Depends(get_container)
):
    """Affiliate click report for a date range (yyyyMMdd)"""
    try:
        report = await container.client.get_click_report(start_date, end_date)
    except Exception as e:
        logger.error(f"Error fetching click report: {str(e)}")
        raise upstream_exception(e, "click report")

    return DataResponse(data=report)
