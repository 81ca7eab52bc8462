"""
Deeplink API endpoint

Backs the "go to purchase" action, so it always answers with a usable URL.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from price_tracker.api.deps import get_container, get_deeplink_repository
from price_tracker.core.container import ServiceContainer
from price_tracker.schemas.common import DataResponse, ErrorResponse
from price_tracker.schemas.products import DeeplinkRequest
from price_tracker.services.deeplink_service import DeeplinkCacheRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/deeplink", tags=["deeplink"])


@router.post(
    "",
    response_model=DataResponse,
    responses={
        200: {"description": "Deeplink (or fallback product URL) resolved"},
        400: {"description": "Neither productId nor productUrl given", "model": ErrorResponse}
    }
)
async def create_deeplink(
    request: DeeplinkRequest,
    container: ServiceContainer = Depends(get_container),
    repository: DeeplinkCacheRepository = Depends(get_deeplink_repository)
):
    """Resolve a product id or URL into an affiliate link"""
    if not request.product_id and not request.product_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="productId or productUrl is required"
        )

    result = await container.deeplinks.resolve(
        repository,
        product_id=request.product_id,
        product_url=request.product_url
    )
    return DataResponse(data=result.to_api_dict())
