"""
Scheduled trigger endpoint

An external cron invoker calls this once per period with the shared
CRON_SECRET as a bearer token.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from price_tracker.api.deps import get_container, get_product_repository
from price_tracker.core.container import ServiceContainer
from price_tracker.core.security import verify_cron_secret
from price_tracker.services.product_repository import ProductRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get(
    "/collect-prices",
    responses={
        200: {"description": "Price collection completed"},
        401: {"description": "Unauthorized"},
        500: {"description": "Price collection failed or stopped early"}
    }
)
async def collect_prices(
    authorization: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container),
    repository: ProductRepository = Depends(get_product_repository)
):
    """Run one price ingestion pass and report its summary"""
    if not verify_cron_secret(authorization):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    summary = await container.ingestion.run(repository)

    return JSONResponse(
        content=summary.model_dump(mode="json"),
        status_code=status.HTTP_200_OK if summary.success else status.HTTP_500_INTERNAL_SERVER_ERROR
    )
