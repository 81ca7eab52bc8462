"""
Shared FastAPI dependencies
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from price_tracker.core.container import ServiceContainer
from price_tracker.core.database import get_db
from price_tracker.services.deeplink_service import DeeplinkCacheRepository
from price_tracker.services.product_repository import ProductRepository


def get_container(request: Request) -> ServiceContainer:
    """Dependency to get the application's service container"""
    return request.app.state.container


def get_product_repository(db: AsyncSession = Depends(get_db)) -> ProductRepository:
    """Dependency to get a product repository bound to the request session"""
    return ProductRepository(db)


def get_deeplink_repository(db: AsyncSession = Depends(get_db)) -> DeeplinkCacheRepository:
    """Dependency to get the deeplink cache repository"""
    return DeeplinkCacheRepository(db)


def get_scheduler(request: Request):
    """Dependency to get the background scheduler (None when disabled)"""
    return getattr(request.app.state, "scheduler", None)
