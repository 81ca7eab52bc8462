"""
Product and price history data access
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from price_tracker.models.product import Product, PriceHistoryPoint

logger = logging.getLogger(__name__)


class ProductRepository:
    """Reads and writes products and their history through one session"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_coupang_id(self, coupang_id: str) -> Optional[Product]:
        result = await self.db.execute(
            select(Product).where(Product.coupang_id == coupang_id)
        )
        return result.scalar_one_or_none()

    async def get_history(self, product: Product, limit: Optional[int] = None) -> List[PriceHistoryPoint]:
        """History points in ascending time order (the newest `limit` when given)"""
        query = select(PriceHistoryPoint).where(PriceHistoryPoint.product_id == product.id)
        if limit:
            query = query.order_by(PriceHistoryPoint.created_at.desc()).limit(limit)
            result = await self.db.execute(query)
            return list(reversed(result.scalars().all()))

        result = await self.db.execute(query.order_by(PriceHistoryPoint.created_at.asc()))
        return list(result.scalars().all())

    async def create_product(self, **fields) -> Product:
        product = Product(**fields)
        self.db.add(product)
        await self.db.flush()
        return product

    async def add_point(self, product: Product, price: int, created_at: datetime) -> PriceHistoryPoint:
        point = PriceHistoryPoint(product_id=product.id, price=price, created_at=created_at)
        self.db.add(point)
        await self.db.flush()
        return point

    async def update_point_price(self, point: PriceHistoryPoint, price: int):
        point.price = price
        await self.db.flush()

    async def save_product(self, product: Product):
        self.db.add(product)
        await self.db.flush()

    async def delete_points_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(PriceHistoryPoint).where(PriceHistoryPoint.created_at < cutoff)
        )
        return result.rowcount or 0

    async def get_recently_viewed(self, since: datetime, limit: int) -> List[Product]:
        result = await self.db.execute(
            select(Product)
            .where(Product.last_viewed_at >= since)
            .order_by(Product.last_viewed_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def touch_viewed(self, product: Product, viewed_at: datetime):
        product.last_viewed_at = viewed_at
        await self.db.commit()

    async def commit(self):
        await self.db.commit()

    async def rollback(self):
        await self.db.rollback()
