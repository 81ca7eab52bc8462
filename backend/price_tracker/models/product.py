"""
Tracked product and its daily price history
"""

from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import uuid

from price_tracker.core.database import Base


class Product(Base):
    """Product tracked from the Coupang catalog"""
    __tablename__ = "products"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True
    )

    # Catalog identity and display fields (overwritten by every observation)
    coupang_id = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    product_url = Column(Text, nullable=True)
    category_name = Column(String(100), nullable=True, index=True)
    is_rocket = Column(Boolean, default=False)
    is_free_shipping = Column(Boolean, default=False)

    # Prices in whole KRW
    current_price = Column(Integer, nullable=False)
    lowest_price = Column(Integer, nullable=True)
    highest_price = Column(Integer, nullable=True)
    average_price = Column(Integer, nullable=True)

    last_viewed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    price_history = relationship(
        "PriceHistoryPoint",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PriceHistoryPoint.created_at"
    )

    def __repr__(self):
        return f"<Product(coupang_id='{self.coupang_id}', current_price={self.current_price})>"

    @property
    def is_lowest_price(self) -> bool:
        """Current price matches (or beats) the lowest recorded price"""
        if self.lowest_price is None or self.current_price is None:
            return False
        return self.current_price <= self.lowest_price

    def to_api_dict(self) -> dict:
        """Shape used by the product endpoints"""
        return {
            "productId": int(self.coupang_id) if self.coupang_id.isdigit() else self.coupang_id,
            "productName": self.name,
            "productPrice": self.current_price,
            "productImage": self.image_url,
            "productUrl": self.product_url,
            "isRocket": bool(self.is_rocket),
            "isFreeShipping": bool(self.is_free_shipping),
            "categoryName": self.category_name,
            "lowestPrice": self.lowest_price,
            "highestPrice": self.highest_price,
            "averagePrice": self.average_price,
            "isLowestPrice": self.is_lowest_price,
        }


class PriceHistoryPoint(Base):
    """One price observation per product per calendar day"""
    __tablename__ = "price_history"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True
    )
    product_id = Column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    price = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    product = relationship("Product", back_populates="price_history")

    def __repr__(self):
        return f"<PriceHistoryPoint(product_id='{self.product_id}', price={self.price}, created_at={self.created_at})>"
