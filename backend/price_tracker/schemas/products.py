"""
Product, deeplink and ingestion schemas
"""

from typing import Optional, List, Union
from pydantic import BaseModel, Field
from datetime import datetime


class CoupangProduct(BaseModel):
    """Product as returned by the Coupang Partners API"""
    product_id: int = Field(..., alias="productId")
    product_name: str = Field(..., alias="productName")
    product_price: int = Field(..., alias="productPrice")
    product_image: Optional[str] = Field(default=None, alias="productImage")
    product_url: Optional[str] = Field(default=None, alias="productUrl")
    category_name: Optional[str] = Field(default=None, alias="categoryName")
    is_rocket: bool = Field(default=False, alias="isRocket")
    is_free_shipping: bool = Field(default=False, alias="isFreeShipping")
    keyword: Optional[str] = Field(default=None)
    rank: Optional[int] = Field(default=None)

    class Config:
        populate_by_name = True


class SearchResult(BaseModel):
    """Search API payload"""
    landing_url: Optional[str] = Field(default=None, alias="landingUrl")
    product_data: List[CoupangProduct] = Field(default_factory=list, alias="productData")

    class Config:
        populate_by_name = True


class DeeplinkRequest(BaseModel):
    """Deeplink request body"""
    product_id: Optional[Union[int, str]] = Field(default=None, alias="productId")
    product_url: Optional[str] = Field(default=None, alias="productUrl")

    class Config:
        populate_by_name = True


class RegisterProductRequest(BaseModel):
    """Start tracking a product seen by a user"""
    product_id: int = Field(..., alias="productId")
    product_name: str = Field(..., min_length=1, alias="productName")
    product_price: int = Field(..., gt=0, alias="productPrice")
    product_image: Optional[str] = Field(default=None, alias="productImage")
    product_url: Optional[str] = Field(default=None, alias="productUrl")
    category_name: Optional[str] = Field(default=None, alias="categoryName")
    is_rocket: bool = Field(default=False, alias="isRocket")
    is_free_shipping: bool = Field(default=False, alias="isFreeShipping")

    class Config:
        populate_by_name = True

    def to_observation(self) -> CoupangProduct:
        return CoupangProduct(**self.model_dump())


class IngestionSummary(BaseModel):
    """Result of one price ingestion run"""
    success: bool = Field(default=True)
    total_products: int = Field(default=0)
    goldbox: int = Field(default=0)
    categories: int = Field(default=0)
    user_products: int = Field(default=0)
    purged: int = Field(default=0)
    errors: List[str] = Field(default_factory=list)
    duration_seconds: float = Field(default=0.0)
    started_at: Optional[datetime] = Field(default=None)
    finished_at: Optional[datetime] = Field(default=None)
