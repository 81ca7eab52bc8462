"""
Deeplink cache model

Generated affiliate links stay valid upstream for a while; caching them
avoids spending quota on regenerating a link that still works.
"""

from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func

from price_tracker.core.database import Base


class DeeplinkCacheEntry(Base):
    """Cached deeplink for a product reference"""
    __tablename__ = "deeplink_cache"

    product_key = Column(String(255), primary_key=True, index=True)
    original_url = Column(Text, nullable=False)
    shorten_url = Column(Text, nullable=False)
    landing_url = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
