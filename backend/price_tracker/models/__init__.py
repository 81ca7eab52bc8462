# Database models

from .product import Product, PriceHistoryPoint
from .deeplink_cache import DeeplinkCacheEntry
from .job_execution_log import JobExecutionLog

__all__ = [
    "Product",
    "PriceHistoryPoint",
    "DeeplinkCacheEntry",
    "JobExecutionLog",
]
