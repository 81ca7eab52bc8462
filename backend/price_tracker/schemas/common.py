"""
Common schemas and response models
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseResponse(BaseModel):
    """Base response model"""
    success: bool = Field(default=True)
    message: Optional[str] = Field(default=None)
    timestamp: datetime = Field(default_factory=_utc_now)


class DataResponse(BaseResponse):
    """Response with data"""
    data: Any = Field(...)


class ErrorResponse(BaseResponse):
    """Error response model"""
    success: bool = Field(default=False)
    error_code: Optional[str] = Field(default=None)
    details: Optional[Dict[str, Any]] = Field(default=None)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(...)
    version: str = Field(...)
    upstream_configured: bool = Field(default=False)
    scheduler_running: bool = Field(default=False)
