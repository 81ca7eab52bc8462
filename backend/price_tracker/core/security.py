"""
Security utilities for endpoint authorization
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging

from price_tracker.core.config import settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    subject: str,
    is_admin: bool = False,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create access token"""
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET is not configured")

    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=8))
    to_encode = {"exp": expire, "sub": str(subject), "is_admin": is_admin}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify and decode JWT token"""
    if not settings.JWT_SECRET:
        return None
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM]
        )
        if payload.get("sub") is None:
            return None
        return payload
    except JWTError as e:
        logger.error(f"JWT error: {e}")
        return None


def verify_cron_secret(authorization: Optional[str]) -> bool:
    """Check an 'Authorization: Bearer <CRON_SECRET>' header"""
    if not settings.CRON_SECRET or not authorization:
        return False
    # Header values arrive latin-1 decoded; compare_digest only accepts ASCII str
    return hmac.compare_digest(
        authorization.encode("utf-8"),
        f"Bearer {settings.CRON_SECRET}".encode("utf-8")
    )


def create_credentials_exception() -> HTTPException:
    """Create credentials exception"""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Dict[str, Any]:
    """Dependency gating admin endpoints on a JWT with is_admin"""
    if credentials is None:
        raise create_credentials_exception()

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise create_credentials_exception()

    if not payload.get("is_admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required"
        )
    return payload
