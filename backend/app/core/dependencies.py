"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication
and for the shared-secret automation trigger.
"""

import hmac
from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.config import settings
from backend.app.core.jwt import decode_access_token
from backend.app.services.audit import AuditActor

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. Validates JWT token signature and expiry
    2. Requires user_id and company_id claims (every engine call is company scoped)

    Args:
        credentials: HTTP Bearer token from request header

    Returns:
        Decoded token payload containing user information

    Raises:
        HTTPException: 401 if authentication fails for any reason
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("company_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid company context",
        )

    return payload


async def require_automation_key(x_api_key: Optional[str] = Header(default=None)) -> str:
    """
    Gate for the unauthenticated automation trigger.

    The X-API-Key header must match settings.cron_secret_key. With no key
    configured the trigger is disabled.
    """
    expected = settings.cron_secret_key
    if not expected or not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return AuditActor.AUTOMATION
