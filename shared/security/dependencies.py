"""
FastAPI dependencies guarding the order routes.

Storefront customers authenticate with a Bearer JWT; back-office callers
(status updates, cancellations, admin listing) send X-Internal-API-Key.
"""
import os
import secrets

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer

from .jwt_handler import verify_access_token

logger = structlog.get_logger(__name__)

INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "")
if not INTERNAL_API_KEY:
    # Back-office routes stay closed until a key is configured
    logger.warning("internal_api_key_missing", detail="INTERNAL_API_KEY is not set; admin routes reject every call")

# Bearer <token>; issued by the storefront login endpoint
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

internal_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


def verify_api_key(provided_key: str) -> bool:
    """Constant-time comparison against INTERNAL_API_KEY; never true when no key is configured."""
    if not provided_key or not INTERNAL_API_KEY:
        return False
    return secrets.compare_digest(provided_key, INTERNAL_API_KEY)


async def get_current_user(request: Request, token: str = Depends(oauth2_scheme)) -> int:
    """Validates the JWT and returns the numeric user id (sub)."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    payload = verify_access_token(token)
    if payload is None:
        raise credentials_exception

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise credentials_exception

    # Used by the rate limiter key function
    request.state.user_id = user_id
    return user_id


async def verify_internal_api_key(api_key: str = Depends(internal_key_header)) -> bool:
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header"
        )
    return True
