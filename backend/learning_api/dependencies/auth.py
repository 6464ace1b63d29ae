"""
Authentication Dependencies for the Learning API

Tokens are issued by the account service; this API only verifies them.
Provides FastAPI dependencies for:
- Required authentication (401 when missing or invalid)
- Optional authentication (anonymous callers get None)

Usage:
    @router.get("/protected")
    def protected_endpoint(user_id: str = Depends(get_current_user_id)):
        return {"user_id": user_id}
"""

import os
import logging
from typing import Optional
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from learning_api.services.generation_types import RequestContext

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for extracting tokens
security = HTTPBearer(auto_error=False)

JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = 60


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token for user_id.

    Used by the account service and by tests.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": user_id,
        "exp": datetime.utcnow() + expires_delta,
        "iat": datetime.utcnow(),
    }
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> str:
    """
    Verify a bearer token and return its subject (the user ID).

    Raises:
        HTTPException: 401 if the token is invalid, expired or has no subject
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user_id


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    FastAPI dependency returning the authenticated caller's user ID.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return verify_token(credentials.credentials)


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Optional authentication - returns None if not authenticated.

    An invalid token is treated like no token.
    """
    try:
        return await get_current_user_id(credentials)
    except HTTPException:
        return None


def get_request_context(request: Request) -> RequestContext:
    """Endpoint path, user agent and client IP for generation logs."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return RequestContext(
        api_endpoint=request.url.path,
        user_agent=request.headers.get("user-agent"),
        ip_address=ip_address,
    )
