"""FastAPI dependencies for database sessions, authentication, and rate limiting."""

import logging
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_async_session
from .exceptions import AuthenticationError, RateLimitError
from .observability import metrics_collector
from .rate_limit import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Verify the bearer token and return the actor identity.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        dict: ``user_id``, ``email`` and ``name`` of the caller

    Raises:
        AuthenticationError: If the token is missing, malformed or invalid
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        # PyJWT rejects expired tokens when an exp claim is present
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except PyJWTError as e:
        logger.info("Bearer token rejected", extra={"error": str(e)})
        raise AuthenticationError(detail=f"Token validation failed: {e}")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError(detail="Invalid token payload")

    email = payload.get("email")
    return {
        "user_id": str(user_id),
        "email": email,
        "name": payload.get("name") or email or "Unknown User",
    }


async def enforce_rate_limit(
    current_user: dict = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> dict:
    """
    Authenticate and spend one token from the caller's bucket.

    Returns:
        dict: The authenticated actor, so routes can depend on this alone

    Raises:
        RateLimitError: If the caller's bucket is empty
    """
    result = await limiter.check(current_user["user_id"])
    if not result.allowed:
        metrics_collector.record_rate_limited()
        logger.warning(
            "Rate limit exceeded",
            extra={"user_id": current_user["user_id"], "retry_after": result.retry_after},
        )
        raise RateLimitError(
            retry_after=result.retry_after,
            limit=result.limit,
            window=limiter.period,
        )
    return current_user


RequiredAuth = Depends(get_current_user)
RateLimitedAuth = Depends(enforce_rate_limit)
DatabaseSession = Depends(get_db)
