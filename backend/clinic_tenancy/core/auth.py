"""
JWT verification and organization session storage.

WHY: Tokens are issued by the external identity service; this module only
verifies them. The organization a user switched to during a session is
kept in Redis under the token's session id, so switching organizations
does not require a new token.
"""

from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from jose import jwt, JWTError
import redis.asyncio as aioredis

from clinic_tenancy.core.config import settings
from clinic_tenancy.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


# Redis connection for organization sessions
# WHY: Lazy module-level client so the connection is shared across requests.
_redis_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """
    Get the shared Redis client.

    Returns:
        Redis client instance
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = await aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


# ============================================================================
# JWT Token Management
# ============================================================================


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT.

    Production tokens come from the identity service; this helper produces
    tokens with the same claims for development and tests.

    Claims understood by this service:
    - user_id: authenticated user
    - role: global role
    - organization_id: legacy single-organization field
    - sid: session id used to look up the switched organization

    Args:
        data: Claims to encode
        expires_delta: Optional custom expiration time

    Returns:
        JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    to_encode.update(
        {
            "exp": expire,
            "iat": datetime.utcnow(),
            "nbf": datetime.utcnow(),
        }
    )

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")
    except JWTError as e:
        raise TokenInvalidError(
            message="Invalid token",
            error=str(e),
        )


# ============================================================================
# Organization Session (switched organization)
# ============================================================================


def _session_key(session_id: str) -> str:
    return f"session:organization:{session_id}"


async def set_session_organization(
    session_id: str,
    organization_id: int,
    ttl_seconds: Optional[int] = None,
) -> None:
    """
    Remember the organization a session switched to.

    Args:
        session_id: Session id (the token's ``sid`` claim)
        organization_id: Organization to use for the rest of the session
        ttl_seconds: Lifetime of the entry (defaults to the session TTL setting)
    """
    redis = await get_redis()
    await redis.setex(
        _session_key(session_id),
        ttl_seconds or settings.ORGANIZATION_SESSION_TTL_SECONDS,
        str(organization_id),
    )


async def get_session_organization(session_id: str) -> Optional[int]:
    """
    Return the organization a session switched to, if any.

    Args:
        session_id: Session id (the token's ``sid`` claim)

    Returns:
        Organization id, or None when the session never switched
    """
    redis = await get_redis()
    value = await redis.get(_session_key(session_id))
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


async def clear_session_organization(session_id: str) -> None:
    """Forget the switched organization for a session."""
    redis = await get_redis()
    await redis.delete(_session_key(session_id))
