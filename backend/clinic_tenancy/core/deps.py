"""
FastAPI dependencies for authentication and authorization.

WHY: Dependencies provide reusable authentication and authorization logic
that can be injected into route handlers, following the DRY principle
and ensuring consistent security across the API.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from clinic_tenancy.core.auth import verify_token
from clinic_tenancy.core.exceptions import (
    AuthenticationError,
    AuthenticationRequiredError,
    InsufficientPermissionsError,
    TokenExpiredError,
    TokenInvalidError,
)
from clinic_tenancy.models.user import is_admin_role, is_superadmin_role


# auto_error=False: a missing header must surface as AuthenticationRequiredError
# through our own handler rather than FastAPI's default 403.
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """
    Authenticated identity of the caller.

    Fields:
    - user_id: authenticated user
    - role: global role string
    - session_organization_id: session organization already known to the
      caller; when None, the resolver looks it up by session_id
    - legacy_organization_id: pre multi-tenant single-organization field
    - session_id: the token's session id (None for session-less tokens)

    Building a Principal never touches the session store, so routes that do
    not resolve an organization keep working when Redis is down.
    """

    user_id: int
    role: str
    session_organization_id: Optional[int] = None
    legacy_organization_id: Optional[int] = None
    session_id: Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return is_superadmin_role(self.role)

    @property
    def is_admin(self) -> bool:
        return is_admin_role(self.role)


def _optional_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Build the Principal from the bearer token.

    Also stores the principal on ``request.state.principal``.

    Args:
        request: Incoming request
        credentials: Bearer token from the Authorization header

    Returns:
        Principal for the caller

    Raises:
        AuthenticationRequiredError: If no credentials were sent
        AuthenticationError: If the token is invalid, expired or lacks user_id
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationRequiredError()

    try:
        payload = verify_token(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(
            message=str(e),
            status_code=e.status_code,
        )

    user_id = _optional_int(payload.get("user_id"))
    if not user_id:
        raise AuthenticationError(message="Invalid token: missing user_id")

    session_id = payload.get("sid")

    principal = Principal(
        user_id=user_id,
        role=str(payload.get("role") or ""),
        legacy_organization_id=_optional_int(payload.get("organization_id")),
        session_id=str(session_id) if session_id else None,
    )
    request.state.principal = principal
    return principal


async def require_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """
    Require an admin or superadmin global role.

    Raises:
        InsufficientPermissionsError: If the caller is not an admin
    """
    if not principal.is_admin:
        raise InsufficientPermissionsError(
            message="Admin privileges required",
            user_id=principal.user_id,
            user_role=principal.role,
        )
    return principal


async def require_superadmin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """
    Require a superadmin global role.

    Raises:
        InsufficientPermissionsError: If the caller is not a superadmin
    """
    if not principal.is_superadmin:
        raise InsufficientPermissionsError(
            message="Superadmin privileges required",
            user_id=principal.user_id,
            user_role=principal.role,
        )
    return principal
