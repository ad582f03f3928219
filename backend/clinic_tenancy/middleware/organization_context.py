"""
Organization context resolution.

WHAT: Determines which organization a request operates against, loads and
validates it, checks the caller's right to act in it, and attaches an
OrganizationContext to ``request.state``.

HOW: Resolution is an ordered list of rules, each returning an organization
id or None. The first rule that yields an id wins:

1. organization the session switched to
2. X-Organization-ID header (malformed values yield nothing)
3. the user's default membership
4. any one of the user's memberships
5. the legacy organization field on the identity

The resolved organization is then loaded (cache first), rejected if
inactive, and finally checked with the access verifier. The inactive check
runs before the access check, so an inactive organization is reported as
inactive even to callers who have no access to it.

Downstream handlers depend on ``resolve_organization_context`` (or read
``request.state.organization_context`` after it ran) and must filter every
tenant-owned query by ``organization_context.id``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_tenancy.core.access import verify_user_organization_access
from clinic_tenancy.core.auth import get_session_organization
from clinic_tenancy.core.deps import Principal, get_current_principal
from clinic_tenancy.core.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    NoOrganizationContextError,
    OrganizationContextRequiredError,
    OrganizationContextResolutionFailedError,
    OrganizationInactiveError,
    OrganizationNotFoundError,
)
from clinic_tenancy.core.org_cache import (
    OrganizationCache,
    OrganizationSnapshot,
    get_organization_cache,
    organization_cache,
)
from clinic_tenancy.dao.membership import MembershipDAO
from clinic_tenancy.dao.organization import OrganizationDAO
from clinic_tenancy.db.session import get_db
from clinic_tenancy.middleware.request_context import get_request_context


logger = logging.getLogger(__name__)

ORGANIZATION_HEADER = "X-Organization-ID"

_INTEGER_PATTERN = re.compile(r"\+?\d+")


@dataclass(frozen=True)
class OrganizationContext:
    """
    Request-scoped organization the caller is acting in.

    Built fresh for every request and never cached; treat as read-only.
    """

    id: int
    name: str
    type: str
    is_active: bool


@dataclass(frozen=True)
class ResolutionInput:
    """Everything the resolution rules may look at."""

    principal: Principal
    header_value: Optional[str] = None


ResolutionRule = Callable[[ResolutionInput, MembershipDAO], Awaitable[Optional[int]]]

# Resolution errors that are part of the contract and pass through as-is.
_RESOLUTION_ERRORS = (
    NoOrganizationContextError,
    OrganizationNotFoundError,
    OrganizationInactiveError,
    AccessDeniedError,
)


def parse_organization_id(value: Any) -> Optional[int]:
    """
    Interpret a value as an organization id.

    Accepts positive ints and base-10 digit strings (surrounding whitespace
    allowed). Anything else, including 0 and negative numbers, means
    "not provided". There is no prefix parsing: "12abc" yields None rather
    than 12, and "-3" falls through to the next rule instead of being
    looked up.

    Returns:
        The organization id, or None
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value if value > 0 else None

    text = str(value).strip()
    if not _INTEGER_PATTERN.fullmatch(text):
        return None

    organization_id = int(text)
    return organization_id if organization_id > 0 else None


# ============================================================================
# Resolution rules (order matters, see RESOLUTION_RULES)
# ============================================================================


async def from_session(inputs: ResolutionInput, memberships: MembershipDAO) -> Optional[int]:
    """Organization the session switched to, read from the session store."""
    principal = inputs.principal
    if principal.session_organization_id is not None:
        return parse_organization_id(principal.session_organization_id)
    if not principal.session_id:
        return None
    return parse_organization_id(await get_session_organization(principal.session_id))


async def from_header(inputs: ResolutionInput, memberships: MembershipDAO) -> Optional[int]:
    """Explicit per-request override from the X-Organization-ID header."""
    return parse_organization_id(inputs.header_value)


async def from_default_membership(inputs: ResolutionInput, memberships: MembershipDAO) -> Optional[int]:
    """The user's membership flagged as default."""
    return parse_organization_id(
        await memberships.get_default_organization_id(inputs.principal.user_id)
    )


async def from_first_membership(inputs: ResolutionInput, memberships: MembershipDAO) -> Optional[int]:
    """Any membership, so accounts without a default still resolve."""
    return parse_organization_id(
        await memberships.get_first_organization_id(inputs.principal.user_id)
    )


async def from_legacy_field(inputs: ResolutionInput, memberships: MembershipDAO) -> Optional[int]:
    """Single-organization field from before memberships existed."""
    return parse_organization_id(inputs.principal.legacy_organization_id)


RESOLUTION_RULES: Sequence[ResolutionRule] = (
    from_session,
    from_header,
    from_default_membership,
    from_first_membership,
    from_legacy_field,
)


async def resolve_organization_id(
    inputs: ResolutionInput,
    memberships: MembershipDAO,
    rules: Sequence[ResolutionRule] = RESOLUTION_RULES,
) -> Optional[int]:
    """
    Run the rules in order and return the first organization id produced.

    Returns:
        Organization id, or None when every rule came up empty
    """
    for rule in rules:
        organization_id = await rule(inputs, memberships)
        if organization_id is not None:
            logger.debug(
                f"Organization {organization_id} resolved by {rule.__name__} "
                f"for user {inputs.principal.user_id}"
            )
            return organization_id
    return None


# ============================================================================
# Resolver
# ============================================================================


class OrganizationContextResolver:
    """
    Resolves and validates the organization for one request.

    Args:
        session: Database session
        cache: Organization cache (process-wide instance by default)
        rules: Resolution rules, tried in order
        access_verifier: ``(session, user_id, organization_id) -> bool`` coroutine
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[OrganizationCache] = None,
        rules: Sequence[ResolutionRule] = RESOLUTION_RULES,
        access_verifier: Callable[[AsyncSession, int, int], Awaitable[bool]] = verify_user_organization_access,
    ):
        self.session = session
        self.cache = cache if cache is not None else organization_cache
        self.rules = rules
        self.access_verifier = access_verifier

    async def load_organization(self, organization_id: int) -> OrganizationSnapshot:
        """
        Load an organization, cache first, writing directory hits through.

        Raises:
            OrganizationNotFoundError: If the directory has no such organization
        """
        cached = self.cache.get(organization_id)
        if cached is not None:
            return cached

        organization = await OrganizationDAO(self.session).get_by_id(organization_id)
        if organization is None:
            raise OrganizationNotFoundError(organization_id=organization_id)

        snapshot = OrganizationSnapshot.from_model(organization)
        self.cache.put(organization_id, snapshot)
        return snapshot

    async def resolve(
        self,
        principal: Optional[Principal],
        header_value: Optional[str] = None,
    ) -> OrganizationContext:
        """
        Resolve the organization context for a caller.

        Args:
            principal: Authenticated identity (None means unauthenticated)
            header_value: Raw X-Organization-ID header value, if sent

        Returns:
            OrganizationContext for the request

        Raises:
            AuthenticationRequiredError: No principal
            NoOrganizationContextError: No rule produced an organization id
            OrganizationNotFoundError: The organization doesn't exist
            OrganizationInactiveError: The organization is deactivated
            AccessDeniedError: The caller is not a member nor a superadmin
            OrganizationContextResolutionFailedError: Anything unexpected
        """
        if principal is None:
            raise AuthenticationRequiredError()

        organization_id: Optional[int] = None
        try:
            organization_id = await resolve_organization_id(
                ResolutionInput(principal=principal, header_value=header_value),
                MembershipDAO(self.session),
                self.rules,
            )
            if organization_id is None:
                raise NoOrganizationContextError(user_id=principal.user_id)

            organization = await self.load_organization(organization_id)

            if not organization.is_active:
                logger.warning(
                    f"User {principal.user_id} rejected: organization {organization_id} is inactive"
                )
                raise OrganizationInactiveError(organization_id=organization_id)

            has_access = await self.access_verifier(self.session, principal.user_id, organization_id)
            if not has_access:
                logger.warning(
                    f"User {principal.user_id} denied access to organization {organization_id}"
                )
                raise AccessDeniedError(organization_id=organization_id)

            return OrganizationContext(
                id=organization.id,
                name=organization.name,
                type=organization.type or "clinic",
                is_active=organization.is_active,
            )

        except _RESOLUTION_ERRORS:
            raise
        except Exception as e:
            attempted = (
                organization_id
                or principal.session_organization_id
                or principal.legacy_organization_id
            )
            request_context = get_request_context()
            logger.error(
                f"Error resolving organization context: {type(e).__name__}: {e}",
                exc_info=True,
                extra={
                    "user_id": principal.user_id,
                    "organization_id": attempted,
                    "request_id": request_context.request_id if request_context else None,
                },
            )
            raise OrganizationContextResolutionFailedError() from e


# ============================================================================
# FastAPI dependencies
# ============================================================================


async def resolve_organization_context(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    cache: OrganizationCache = Depends(get_organization_cache),
) -> OrganizationContext:
    """
    Dependency resolving the organization context for the current request.

    On success sets ``request.state.organization_context`` and
    ``request.state.has_access = True``. Every failure raises, which ends
    the request before the handler runs.

    Usage:
        @router.get("/patients")
        async def list_patients(
            org: OrganizationContext = Depends(resolve_organization_context),
        ):
            ...filter by org.id...
    """
    resolver = OrganizationContextResolver(db, cache=cache)
    context = await resolver.resolve(principal, request.headers.get(ORGANIZATION_HEADER))

    request.state.organization_context = context
    request.state.has_access = True
    return context


def require_organization_context(request: Request) -> OrganizationContext:
    """
    Dependency asserting that a context was already resolved.

    Raises:
        OrganizationContextRequiredError: If no context is attached
    """
    context = getattr(request.state, "organization_context", None)
    if context is None:
        raise OrganizationContextRequiredError()
    return context


# ============================================================================
# Scoping helpers
# ============================================================================


def organization_scope(organization_id: int) -> Dict[str, int]:
    """
    Filter mapping for tenant-scoped queries.

    Example:
        >>> await dao.get_all(**organization_scope(org.id))
    """
    return {"organization_id": organization_id}


def with_organization(data: Dict[str, Any], organization_id: int) -> Dict[str, Any]:
    """
    Return a copy of ``data`` stamped with the organization id.

    Any organization_id already present in ``data`` is overwritten, so
    client input can never pick the tenant.
    """
    return {**data, "organization_id": organization_id}
