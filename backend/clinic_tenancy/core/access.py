"""
Organization access verifier.

WHAT: Decides whether a user may act within an organization.

HOW:
1. Superadmins (any accepted spelling) are allowed everywhere.
2. Everyone else needs a membership row for the organization.

The lookup result is carried in an explicit AccessLookup value. Only a
successful lookup that found a reason to allow yields True; a missing row
or any lookup error yields False. Nothing raised during the lookup ever
leaves this module.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from clinic_tenancy.dao.membership import MembershipDAO
from clinic_tenancy.dao.user import UserDAO
from clinic_tenancy.models.user import is_superadmin_role


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessLookup:
    """
    Outcome of an access lookup.

    Fields:
    - granted: the lookup found a superadmin role or a membership row
    - error: the exception that interrupted the lookup, if any
    """

    granted: bool
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def allowed(self) -> bool:
        return self.succeeded and self.granted


async def lookup_user_organization_access(
    session: AsyncSession,
    user_id: int,
    organization_id: int,
) -> AccessLookup:
    """
    Look up the user's role and membership.

    Does not check that the organization exists; superadmins are granted
    access to any id.

    Returns:
        AccessLookup describing the outcome (never raises)
    """
    try:
        role = await UserDAO(session).get_role(user_id)
        if is_superadmin_role(role):
            return AccessLookup(granted=True)

        membership = await MembershipDAO(session).get_membership(user_id, organization_id)
        return AccessLookup(granted=membership is not None)
    except Exception as e:
        return AccessLookup(granted=False, error=e)


async def verify_user_organization_access(
    session: AsyncSession,
    user_id: int,
    organization_id: int,
) -> bool:
    """
    Return True if the user may act within the organization.

    Safe to call outside the context resolver. Lookup failures are logged
    and reported as False.

    Args:
        session: Database session
        user_id: User ID
        organization_id: Organization ID

    Returns:
        True for superadmins and members, False otherwise
    """
    lookup = await lookup_user_organization_access(session, user_id, organization_id)

    if not lookup.succeeded:
        logger.error(
            f"Error verifying organization access: {type(lookup.error).__name__}: {lookup.error}",
            extra={"user_id": user_id, "organization_id": organization_id},
        )

    return lookup.allowed
