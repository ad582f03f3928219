"""
Membership Data Access Object.

WHY: The user_organizations table is read on every request (default and
first-membership resolution, access checks) and written by the
organization service. All queries against it live here.
"""

from typing import List, Optional, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_tenancy.dao.base import BaseDAO
from clinic_tenancy.models.membership import UserOrganization
from clinic_tenancy.models.organization import Organization
from clinic_tenancy.models.user import User


class MembershipDAO(BaseDAO[UserOrganization]):
    """
    Data Access Object for UserOrganization model.
    """

    def __init__(self, session: AsyncSession):
        """Initialize MembershipDAO with session."""
        super().__init__(UserOrganization, session)

    async def get_membership(self, user_id: int, organization_id: int) -> Optional[UserOrganization]:
        """
        Retrieve the membership row for a (user, organization) pair.

        Returns:
            UserOrganization if the user is a member, None otherwise
        """
        result = await self.session.execute(
            select(UserOrganization)
            .where(
                UserOrganization.user_id == user_id,
                UserOrganization.organization_id == organization_id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_default_organization_id(self, user_id: int) -> Optional[int]:
        """Return the organization id of the user's default membership, if any."""
        result = await self.session.execute(
            select(UserOrganization.organization_id)
            .where(
                UserOrganization.user_id == user_id,
                UserOrganization.is_default.is_(True),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_first_organization_id(self, user_id: int) -> Optional[int]:
        """
        Return the organization id of any one of the user's memberships.

        The earliest membership row is chosen so the result is stable.
        """
        result = await self.session.execute(
            select(UserOrganization.organization_id)
            .where(UserOrganization.user_id == user_id)
            .order_by(UserOrganization.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_user(self, user_id: int) -> List[Tuple[UserOrganization, Organization]]:
        """
        List a user's memberships joined with their organizations.

        Returns:
            (membership, organization) pairs, default first, then by organization name
        """
        result = await self.session.execute(
            select(UserOrganization, Organization)
            .join(Organization, UserOrganization.organization_id == Organization.id)
            .where(UserOrganization.user_id == user_id)
            .order_by(UserOrganization.is_default.desc(), Organization.name)
        )
        return [(membership, organization) for membership, organization in result.all()]

    async def list_members(self, organization_id: int) -> List[Tuple[UserOrganization, User]]:
        """
        List an organization's memberships joined with their users.

        Returns:
            (membership, user) pairs ordered by username
        """
        result = await self.session.execute(
            select(UserOrganization, User)
            .join(User, UserOrganization.user_id == User.id)
            .where(UserOrganization.organization_id == organization_id)
            .order_by(User.username)
        )
        return [(membership, user) for membership, user in result.all()]

    async def clear_defaults(self, user_id: int) -> None:
        """Clear the default flag on every membership of the user."""
        await self.session.execute(
            update(UserOrganization)
            .where(UserOrganization.user_id == user_id)
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )

    async def mark_default(self, user_id: int, organization_id: int) -> int:
        """
        Set the default flag on one membership.

        Returns:
            Number of rows updated (0 when the membership doesn't exist)
        """
        result = await self.session.execute(
            update(UserOrganization)
            .where(
                UserOrganization.user_id == user_id,
                UserOrganization.organization_id == organization_id,
            )
            .values(is_default=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    async def delete_membership(self, user_id: int, organization_id: int) -> bool:
        """
        Delete the membership row for a (user, organization) pair.

        Returns:
            True if a row was deleted, False if there was none
        """
        result = await self.session.execute(
            delete(UserOrganization)
            .where(
                UserOrganization.user_id == user_id,
                UserOrganization.organization_id == organization_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0
