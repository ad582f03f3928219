"""
User Data Access Object.

WHY: Users are owned by the identity service; this core only needs the
global role of a user for the superadmin bypass.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_tenancy.dao.base import BaseDAO
from clinic_tenancy.models.user import User


class UserDAO(BaseDAO[User]):
    """
    Data Access Object for User model.
    """

    def __init__(self, session: AsyncSession):
        """Initialize UserDAO with session."""
        super().__init__(User, session)

    async def get_role(self, user_id: int) -> Optional[str]:
        """
        Retrieve a user's global role.

        Args:
            user_id: User ID

        Returns:
            The role string, or None if the user doesn't exist
        """
        result = await self.session.execute(select(User.role).where(User.id == user_id).limit(1))
        return result.scalar_one_or_none()
