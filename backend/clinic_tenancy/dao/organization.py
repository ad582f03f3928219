"""
Organization Data Access Object.

WHY: Uniqueness lookups and search for organizations are shared by the
service layer and the tests; keeping the SQL here keeps the service free
of query construction.
"""

from typing import List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_tenancy.dao.base import BaseDAO
from clinic_tenancy.models.organization import Organization


class OrganizationDAO(BaseDAO[Organization]):
    """
    Data Access Object for Organization model.
    """

    def __init__(self, session: AsyncSession):
        """Initialize OrganizationDAO with session."""
        super().__init__(Organization, session)

    async def get_by_name(self, name: str, exclude_id: Optional[int] = None) -> Optional[Organization]:
        """
        Retrieve an organization by name, ignoring case and surrounding whitespace.

        Args:
            name: Organization name to look for
            exclude_id: Organization ID to ignore (the row being updated)

        Returns:
            Organization if another row already uses the name, None otherwise
        """
        query = select(Organization).where(func.lower(Organization.name) == name.strip().lower())
        if exclude_id is not None:
            query = query.where(Organization.id != exclude_id)

        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str, exclude_id: Optional[int] = None) -> Optional[Organization]:
        """
        Retrieve an organization by exact email address.

        Args:
            email: Email address to look for
            exclude_id: Organization ID to ignore (the row being updated)

        Returns:
            Organization if another row already uses the email, None otherwise
        """
        query = select(Organization).where(Organization.email == email)
        if exclude_id is not None:
            query = query.where(Organization.id != exclude_id)

        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def search(self, query: str, limit: int = 20) -> List[Organization]:
        """
        Case-insensitive substring search over name, email and address.

        Args:
            query: Text to search for
            limit: Maximum number of results

        Returns:
            Matching organizations ordered by name
        """
        pattern = f"%{query.lower()}%"
        result = await self.session.execute(
            select(Organization)
            .where(
                or_(
                    func.lower(Organization.name).like(pattern),
                    func.lower(Organization.email).like(pattern),
                    func.lower(Organization.address).like(pattern),
                )
            )
            .order_by(Organization.name)
            .limit(limit)
        )
        return list(result.scalars().all())
