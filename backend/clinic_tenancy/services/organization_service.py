"""
Organization Service.

WHAT: Business logic for organizations and user memberships.

WHY: The service layer:
1. Enforces organization uniqueness (case-insensitive name, email)
2. Maintains the "at most one default membership per user" rule
3. Keeps the organization cache coherent with every state change
4. Aggregates per-organization statistics

HOW: Orchestrates OrganizationDAO and MembershipDAO inside the caller's
session. Methods flush but never commit; the request-scoped ``get_db``
dependency commits once the handler returns, so multi-step changes (the
default flip) land atomically.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_tenancy.core.exceptions import (
    OrganizationExistsError,
    OrganizationNotFoundError,
    UserAccessDeniedError,
    UserAlreadyMemberError,
)
from clinic_tenancy.core.org_cache import OrganizationCache, organization_cache
from clinic_tenancy.dao.membership import MembershipDAO
from clinic_tenancy.dao.organization import OrganizationDAO
from clinic_tenancy.models.clinical import LabOrder, Patient, Prescription, Visit
from clinic_tenancy.models.membership import UserOrganization
from clinic_tenancy.models.organization import (
    DEFAULT_ORGANIZATION_TYPE,
    DEFAULT_THEME_COLOR,
    Organization,
)
from clinic_tenancy.models.user import User
from clinic_tenancy.schemas.organization import OrganizationCreate, OrganizationUpdate


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrganizationStats:
    """Row counts for one organization."""

    total_patients: int = 0
    total_users: int = 0
    total_visits: int = 0
    total_prescriptions: int = 0
    total_lab_orders: int = 0


# (stats field, model) pairs; users are counted through their memberships.
_STATS_SOURCES = (
    ("total_patients", Patient),
    ("total_users", UserOrganization),
    ("total_visits", Visit),
    ("total_prescriptions", Prescription),
    ("total_lab_orders", LabOrder),
)


def _is_unique_violation(error: IntegrityError) -> bool:
    # PostgreSQL: "violates unique constraint"; SQLite: "UNIQUE constraint failed"
    return "unique" in str(error.orig).lower()


class OrganizationService:
    """
    Service for organization and membership operations.

    Args:
        session: Async database session of the current request
        cache: Organization cache to invalidate (process-wide instance by default)
        session_factory: Factory for the short-lived sessions used by
            get_stats (defaults to one bound to the request session's engine)
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[OrganizationCache] = None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.session = session
        self.cache = cache if cache is not None else organization_cache
        self._session_factory = session_factory
        self.organization_dao = OrganizationDAO(session)
        self.membership_dao = MembershipDAO(session)

    def _evict(self, organization_id: int) -> None:
        """
        Evict now, and again once the session commits.

        Until the commit, other sessions still read the old row and may
        write it back into the cache; the second eviction drops that entry.
        """
        self.cache.evict(organization_id)
        cache = self.cache

        def evict_committed(session) -> None:
            cache.evict(organization_id)

        event.listen(self.session.sync_session, "after_commit", evict_committed, once=True)

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    async def _ensure_unique(
        self,
        name: Optional[str],
        email: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> None:
        if name is not None and await self.organization_dao.get_by_name(name, exclude_id=exclude_id):
            raise OrganizationExistsError(
                message=f'Organization with name "{name.strip()}" already exists',
                name=name.strip(),
            )

        if email and await self.organization_dao.get_by_email(email, exclude_id=exclude_id):
            raise OrganizationExistsError(
                message=f'Organization with email "{email}" already exists',
                email=email,
            )

    async def create(self, data: OrganizationCreate) -> Organization:
        """
        Create a new, active organization.

        Name uniqueness ignores case and surrounding whitespace. The name is
        stored trimmed; type and theme color fall back to their defaults.

        Args:
            data: Organization creation data

        Returns:
            Created Organization

        Raises:
            OrganizationExistsError: If the name or email is already used
        """
        await self._ensure_unique(data.name, data.email)

        values = data.model_dump(exclude={"type", "theme_color"})
        values["name"] = data.name.strip()
        values["type"] = data.type.value if data.type else DEFAULT_ORGANIZATION_TYPE
        values["theme_color"] = data.theme_color or DEFAULT_THEME_COLOR
        values["is_active"] = True

        try:
            organization = await self.organization_dao.create(**values)
        except IntegrityError as e:
            # A concurrent create passed the check first; the unique index caught it.
            if not _is_unique_violation(e):
                raise
            raise OrganizationExistsError(
                message=f'Organization with name "{values["name"]}" already exists',
                name=values["name"],
            ) from e
        logger.info(f"Created organization {organization.id} ({organization.name})")
        return organization

    async def update(self, organization_id: int, data: OrganizationUpdate) -> Organization:
        """
        Update the fields present in ``data``.

        Args:
            organization_id: Organization to update
            data: Fields to change (unset fields are left alone)

        Returns:
            Updated Organization

        Raises:
            OrganizationNotFoundError: If the organization doesn't exist
            OrganizationExistsError: If the new name or email belongs to
                another organization
        """
        existing = await self.organization_dao.get_by_id(organization_id)
        if existing is None:
            raise OrganizationNotFoundError(organization_id=organization_id)

        values: Dict[str, Any] = data.model_dump(exclude_unset=True)
        # Non-nullable columns: an explicit null means "leave unchanged".
        for field in ("name", "type", "theme_color", "is_active"):
            if field in values and values[field] is None:
                del values[field]
        if "name" in values:
            values["name"] = values["name"].strip()
        if "type" in values:
            values["type"] = data.type.value

        await self._ensure_unique(
            values.get("name"),
            values.get("email"),
            exclude_id=organization_id,
        )

        values["updated_at"] = datetime.utcnow()
        organization = await self.organization_dao.update(organization_id, **values)

        self._evict(organization_id)
        logger.info(
            f"Updated organization {organization_id}: "
            f"{sorted(k for k in values if k != 'updated_at')}"
        )
        return organization

    async def get_by_id(self, organization_id: int) -> Optional[Organization]:
        """Return the organization, or None when it doesn't exist."""
        return await self.organization_dao.get_by_id(organization_id)

    async def _set_active(self, organization_id: int, is_active: bool) -> None:
        await self.organization_dao.update(
            organization_id,
            is_active=is_active,
            updated_at=datetime.utcnow(),
        )
        self._evict(organization_id)
        logger.info(
            f"{'Activated' if is_active else 'Deactivated'} organization {organization_id}"
        )

    async def deactivate(self, organization_id: int) -> None:
        """
        Soft-delete an organization.

        Requests resolving to it are rejected as inactive from the next
        request on, even in processes whose cache is warm.
        """
        await self._set_active(organization_id, False)

    async def activate(self, organization_id: int) -> None:
        """Reactivate a deactivated organization."""
        await self._set_active(organization_id, True)

    async def search(self, query: str, limit: int = 20) -> List[Organization]:
        """
        Case-insensitive substring search over name, email and address.

        ``%`` and ``_`` in the query act as wildcards.
        """
        return await self.organization_dao.search(query, limit=limit)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _stats_session(self) -> AsyncSession:
        if self._session_factory is not None:
            return self._session_factory()
        return async_sessionmaker(self.session.bind, expire_on_commit=False)()

    async def _count(self, model, organization_id: int) -> int:
        # One session per count: an AsyncSession can't run statements concurrently.
        async with self._stats_session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(model)
                .where(model.organization_id == organization_id)
            )
            return int(result.scalar() or 0)

    async def get_stats(self, organization_id: int) -> OrganizationStats:
        """
        Count the organization's patients, members, visits, prescriptions
        and lab orders.

        The five counts run concurrently. An organization with no rows, or
        one that doesn't exist, yields all zeros.
        """
        counts = await asyncio.gather(
            *(self._count(model, organization_id) for _, model in _STATS_SOURCES)
        )
        return OrganizationStats(
            **{field: count for (field, _), count in zip(_STATS_SOURCES, counts)}
        )

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    async def get_user_organizations(self, user_id: int) -> List[Tuple[UserOrganization, Organization]]:
        """
        List the user's memberships with their organizations.

        Returns:
            (membership, organization) pairs, default first, then by name
        """
        return await self.membership_dao.list_for_user(user_id)

    async def list_members(self, organization_id: int) -> List[Tuple[UserOrganization, User]]:
        """List an organization's members, ordered by username."""
        return await self.membership_dao.list_members(organization_id)

    async def add_user_to_organization(
        self,
        user_id: int,
        organization_id: int,
        role_id: Optional[int] = None,
        set_as_default: bool = False,
    ) -> UserOrganization:
        """
        Add a user to an organization.

        Args:
            user_id: User to add
            organization_id: Organization to join
            role_id: Optional organization-scoped role
            set_as_default: Make this the user's only default membership

        Returns:
            The new membership

        Raises:
            UserAlreadyMemberError: If the membership already exists
        """
        if await self.membership_dao.get_membership(user_id, organization_id):
            raise UserAlreadyMemberError(user_id=user_id, organization_id=organization_id)

        if set_as_default:
            await self.membership_dao.clear_defaults(user_id)

        try:
            membership = await self.membership_dao.create(
                user_id=user_id,
                organization_id=organization_id,
                role_id=role_id,
                is_default=set_as_default,
                joined_at=datetime.utcnow(),
            )
        except IntegrityError as e:
            if not _is_unique_violation(e):
                raise
            raise UserAlreadyMemberError(user_id=user_id, organization_id=organization_id) from e
        logger.info(
            f"Added user {user_id} to organization {organization_id}"
            f"{' as default' if set_as_default else ''}"
        )
        return membership

    async def remove_user_from_organization(self, user_id: int, organization_id: int) -> None:
        """Remove a membership. Removing a missing membership is a no-op."""
        removed = await self.membership_dao.delete_membership(user_id, organization_id)
        if removed:
            logger.info(f"Removed user {user_id} from organization {organization_id}")

    async def set_default_organization(self, user_id: int, organization_id: int) -> None:
        """
        Make one of the user's memberships the default.

        Raises:
            UserAccessDeniedError: If the user is not a member of the organization
        """
        if not await self.membership_dao.get_membership(user_id, organization_id):
            raise UserAccessDeniedError(user_id=user_id, organization_id=organization_id)

        await self.membership_dao.clear_defaults(user_id)
        await self.membership_dao.mark_default(user_id, organization_id)
        logger.info(f"User {user_id} default organization set to {organization_id}")
