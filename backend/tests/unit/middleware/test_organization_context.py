"""
Organization Context Resolution Tests.

WHAT: Unit tests for the resolution rules, the resolver and the
require-context guard.

WHY: Resolution decides which tenant's data a request can touch. These
tests pin down:
- rule priority (session, header, default, first membership, legacy)
- malformed headers falling through instead of failing
- inactive organizations rejected before the access check
- unexpected failures surfacing as a generic 500 error kind
"""

import logging

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import Request

from clinic_tenancy.core.deps import Principal
from clinic_tenancy.core.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    NoOrganizationContextError,
    OrganizationContextRequiredError,
    OrganizationContextResolutionFailedError,
    OrganizationInactiveError,
    OrganizationNotFoundError,
)
from clinic_tenancy.core.org_cache import OrganizationCache, OrganizationSnapshot
from clinic_tenancy.middleware.organization_context import (
    OrganizationContext,
    OrganizationContextResolver,
    RESOLUTION_RULES,
    ResolutionInput,
    organization_scope,
    parse_organization_id,
    require_organization_context,
    resolve_organization_id,
    with_organization,
)
from clinic_tenancy.services.organization_service import OrganizationService
from clinic_tenancy.schemas.organization import OrganizationUpdate
from tests.factories import MembershipFactory, OrganizationFactory, UserFactory


def _memberships(default=None, first=None) -> MagicMock:
    dao = MagicMock()
    dao.get_default_organization_id = AsyncMock(return_value=default)
    dao.get_first_organization_id = AsyncMock(return_value=first)
    return dao


class TestParseOrganizationId:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("7", 7),
            (" 7 ", 7),
            ("+7", 7),
            (7, 7),
            ("abc", None),
            ("7abc", None),
            ("1.5", None),
            ("", None),
            ("0", None),
            (0, None),
            ("-3", None),
            (-3, None),
            (None, None),
            (True, None),
        ],
    )
    def test_values(self, value, expected):
        """
        Only whole base-10 numbers count. This is deliberately stricter than
        a prefix parse: "7abc" is not read as 7, and "-3" is not looked up
        (which would end in a 404) but falls through to the next rule.
        """
        assert parse_organization_id(value) == expected


class TestResolutionRules:
    """Rule order, evaluated without a database."""

    def test_rule_order(self):
        assert [rule.__name__ for rule in RESOLUTION_RULES] == [
            "from_session",
            "from_header",
            "from_default_membership",
            "from_first_membership",
            "from_legacy_field",
        ]

    @pytest.mark.asyncio
    async def test_session_beats_everything(self):
        principal = Principal(user_id=1, role="staff", session_organization_id=5, legacy_organization_id=9)
        result = await resolve_organization_id(
            ResolutionInput(principal, header_value="6"), _memberships(default=7, first=8)
        )
        assert result == 5

    @pytest.mark.asyncio
    async def test_session_organization_read_from_store(self, fake_redis):
        fake_redis.store["session:organization:sess-1"] = "44"
        principal = Principal(user_id=1, role="staff", session_id="sess-1")

        result = await resolve_organization_id(
            ResolutionInput(principal, header_value="6"), _memberships(default=7)
        )

        assert result == 44

    @pytest.mark.asyncio
    async def test_session_without_switch_falls_through(self, fake_redis):
        principal = Principal(user_id=1, role="staff", session_id="sess-1")
        result = await resolve_organization_id(ResolutionInput(principal), _memberships(default=7))
        assert result == 7

    @pytest.mark.asyncio
    async def test_header_beats_memberships(self):
        principal = Principal(user_id=1, role="staff")
        result = await resolve_organization_id(
            ResolutionInput(principal, header_value="6"), _memberships(default=7, first=8)
        )
        assert result == 6

    @pytest.mark.asyncio
    async def test_malformed_header_falls_through_to_default(self):
        """
        A non-numeric header yields nothing from the header rule; the
        default membership still applies.
        """
        principal = Principal(user_id=1, role="staff")
        result = await resolve_organization_id(
            ResolutionInput(principal, header_value="abc"), _memberships(default=7, first=8)
        )
        assert result == 7

    @pytest.mark.asyncio
    async def test_first_membership_when_no_default(self):
        principal = Principal(user_id=1, role="staff", legacy_organization_id=9)
        result = await resolve_organization_id(ResolutionInput(principal), _memberships(first=8))
        assert result == 8

    @pytest.mark.asyncio
    async def test_legacy_field_last(self):
        principal = Principal(user_id=1, role="staff", legacy_organization_id=9)
        result = await resolve_organization_id(ResolutionInput(principal), _memberships())
        assert result == 9

    @pytest.mark.asyncio
    async def test_nothing_resolves(self):
        principal = Principal(user_id=1, role="staff")
        assert await resolve_organization_id(ResolutionInput(principal), _memberships()) is None

    @pytest.mark.asyncio
    async def test_later_rules_not_called_after_match(self):
        memberships = _memberships(default=7, first=8)
        principal = Principal(user_id=1, role="staff")

        await resolve_organization_id(ResolutionInput(principal, header_value="6"), memberships)

        memberships.get_default_organization_id.assert_not_awaited()
        memberships.get_first_organization_id.assert_not_awaited()


class TestResolver:
    """Resolver against a real database."""

    @pytest.mark.asyncio
    async def test_missing_principal(self, db_session: AsyncSession):
        with pytest.raises(AuthenticationRequiredError):
            await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(None)

    @pytest.mark.asyncio
    async def test_session_organization_with_membership(self, db_session: AsyncSession):
        org = await OrganizationFactory.create(db_session)
        user = await UserFactory.create(db_session)
        await MembershipFactory.create(db_session, user, org)

        principal = Principal(user_id=user.id, role="staff", session_organization_id=org.id)
        context = await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(principal)

        assert context == OrganizationContext(id=org.id, name="Test Clinic", type="clinic", is_active=True)

    @pytest.mark.asyncio
    async def test_default_membership_used_without_overrides(self, db_session: AsyncSession):
        first = await OrganizationFactory.create(db_session, name="A Clinic")
        default = await OrganizationFactory.create(db_session, name="B Clinic")
        user = await UserFactory.create(db_session)
        await MembershipFactory.create(db_session, user, first)
        await MembershipFactory.create(db_session, user, default, is_default=True)

        principal = Principal(user_id=user.id, role="staff")
        context = await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(principal)

        assert context.id == default.id

    @pytest.mark.asyncio
    async def test_non_numeric_header_uses_default_membership(self, db_session: AsyncSession):
        org = await OrganizationFactory.create(db_session)
        user = await UserFactory.create(db_session)
        await MembershipFactory.create(db_session, user, org, is_default=True)

        principal = Principal(user_id=user.id, role="staff")
        context = await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(
            principal, header_value="abc"
        )

        assert context.id == org.id

    @pytest.mark.asyncio
    async def test_no_context(self, db_session: AsyncSession):
        user = await UserFactory.create(db_session)
        with pytest.raises(NoOrganizationContextError):
            await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(
                Principal(user_id=user.id, role="staff")
            )

    @pytest.mark.asyncio
    async def test_unknown_organization(self, db_session: AsyncSession):
        user = await UserFactory.create(db_session, role="superadmin")
        with pytest.raises(OrganizationNotFoundError):
            await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(
                Principal(user_id=user.id, role="superadmin"), header_value="424242"
            )

    @pytest.mark.asyncio
    async def test_non_member_is_denied(self, db_session: AsyncSession):
        org = await OrganizationFactory.create(db_session)
        user = await UserFactory.create(db_session, role="doctor")

        with pytest.raises(AccessDeniedError):
            await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(
                Principal(user_id=user.id, role="doctor"), header_value=str(org.id)
            )

    @pytest.mark.asyncio
    async def test_superadmin_without_membership_is_allowed(self, db_session: AsyncSession):
        org = await OrganizationFactory.create(db_session)
        user = await UserFactory.create(db_session, role="super_admin")

        context = await OrganizationContextResolver(db_session, cache=OrganizationCache()).resolve(
            Principal(user_id=user.id, role="super_admin"), header_value=str(org.id)
        )

        assert context.id == org.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role,member", [("staff", True), ("superadmin", False), ("doctor", False)])
    async def test_inactive_rejected_before_access(self, db_session: AsyncSession, role, member):
        """
        Inactive organizations are rejected for members, superadmins and
        strangers alike, and the check runs before the access verifier.
        """
        org = await OrganizationFactory.create(db_session, is_active=False)
        user = await UserFactory.create(db_session, role=role)
        if member:
            await MembershipFactory.create(db_session, user, org)
        verifier = AsyncMock(return_value=True)

        resolver = OrganizationContextResolver(db_session, cache=OrganizationCache(), access_verifier=verifier)
        with pytest.raises(OrganizationInactiveError):
            await resolver.resolve(Principal(user_id=user.id, role=role), header_value=str(org.id))

        verifier.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_directory_hit_is_cached(self, db_session: AsyncSession):
        org = await OrganizationFactory.create(db_session)
        user = await UserFactory.create(db_session)
        await MembershipFactory.create(db_session, user, org, is_default=True)
        cache = OrganizationCache()

        await OrganizationContextResolver(db_session, cache=cache).resolve(Principal(user_id=user.id, role="staff"))

        assert cache.get(org.id) == OrganizationSnapshot(id=org.id, name="Test Clinic", type="clinic", is_active=True)

    @pytest.mark.asyncio
    async def test_cached_organization_skips_directory(self):
        session = MagicMock(spec=AsyncSession)
        cache = OrganizationCache()
        cache.put(3, OrganizationSnapshot(id=3, name="Cached", type="lab", is_active=True))

        resolver = OrganizationContextResolver(
            session, cache=cache, access_verifier=AsyncMock(return_value=True)
        )
        context = await resolver.resolve(Principal(user_id=1, role="staff", session_organization_id=3))

        assert context.name == "Cached"
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_is_visible_within_ttl(self, db_session: AsyncSession):
        """
        After a rename through the service, the next resolution shows the
        new name even though the old one was cached moments before.
        """
        org = await OrganizationFactory.create(db_session, name="Old Name")
        user = await UserFactory.create(db_session)
        await MembershipFactory.create(db_session, user, org, is_default=True)
        cache = OrganizationCache()
        principal = Principal(user_id=user.id, role="staff")

        before = await OrganizationContextResolver(db_session, cache=cache).resolve(principal)
        await OrganizationService(db_session, cache=cache).update(org.id, OrganizationUpdate(name="New Name"))
        after = await OrganizationContextResolver(db_session, cache=cache).resolve(principal)

        assert before.name == "Old Name"
        assert after.name == "New Name"

    @pytest.mark.asyncio
    async def test_deactivation_is_immediate(self, db_session: AsyncSession):
        org = await OrganizationFactory.create(db_session)
        user = await UserFactory.create(db_session)
        await MembershipFactory.create(db_session, user, org, is_default=True)
        cache = OrganizationCache()
        principal = Principal(user_id=user.id, role="staff")

        await OrganizationContextResolver(db_session, cache=cache).resolve(principal)
        await OrganizationService(db_session, cache=cache).deactivate(org.id)

        with pytest.raises(OrganizationInactiveError):
            await OrganizationContextResolver(db_session, cache=cache).resolve(principal)

    @pytest.mark.asyncio
    async def test_deactivation_survives_concurrent_read(self, db_engine):
        """
        While a deactivation is flushed but not yet committed, another
        request still reads the active row and caches it. The commit must
        drop that entry so the next request sees the organization inactive.
        """
        sessions = async_sessionmaker(db_engine, expire_on_commit=False)
        cache = OrganizationCache()
        async with sessions() as setup:
            org = await OrganizationFactory.create(setup, name="Acme")
            root = await UserFactory.create(setup, role="superadmin")
        principal = Principal(user_id=root.id, role="superadmin")

        async with sessions() as writer, sessions() as reader:
            await OrganizationService(writer, cache=cache).deactivate(org.id)

            concurrent = await OrganizationContextResolver(reader, cache=cache).resolve(
                principal, header_value=str(org.id)
            )
            assert concurrent.is_active is True
            assert cache.get(org.id).is_active is True

            await writer.commit()

        assert cache.get(org.id) is None
        async with sessions() as later:
            with pytest.raises(OrganizationInactiveError):
                await OrganizationContextResolver(later, cache=cache).resolve(
                    principal, header_value=str(org.id)
                )

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_resolution_failure(self, caplog):
        """
        Anything that is not a resolution error is logged with the user and
        attempted organization, then surfaced as a generic 500 kind.
        """
        session = MagicMock(spec=AsyncSession)
        session.execute = AsyncMock(side_effect=RuntimeError("db exploded"))
        resolver = OrganizationContextResolver(session, cache=OrganizationCache())
        principal = Principal(user_id=11, role="staff", session_organization_id=5)

        with caplog.at_level(logging.ERROR, logger="clinic_tenancy.middleware.organization_context"):
            with pytest.raises(OrganizationContextResolutionFailedError) as exc_info:
                await resolver.resolve(principal)

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        record = next(r for r in caplog.records if "resolving organization context" in r.getMessage())
        assert record.user_id == 11
        assert record.organization_id == 5

    @pytest.mark.asyncio
    async def test_session_store_outage_becomes_resolution_failure(self, fake_redis, caplog):
        fake_redis.get.side_effect = ConnectionError("redis down")
        session = MagicMock(spec=AsyncSession)
        resolver = OrganizationContextResolver(session, cache=OrganizationCache())
        principal = Principal(user_id=11, role="staff", session_id="sess-1")

        with caplog.at_level(logging.ERROR, logger="clinic_tenancy.middleware.organization_context"):
            with pytest.raises(OrganizationContextResolutionFailedError) as exc_info:
                await resolver.resolve(principal, header_value="5")

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        record = next(r for r in caplog.records if "resolving organization context" in r.getMessage())
        assert record.user_id == 11

    @pytest.mark.asyncio
    async def test_verifier_failure_is_denial_not_error(self):
        session = MagicMock(spec=AsyncSession)
        cache = OrganizationCache()
        cache.put(5, OrganizationSnapshot(id=5, name="Clinic", type="clinic", is_active=True))
        session.execute = AsyncMock(side_effect=RuntimeError("db exploded"))

        resolver = OrganizationContextResolver(session, cache=cache)
        with pytest.raises(AccessDeniedError):
            await resolver.resolve(Principal(user_id=1, role="staff", session_organization_id=5))


class TestRequireOrganizationContext:
    def _request(self) -> Request:
        return Request({"type": "http", "headers": [], "method": "GET", "path": "/"})

    def test_passes_through_when_attached(self):
        request = self._request()
        context = OrganizationContext(id=1, name="Clinic", type="clinic", is_active=True)
        request.state.organization_context = context
        assert require_organization_context(request) is context

    def test_raises_when_missing(self):
        with pytest.raises(OrganizationContextRequiredError):
            require_organization_context(self._request())


class TestScopingHelpers:
    def test_organization_scope(self):
        assert organization_scope(4) == {"organization_id": 4}

    def test_with_organization_overrides_client_value(self):
        data = {"first_name": "Jane", "organization_id": 99}
        assert with_organization(data, 4) == {"first_name": "Jane", "organization_id": 4}
        assert data["organization_id"] == 99
