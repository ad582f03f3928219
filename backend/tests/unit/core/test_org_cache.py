"""
Tests for the in-process organization cache.

WHY: A stale cache entry would let requests into a deactivated
organization, so expiry and eviction must be exact.
"""

from clinic_tenancy.core import org_cache as org_cache_module
from clinic_tenancy.core.org_cache import (
    OrganizationCache,
    OrganizationSnapshot,
    clear_organization_cache,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def snapshot(organization_id: int = 1, is_active: bool = True) -> OrganizationSnapshot:
    return OrganizationSnapshot(id=organization_id, name=f"Clinic {organization_id}", type="clinic", is_active=is_active)


class TestOrganizationCache:
    """Get/put/evict behaviour with an injected clock."""

    def test_get_missing_returns_none(self):
        assert OrganizationCache().get(1) is None

    def test_put_then_get(self):
        cache = OrganizationCache()
        cache.put(1, snapshot(1))
        assert cache.get(1) == snapshot(1)

    def test_entry_expires_at_ttl(self):
        """
        Entries older than the TTL read as absent.

        WHY: Bounds how long a deactivation made in another process can go unseen.
        """
        clock = FakeClock()
        cache = OrganizationCache(ttl_seconds=300, clock=clock)
        cache.put(1, snapshot(1))

        clock.now += 299.9
        assert cache.get(1) is not None

        clock.now += 0.1
        assert cache.get(1) is None
        assert len(cache) == 0

    def test_put_refreshes_timestamp(self):
        clock = FakeClock()
        cache = OrganizationCache(ttl_seconds=10, clock=clock)
        cache.put(1, snapshot(1))
        clock.now += 8
        cache.put(1, snapshot(1, is_active=False))
        clock.now += 8
        assert cache.get(1).is_active is False

    def test_evict_one(self):
        cache = OrganizationCache()
        cache.put(1, snapshot(1))
        cache.put(2, snapshot(2))
        cache.evict(1)
        assert cache.get(1) is None
        assert cache.get(2) is not None

    def test_evict_missing_is_noop(self):
        OrganizationCache().evict(42)

    def test_evict_all(self):
        cache = OrganizationCache()
        cache.put(1, snapshot(1))
        cache.put(2, snapshot(2))
        cache.evict_all()
        assert len(cache) == 0


class TestOrganizationSnapshot:
    def test_from_model_copies_fields(self):
        class Row:
            id = 5
            name = "Eastside"
            type = None
            is_active = 1

        snap = OrganizationSnapshot.from_model(Row())
        assert snap == OrganizationSnapshot(id=5, name="Eastside", type="clinic", is_active=True)


class TestClearOrganizationCache:
    """The module-level hook evicts from the process-wide instance."""

    def test_clear_one(self):
        org_cache_module.organization_cache.put(1, snapshot(1))
        org_cache_module.organization_cache.put(2, snapshot(2))

        clear_organization_cache(1)

        assert org_cache_module.organization_cache.get(1) is None
        assert org_cache_module.organization_cache.get(2) is not None

    def test_clear_all(self):
        org_cache_module.organization_cache.put(1, snapshot(1))
        clear_organization_cache()
        assert len(org_cache_module.organization_cache) == 0
