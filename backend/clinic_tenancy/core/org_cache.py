"""
In-process organization cache.

WHAT: A small TTL map from organization id to an immutable snapshot of the
organization, used by the context resolver to skip a directory read on
most requests.

HOW: Entries are stamped with the clock value at ``put`` time and treated
as absent once older than the TTL. The cache is never updated on write,
only invalidated: every path that changes organization state calls
``clear_organization_cache`` (or ``evict`` on an injected instance).

The cache is a pure optimisation. Every caller must behave correctly when
it is always empty, and it can be swapped for a shared store by providing
another object with the same four methods.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from clinic_tenancy.core.config import settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrganizationSnapshot:
    """
    Immutable copy of the organization fields the resolver needs.

    Caching a snapshot instead of the ORM instance keeps cached values
    independent of any database session.
    """

    id: int
    name: str
    type: str
    is_active: bool

    @classmethod
    def from_model(cls, organization: Any) -> "OrganizationSnapshot":
        """Build a snapshot from an Organization row."""
        return cls(
            id=organization.id,
            name=organization.name,
            type=organization.type or "clinic",
            is_active=bool(organization.is_active),
        )


class OrganizationCache:
    """
    TTL cache keyed by organization id.

    No locking: concurrent puts for the same id are last-write-wins, and a
    stale read is bounded by the TTL.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Entry lifetime measured from put time
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[int, Tuple[OrganizationSnapshot, float]] = {}

    def get(self, organization_id: int) -> Optional[OrganizationSnapshot]:
        """
        Return the cached organization, or None if absent or expired.

        Expired entries are dropped on read.
        """
        entry = self._entries.get(organization_id)
        if entry is None:
            return None

        organization, fetched_at = entry
        if self._clock() - fetched_at >= self.ttl_seconds:
            self._entries.pop(organization_id, None)
            return None

        return organization

    def put(self, organization_id: int, organization: OrganizationSnapshot) -> None:
        """Store an organization, stamped with the current clock value."""
        self._entries[organization_id] = (organization, self._clock())

    def evict(self, organization_id: int) -> None:
        """Remove one entry (no-op if absent)."""
        if self._entries.pop(organization_id, None) is not None:
            logger.debug(f"Evicted organization {organization_id} from cache")

    def evict_all(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Process-wide default instance
organization_cache = OrganizationCache(ttl_seconds=settings.ORGANIZATION_CACHE_TTL_SECONDS)


def get_organization_cache() -> OrganizationCache:
    """
    Dependency returning the process-wide organization cache.

    Override this dependency to inject another cache implementation.
    """
    return organization_cache


def clear_organization_cache(organization_id: Optional[int] = None) -> None:
    """
    Evict one organization from the process-wide cache, or all of them.

    Any code path that changes an organization's state outside
    OrganizationService must call this before returning.

    Args:
        organization_id: Organization to evict; evicts everything when None
    """
    if organization_id is None:
        organization_cache.evict_all()
    else:
        organization_cache.evict(organization_id)
