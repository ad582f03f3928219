"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator, Dict, Optional
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from httpx import AsyncClient, ASGITransport

from clinic_tenancy.main import app
from clinic_tenancy.models.base import Base
from clinic_tenancy.db.session import get_db
from clinic_tenancy.core import auth as auth_module
from clinic_tenancy.core.org_cache import (
    OrganizationCache,
    get_organization_cache,
    organization_cache,
)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """
    Create a test database engine.

    WHY: A file-backed SQLite database (instead of :memory:) lets several
    connections see the same committed data, which organization statistics
    need since they count on separate sessions concurrently.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_cache() -> OrganizationCache:
    """Fresh organization cache, isolated from the process-wide one."""
    return OrganizationCache(ttl_seconds=300)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, test_cache: OrganizationCache) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    The database dependency yields the test session and commits after a
    successful handler, like the real one.

    Yields:
        AsyncClient: HTTP client for making test requests
    """

    async def override_get_db():
        yield db_session
        await db_session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_organization_cache] = lambda: test_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def fake_redis(monkeypatch) -> MagicMock:
    """
    In-memory stand-in for the Redis client used by the session store.

    WHY: Switching organizations stores the choice in Redis; tests must not
    need a running server.
    """
    store: Dict[str, str] = {}

    async def setex(key: str, ttl: int, value: str) -> None:
        store[key] = value

    async def get(key: str) -> Optional[str]:
        return store.get(key)

    async def delete(key: str) -> None:
        store.pop(key, None)

    redis = MagicMock()
    redis.store = store
    redis.setex = AsyncMock(side_effect=setex)
    redis.get = AsyncMock(side_effect=get)
    redis.delete = AsyncMock(side_effect=delete)

    monkeypatch.setattr(auth_module, "get_redis", AsyncMock(return_value=redis))
    return redis


@pytest.fixture(autouse=True)
def reset_redis_client():
    """
    Reset the global Redis client before each test.

    WHY: The auth module uses a global _redis_client singleton that can
    persist between tests, causing test isolation issues.
    """
    auth_module._redis_client = None
    yield
    auth_module._redis_client = None


@pytest.fixture(autouse=True)
def reset_organization_cache():
    """
    Empty the process-wide organization cache around each test.

    WHY: Services and resolvers built without an explicit cache share the
    module-level instance; entries from one test must not leak into the next.
    """
    organization_cache.evict_all()
    yield
    organization_cache.evict_all()
