"""Shared test fixtures."""

from collections.abc import AsyncIterator

import pytest
from litestar.testing import AsyncTestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sleep_advice_server.app import create_app
from sleep_advice_server.models.base import Base
from tests.fixtures.providers import ScriptedProvider


@pytest.fixture
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncIterator[AsyncSession]:
    """Create async session for testing."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
async def test_user(async_session: AsyncSession):
    """Create a test user."""
    from sleep_advice_server.models.user import User

    user = User(name="Test Sleeper", email="sleeper@example.com")
    async_session.add(user)
    await async_session.commit()
    await async_session.refresh(user)
    return user


@pytest.fixture
async def test_user_2(async_session: AsyncSession):
    """Create a second test user."""
    from sleep_advice_server.models.user import User

    user = User(name="Other Sleeper", email="other@example.com")
    async_session.add(user)
    await async_session.commit()
    await async_session.refresh(user)
    return user


@pytest.fixture
def provider() -> ScriptedProvider:
    """Generation provider that streams two Korean fragments."""
    return ScriptedProvider(["안녕", "하세요"])


@pytest.fixture
async def client(async_engine, provider: ScriptedProvider) -> AsyncIterator[AsyncTestClient]:
    """Test client for an app wired to the test database and scripted provider."""
    app = create_app(engine=async_engine, generation_provider=provider)
    async with AsyncTestClient(app=app) as client:
        yield client


# =============================================================================
# Sleep Data Fixtures
# =============================================================================


@pytest.fixture
async def user_with_week(async_session: AsyncSession, test_user):
    """Test user with seven consecutive nights ending today."""
    from tests.fixtures.sleep_seed import WEEK_DURATIONS, seed_nights

    records = await seed_nights(async_session, test_user.id, WEEK_DURATIONS)
    return test_user, records
