"""
Pytest configuration and fixtures for AlertCase API tests.

This module provides shared fixtures for async testing with FastAPI:
database sessions, the HTTP test client, seeded users and teams, and
authentication headers.

Tests run against in-memory SQLite by default. Set TEST_DATABASE_URL to run
against an existing PostgreSQL, or USE_TESTCONTAINERS=1 to start one.

Source: https://fastapi.tiangolo.com/advanced/testing-database/
        https://testcontainers.com/guides/getting-started-with-testcontainers-for-python/
"""

import os
from collections.abc import AsyncGenerator, Generator

# Settings are read at import time; point them at the test database first
SQLITE_URL = "sqlite+aiosqlite:///:memory:"
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")
USE_TESTCONTAINERS = TEST_DATABASE_URL is None and os.environ.get("USE_TESTCONTAINERS") == "1"

os.environ["DATABASE_URL"] = TEST_DATABASE_URL or SQLITE_URL
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SENTRY_DSN", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from app.database import Base, configure_sqlite, create_session_factory, get_db
from app.main import app
from app.models import Team, User
from tests.fixtures.factories import create_team, create_token, create_user

# =============================================================================
# POSTGRESQL TESTCONTAINER SETUP
# =============================================================================

_postgres_container = None


def get_postgres_url() -> str:
    """Start (once) a PostgreSQL test container and return its asyncpg URL."""
    global _postgres_container
    if _postgres_container is None:
        from testcontainers.postgres import PostgresContainer

        _postgres_container = PostgresContainer(
            image="postgres:16-alpine",
            username="test",
            password="test",
            dbname="test_alertcase",
            driver="asyncpg",
        )
        _postgres_container.start()
    return _postgres_container.get_connection_url()


def stop_postgres_container() -> None:
    """Stop the PostgreSQL test container."""
    global _postgres_container
    if _postgres_container is not None:
        _postgres_container.stop()
        _postgres_container = None


# =============================================================================
# PYTEST FIXTURES - DATABASE
# =============================================================================


@pytest.fixture(scope="session")
def database_url() -> Generator[str, None, None]:
    """Database URL for the test session."""
    if TEST_DATABASE_URL:
        yield TEST_DATABASE_URL
    elif USE_TESTCONTAINERS:
        yield get_postgres_url()
    else:
        yield SQLITE_URL


@pytest_asyncio.fixture(scope="function")
async def async_engine(database_url: str):
    """Create an engine with a fresh schema for each test function."""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        configure_sqlite(engine)
    else:
        engine = create_async_engine(database_url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test.

    Uses the application's session settings (no autoflush, no expiry on
    commit), so services behave as they do in a request.
    """
    session_factory = create_session_factory(async_engine)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database dependency override.

    The override shares the test's session and commits like ``get_db`` so
    tests can inspect what a request wrote.

    Source: https://fastapi.tiangolo.com/advanced/testing-dependencies/
    """
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# PYTEST FIXTURES - USERS & TEAMS
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session: AsyncSession) -> User:
    """Administrator allowed to manage rule assignments (id 1)."""
    user = await create_user(db_session, user_id=1, username="admin", role="admin")
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def operator(db_session: AsyncSession) -> User:
    """On-call operator (id 7)."""
    user = await create_user(db_session, user_id=7, username="noc.operator", role="operator")
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def second_operator(db_session: AsyncSession) -> User:
    """Second operator (id 8), lead of the NOC team."""
    user = await create_user(db_session, user_id=8, username="noc.lead", role="operator")
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def noc_team(db_session: AsyncSession, second_operator: User) -> Team:
    """NOC team (id 3) led by the second operator."""
    team = await create_team(db_session, team_id=3, name="NOC", lead_user_id=second_operator.id)
    await db_session.commit()
    return team


# =============================================================================
# PYTEST FIXTURES - AUTHENTICATION
# =============================================================================


@pytest.fixture
def auth_headers(operator: User) -> dict:
    """Bearer headers for the operator."""
    return {"Authorization": f"Bearer {create_token(operator)}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    """Bearer headers for the administrator."""
    return {"Authorization": f"Bearer {create_token(admin_user)}"}


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_sessionfinish(session, exitstatus):
    """Clean up testcontainers after test session."""
    stop_postgres_container()
