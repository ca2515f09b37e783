"""
Pytest configuration and shared fixtures.

This file provides common fixtures for all tests.
"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

# Settings are read at import time, so the test environment must be in place
# before anything from jwt_auth is imported
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-signing-secret-that-is-long-enough-0123456789"
os.environ["LOG_FORMAT"] = "console"

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel  # noqa: E402

import jwt_auth.models  # noqa: E402, F401  (registers every table)
from jwt_auth.core.database import get_db  # noqa: E402
from jwt_auth.main import app as main_app  # noqa: E402
from jwt_auth.models.user import Users  # noqa: E402
from jwt_auth.services.identity import get_password_hash  # noqa: E402
from jwt_auth.services.token_config import ConfigSources, TokenConfigResolver  # noqa: E402

TEST_SECRET = os.environ["JWT_SECRET"]
TEST_PASSWORD = "TestPassword123!"


class FakeClock:
    """Settable epoch-seconds clock for time-dependent tests."""

    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture(scope="function")
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite engine per test.

    A file (not :memory:) so that several sessions can hold their own
    connections, which the concurrent rotation tests rely on.
    """
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite3'}", echo=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture(scope="function")
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for each test."""
    async with session_maker() as session:
        yield session

        # Cleanup - rollback any changes made during the test
        await session.rollback()


@pytest.fixture(scope="function")
def app(db_session: AsyncSession) -> FastAPI:
    """
    Create FastAPI app with test database session.

    This overrides the database dependency to use the test session.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    main_app.dependency_overrides[get_db] = override_get_db

    yield main_app

    main_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/auth/verify")
            assert response.status_code == 401
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def resolver() -> TokenConfigResolver:
    """Resolver with only the test secret set; lifetimes fall back to defaults."""
    return TokenConfigResolver(ConfigSources(override_secret=TEST_SECRET))


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
async def test_user(db_session: AsyncSession) -> Users:
    """
    Create an active user with a known password (TEST_PASSWORD).

    Usage:
        async def test_login(test_user, client):
            assert test_user.user_id is not None
    """
    user = Users(
        username="tokenuser",
        password=get_password_hash(TEST_PASSWORD, rounds=4),
        active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user
