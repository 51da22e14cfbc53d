"""
Pytest configuration and fixtures for PulseRelay cloud tests.
"""
import os
import sys

# Add package root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DEBUG"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pulserelay.database import get_session
from pulserelay.models import Base
from pulserelay.services.auth import TOKEN_TYPE_MOBILE, create_access_token


@pytest.fixture(autouse=True)
def mock_redis():
    """Mock Redis client for all tests."""
    mocks = {
        "get_overlay_token_info": AsyncMock(return_value=None),
        "cache_overlay_token": AsyncMock(),
        "invalidate_overlay_token": AsyncMock(),
        "close_redis": AsyncMock(),
    }
    with patch.multiple("pulserelay.redis_client", **mocks):
        yield mocks


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """Session for calling services directly."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client against the app, wired to the test database."""
    from pulserelay.main import app

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user_id: str = "user-1", username: str = "streamer") -> dict:
    token = create_access_token(
        user_id,
        username,
        token_type=TOKEN_TYPE_MOBILE,
        expires_delta=timedelta(days=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner_headers():
    return auth_headers()


@pytest.fixture
def headers_for():
    """Build owner auth headers for any user."""
    return auth_headers
