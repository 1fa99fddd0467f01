"""Pytest configuration and fixtures for GreyLedger tests.

Tests run against an in-memory SQLite database (aiosqlite) shared
through a StaticPool, with Redis caching switched off.  The environment
is set before the app is imported so settings pick it up.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402,F401 — register every table on Base.metadata
from app.auth.actor import Actor  # noqa: E402
from app.auth.jwt import create_access_token  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402

COMPANY_ID = "company-0001"
OTHER_COMPANY_ID = "company-0002"
USER_ID = "user-0001"


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests (rolled back afterwards)."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client whose requests each get their own committed session."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Auth Fixtures ────────────────────────────────────────────────

@pytest.fixture
def actor() -> Actor:
    return Actor(user_id=USER_ID, company_id=COMPANY_ID, name="Test User", permissions=["*"])


@pytest.fixture
def other_actor() -> Actor:
    return Actor(user_id="user-0002", company_id=OTHER_COMPANY_ID, permissions=["*"])


def make_headers(company_id: str = COMPANY_ID, permissions: list[str] | None = None) -> dict:
    token = create_access_token(
        user_id=USER_ID,
        company_id=company_id,
        permissions=["*"] if permissions is None else permissions,
        name="Test User",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> dict:
    """Authorization headers with every permission."""
    return make_headers()


@pytest.fixture
def read_only_headers() -> dict:
    return make_headers(permissions=["stock.read"])


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "integration: Integration tests")
