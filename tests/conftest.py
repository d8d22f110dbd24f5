# ==== SHARED TEST FIXTURES AND CONFIGURATION ==== #

"""
Shared test fixtures.

Unit tests run the billing core against in-memory fakes. Integration tests
get a fresh in-memory SQLite database per test.
"""

import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


# ==== FORCE ENVIRONMENT SETUP BEFORE ANY IMPORTS ==== #

os.environ.update({
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "LOG_LEVEL": "WARNING",
    "BILLING_GLOBAL_RATE_FALLBACK": "false",
    "BILLING_SCHEDULER_ENABLED": "false",
})

from coldstore.database import Base, get_db, register_models  # noqa: E402
from coldstore.services import billing_orchestrator  # noqa: E402


# ==== DATABASE FIXTURES ==== #


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database with all tables."""
    register_models()
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    """Session bound to the test database."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


# ==== APPLICATION FIXTURES ==== #


@pytest_asyncio.fixture
async def client(db_session):
    """HTTP client for the FastAPI app, wired to the test database."""
    from coldstore.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def clear_generation_locks():
    """No billing run lock survives a test."""
    yield
    billing_orchestrator._generation_locks.clear()
