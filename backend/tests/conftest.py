"""
Ledger API — Test Configuration (conftest.py)
==============================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── mock_db_session: Mock database session (no real DB needed)
    ├── app:            A freshly built FastAPI app (new rate limiter each time)
    ├── test_client:    HTTPX AsyncClient against `app`, no database
    ├── db_tables:      Creates the schema in the SQLite test database
    └── api_client:     HTTPX AsyncClient against `app` with the schema in place
"""

import os
import tempfile

# Override settings for testing BEFORE any ledger imports
_TEST_DB_DIR = tempfile.mkdtemp(prefix="ledger_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/ledger_test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["BCRYPT_ROUNDS"] = "4"  # Fast hashing in tests
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    `begin()` returns an async context manager, so services that open an
    explicit transaction work against it too. Pair with `db_result` to
    script what queries return.
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()

    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=None)
    transaction.__aexit__ = AsyncMock(return_value=False)  # never swallow errors
    session.begin = MagicMock(return_value=transaction)
    return session


@pytest.fixture
def db_result():
    """
    Builds what `await session.execute(...)` returns.

    Usage:
        mock_db_session.execute = AsyncMock(return_value=db_result(scalar=user))
    """
    def build(scalar=None, scalars=None, count=None):
        result = MagicMock()
        result.scalar_one_or_none.return_value = scalar
        result.scalar_one.return_value = count
        result.scalars.return_value.all.return_value = list(scalars or [])
        return result

    return build


@pytest.fixture
def sample_user():
    """An active user as the ORM would return it."""
    from ledger.models.operation import Operation  # noqa: F401
    from ledger.models.user import User

    return User(
        id=uuid4(),
        email="ada@example.com",
        password="$2b$04$notarealhashnotarealhashnotarealhashnotarealhashnot",
        first_name="Ada",
        last_name="Lovelace",
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def app():
    from ledger.main import create_app

    return create_app()


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient wired to a fresh app.

    raise_app_exceptions=False: Starlette re-raises unhandled errors after the
    500 handler has answered; the client should see the response instead.
    """
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def db_tables():
    """Creates all tables before the test and drops them afterwards."""
    from ledger.database import Base, engine
    from ledger.models.operation import Operation  # noqa: F401
    from ledger.models.user import User  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled connections belong to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(app, db_tables):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
