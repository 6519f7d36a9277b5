"""
Library API — Test Configuration (conftest.py)
================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Each test gets its own SQLite file (aiosqlite) under pytest's tmp_path,
       so tests never share state and never need a running PostgreSQL.

Fixture Hierarchy (all function-scoped):
    ├── settings:        Settings pointing at the per-test SQLite file
    ├── database:        connected Database with tables created
    ├── db_session:      AsyncSession for service-level tests
    ├── mock_db_session: AsyncMock session for error-path unit tests
    └── test_client:     HTTPX AsyncClient wired to a fresh app
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from library_api.config import Settings
from library_api.database import Database
from library_api.main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'library_test.db'}",
        log_level="WARNING",
        rate_limit_enabled=False,
        _env_file=None,
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.connect()
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession behavior.

    Usage:
        mock_db_session.scalar.side_effect = OperationalError(...)
        ok = await maintainer.recompute(mock_db_session, category_id)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest_asyncio.fixture
async def test_client(settings, database):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    ASGITransport does not run the lifespan, so the already-connected
    Database is handed to create_app directly.
    """
    app = create_app(settings=settings, database=database)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
