"""
Library API — Store Client and Session Management
===================================================

What:  Async SQLAlchemy engine wrapper, declarative Base, and the per-request
       session dependency.
Why:   Centralizes all database connection logic in one place.
How:   Database owns the engine and session factory. It is constructed by the
       application factory, connected in the lifespan startup phase, reached by
       route dependencies through request.app.state, and disposed on shutdown.
Who:   Used by route handlers via FastAPI's dependency injection system.
When:  Engine is created at startup; sessions are created per-request.

Connection Pooling Strategy:
    PostgreSQL: pool_size / max_overflow / pool_pre_ping from Settings,
                pool_recycle=3600 to retire long-lived connections.
    SQLite:     driver defaults, with foreign key enforcement switched on for
                every new connection (SQLite leaves it off by default).
"""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from library_api.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object, which Alembic and Database.create_all()
    both read.
    """
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Store client with an explicit connect/dispose lifecycle.

    Lifecycle:
        db = Database(settings)
        await db.connect()        # builds engine + session factory
        await db.create_all()     # optional, development and tests
        async with db.session() as session: ...
        await db.dispose()        # closes pooled connections
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._engine

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    async def connect(self) -> None:
        """Create the engine and session factory. Safe to call twice."""
        if self._engine is not None:
            return

        engine_kwargs = {"echo": self.settings.log_level == "DEBUG"}
        if not self.settings.is_sqlite:
            engine_kwargs.update(
                pool_size=self.settings.db_pool_size,
                max_overflow=self.settings.db_max_overflow,
                pool_pre_ping=self.settings.db_pool_pre_ping,
                pool_recycle=3600,
            )

        self._engine = create_async_engine(self.settings.database_url, **engine_kwargs)
        if self.settings.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        # expire_on_commit=False: services commit the book write before the
        # recount and still need the loaded attributes afterwards
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine created (%s)", self._engine.url.render_as_string(hide_password=True))

    async def create_all(self) -> None:
        """Create any missing tables from the ORM metadata."""
        # Register the models with Base.metadata before creating tables
        from library_api.models import book, category  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def ping(self) -> bool:
        """Lightweight connectivity check used by /health."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    def session(self) -> AsyncSession:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._session_factory()

    async def dispose(self) -> None:
        """Gracefully closes all connections in the pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Looks up the Database attached to the app in the lifespan
        2. Yields a fresh session to the route handler
        3. On success: commits anything the handler left pending
        4. On error: rolls back and re-raises for the global error handler
        5. Always: closes the session (returns connection to pool)

    Services commit their own units of work (the book write, then each
    category recount), so the final commit here is usually a no-op.
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
