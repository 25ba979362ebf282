"""
Database session management.

This module provides:
- Async engine creation (SQLite via aiosqlite, PostgreSQL via asyncpg)
- Async session factory
- Context managers with commit / rollback handling
- Schema helpers for development and tests

SQLite engines get connection listeners that enable foreign keys and let
SQLAlchemy drive transactions itself, so SAVEPOINTs (``begin_nested``) work.

Usage:
    >>> from regulation_ingest.core.database.session import get_session_factory
    >>>
    >>> session_factory = get_session_factory()
    >>> async with session_factory() as session:
    ...     async with session.begin():
    ...         session.add(Edition(number=1, title="총칙", sort_order=1))
"""
from datetime import datetime
from typing import Any, AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from regulation_ingest.core.config.settings import settings
from regulation_ingest.core.database.base import Base
from regulation_ingest.core.logging import get_logger

logger = get_logger(__name__)

# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


# =============================================================================
# ENGINE CREATION
# =============================================================================

def get_engine_config(database_url: str) -> dict[str, Any]:
    """
    Get SQLAlchemy engine configuration for a URL.

    Args:
        database_url: Async database URL

    Returns:
        dict: Engine keyword arguments
    """
    config: dict[str, Any] = {
        "echo": settings.DATABASE_ECHO,
    }

    if database_url.startswith("sqlite"):
        # File-backed SQLite: one connection per checkout keeps writers simple
        config["poolclass"] = NullPool
        return config

    if settings.ENVIRONMENT == "test":
        config["poolclass"] = NullPool
    else:
        config.update(
            pool_pre_ping=True,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_recycle=3600,
        )
    return config


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create a new async engine.

    Args:
        database_url: Override for settings.DATABASE_URL

    Returns:
        AsyncEngine: Configured engine
    """
    url = database_url or settings.DATABASE_URL
    engine = create_async_engine(url, **get_engine_config(url))

    if url.startswith("sqlite"):
        _register_sqlite_listeners(engine)

    return engine


def _register_sqlite_listeners(engine: AsyncEngine) -> None:
    """
    Register SQLite connection listeners.

    pysqlite's own transaction handling breaks SAVEPOINT; disable it and emit
    BEGIN from SQLAlchemy instead.

    Args:
        engine: SQLite engine
    """
    @event.listens_for(engine.sync_engine, "connect")
    def receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
        """Enable foreign keys and disable driver-level transactions."""
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def receive_begin(conn: Any) -> None:
        """Emit BEGIN ourselves."""
        conn.exec_driver_sql("BEGIN")


def get_engine() -> AsyncEngine:
    """
    Get the global engine, creating it on first use.

    Returns:
        AsyncEngine: Engine bound to settings.DATABASE_URL
    """
    global _engine

    if _engine is None:
        _engine = create_engine()

    return _engine


# =============================================================================
# SESSION FACTORIES
# =============================================================================

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create a session factory bound to an engine.

    Args:
        engine: Async engine

    Returns:
        async_sessionmaker: Session factory
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the global session factory.

    Returns:
        async_sessionmaker: Session factory
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())

    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session that commits on success and rolls back on error.

    Yields:
        AsyncSession: Database session
    """
    session_factory = get_session_factory()
    session_start = datetime.now()

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.warning(
                "Session rolled back",
                error_type=type(e).__name__,
                duration_ms=round((datetime.now() - session_start).total_seconds() * 1000, 2),
            )
            raise


# =============================================================================
# DATABASE UTILITIES
# =============================================================================

async def create_all_tables(engine: AsyncEngine | None = None) -> None:
    """
    Create all tables for the registered models.

    Args:
        engine: Engine to use (defaults to the global engine)
    """
    # Import models so they register on Base.metadata
    from regulation_ingest.core.database import models  # noqa: F401

    engine = engine or get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all_tables(engine: AsyncEngine | None = None) -> None:
    """
    Drop all tables.

    WARNING: This will delete all data!
    """
    from regulation_ingest.core.database import models  # noqa: F401

    engine = engine or get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def check_database_health(engine: AsyncEngine | None = None) -> dict[str, Any]:
    """
    Check database connection health.

    Returns:
        dict: ``{"healthy": bool, "error": str | None, "latency_ms": float | None}``
    """
    result: dict[str, Any] = {"healthy": False, "error": None, "latency_ms": None}
    engine = engine or get_engine()
    start = datetime.now()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        result["error"] = str(e)
        return result

    result["healthy"] = True
    result["latency_ms"] = round((datetime.now() - start).total_seconds() * 1000, 2)
    return result


async def dispose_engine() -> None:
    """
    Dispose the global engine.

    Should be called on shutdown.
    """
    global _engine, _session_factory

    if _engine:
        await _engine.dispose()
        _engine = None

    _session_factory = None


__all__ = [
    "create_engine",
    "get_engine",
    "create_session_factory",
    "get_session_factory",
    "get_session",
    "create_all_tables",
    "drop_all_tables",
    "check_database_health",
    "dispose_engine",
]
