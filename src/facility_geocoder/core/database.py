"""Async engine and session lifecycle for the cache and facility tables.

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) in tests and
single-host runs. One engine per process: the API opens it in its
lifespan, each CLI command through ``database_session_factory``.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

# A backfill run holds connections for minutes at a time; pre-ping drops ones the server closed meanwhile
_POOL_DEFAULTS: dict[str, Any] = {"pool_size": 10, "max_overflow": 5, "pool_pre_ping": True}


def is_sqlite_url(database_url: str) -> bool:
    """Whether the URL targets SQLite (no connection pool, foreign keys off by default)."""
    return make_url(database_url).get_backend_name() == "sqlite"


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    # service_locations rows cascade with their facility only when SQLite enforces foreign keys
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the current session factory.

    Raises:
        RuntimeError: If the engine has not been initialized.
    """
    if _session_factory is None:
        msg = "Session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _session_factory


def init_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create and store the async engine and session factory.

    Args:
        database_url: Async connection string (PostgreSQL or SQLite).
        **kwargs: Additional arguments passed to create_async_engine;
            they override the pool defaults.

    Returns:
        The created async engine.
    """
    global _engine, _session_factory  # noqa: PLW0603
    sqlite = is_sqlite_url(database_url)
    if not sqlite:
        kwargs = {**_POOL_DEFAULTS, **kwargs}
    _engine = create_async_engine(database_url, **kwargs)
    if sqlite:
        event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Dispose of the async engine and release connections."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


@asynccontextmanager
async def database_session_factory(database_url: str) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Open the engine for a one-shot command and dispose of it on exit.

    Args:
        database_url: Async connection string.

    Yields:
        Session factory bound to the new engine.
    """
    init_engine(database_url)
    try:
        yield get_session_factory()
    finally:
        await dispose_engine()
