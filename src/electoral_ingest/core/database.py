"""Process-wide async engine and session factory.

``init_engine`` is called once by the API lifespan or a CLI command, and
``dispose_engine`` on the way out. PostgreSQL (asyncpg) in production,
SQLite (aiosqlite) for local runs and tests.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

_POOL_DEFAULTS = {"pool_size": 10, "max_overflow": 5}


def get_engine() -> AsyncEngine:
    if _engine is None:
        msg = "Database engine not initialized; call init_engine() first"
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the factory import jobs and request handlers open sessions from.

    Raises:
        RuntimeError: If ``init_engine`` has not run.
    """
    if _session_factory is None:
        msg = "Session factory not initialized; call init_engine() first"
        raise RuntimeError(msg)
    return _session_factory


def configure_sqlite_engine(engine: AsyncEngine) -> None:
    """Enable foreign keys and working SAVEPOINTs on a SQLite engine.

    The batch writer wraps every write attempt in a SAVEPOINT, and job
    children rely on ``ON DELETE CASCADE``; neither works with the
    driver's default transaction handling.

    Args:
        engine: An engine bound to a ``sqlite+aiosqlite`` URL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")


def _with_search_path(options: dict[str, Any], schema: str) -> dict[str, Any]:
    connect_args = options.pop("connect_args", {})
    if not isinstance(connect_args, dict):
        msg = "connect_args must be a dict"
        raise TypeError(msg)
    # asyncpg applies server_settings on every new connection
    options["connect_args"] = {**connect_args, "server_settings": {"search_path": f"{schema},public"}}
    return options


def init_engine(database_url: str, *, schema: str | None = None, **kwargs: Any) -> AsyncEngine:
    """Create the engine and session factory shared by the process.

    Args:
        database_url: Async connection string.
        schema: PostgreSQL schema searched before ``public``.
        **kwargs: Passed through to ``create_async_engine``.

    Returns:
        The new engine.
    """
    global _engine, _session_factory  # noqa: PLW0603
    if schema is not None:
        kwargs = _with_search_path(kwargs, schema)

    sqlite = database_url.startswith("sqlite")
    if not sqlite and kwargs.get("poolclass") is not StaticPool:
        for option, value in _POOL_DEFAULTS.items():
            kwargs.setdefault(option, value)

    _engine = create_async_engine(database_url, **kwargs)
    if sqlite:
        configure_sqlite_engine(_engine)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine. Safe to call twice."""
    global _engine, _session_factory  # noqa: PLW0603
    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()
