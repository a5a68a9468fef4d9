"""Shared test fixtures for the async database, sessions and settings."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import electoral_ingest.models  # noqa: F401
from electoral_ingest.core.config import Settings
from electoral_ingest.core.database import configure_sqlite_engine
from electoral_ingest.lib.ingest.cancellation import cancellation_registry
from electoral_ingest.models.base import Base


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test application settings."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        import_window_size=20,
        import_status_poll_interval=10,
        import_data_dir=str(tmp_path / "imports"),
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed async SQLite engine with every table created.

    A file (rather than ``:memory:``) lets each short-lived session of the
    import engine open its own connection to the same database.
    """
    engine = create_async_engine(settings.database_url, echo=False)
    configure_sqlite_engine(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _reset_cancellation_registry() -> None:
    cancellation_registry.reset()
