"""FastAPI dependency injection for database sessions and the import engine."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from electoral_ingest.core.config import Settings, get_settings
from electoral_ingest.core.database import get_session_factory
from electoral_ingest.services.import_service import ImportEngine


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def get_import_engine(settings: Annotated[Settings, Depends(get_settings)]) -> ImportEngine:
    """Return an import engine bound to the application's session factory.

    Engines are cheap; cancellation flags and background tasks live in
    process-wide singletons shared by every instance.
    """
    return ImportEngine(get_session_factory(), settings)
