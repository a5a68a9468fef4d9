"""ASGI entry point: ``uvicorn electoral_ingest.main:create_app --factory``.

The lifespan owns the process-wide database engine and the background
runner that executes imports started over HTTP.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from electoral_ingest.core.background import task_runner
from electoral_ingest.core.config import get_settings
from electoral_ingest.core.database import dispose_engine, init_engine
from electoral_ingest.core.logging import setup_logging
from electoral_ingest.lib.ingest.cancellation import cancellation_registry
from electoral_ingest.lib.ingest.errors import ImportBatchNotFoundError, ImportJobNotFoundError

# Most specific first; ValueError covers unknown datasets, bad parameters and finished jobs
_ERROR_STATUS: dict[type[Exception], int] = {
    ImportJobNotFoundError: 404,
    ImportBatchNotFoundError: 404,
    ValueError: 400,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir, json=settings.log_json)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)
    logger.info("Electoral ingest API started")

    yield

    # Imports still running are marked failed by their own tasks as they unwind
    pending = len(task_runner.active_keys)
    if pending:
        logger.warning(f"Interrupting {pending} running import(s)")
    await task_runner.shutdown()
    cancellation_registry.reset()
    await dispose_engine()


async def _error_response(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(code for error, code in _ERROR_STATUS.items() if isinstance(exc, error))
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Build the API application.

    Returns:
        The FastAPI app with the v1 routers mounted under ``api_v1_prefix``.
    """
    settings = get_settings()

    app = FastAPI(
        title="Electoral Ingest",
        description="Batched, cancellable import jobs for TSE and IBGE electoral datasets",
        version="0.1.0",
        lifespan=lifespan,
    )
    for error in _ERROR_STATUS:
        app.add_exception_handler(error, _error_response)

    from electoral_ingest.api.router import create_router

    app.include_router(create_router(settings))
    return app
