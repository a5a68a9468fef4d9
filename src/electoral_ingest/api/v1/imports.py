"""Import API endpoints.

POST /imports/{dataset_type} (start), GET /imports (list jobs),
GET /imports/{job_id} (status), DELETE /imports/{job_id},
POST /imports/{job_id}/cancel, POST /imports/{job_id}/restart,
GET /imports/{job_id}/errors (error report), GET /imports/{job_id}/batches,
POST /imports/{job_id}/reprocess-failed, GET /imports/batches/{batch_id}/rows,
POST /imports/batches/{batch_id}/reprocess.
"""

import math
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from electoral_ingest.core.dependencies import get_async_session, get_import_engine
from electoral_ingest.lib.ingest.errors import ImportBatchNotFoundError
from electoral_ingest.schemas.common import ErrorResponse, PaginationMeta, PaginationParams
from electoral_ingest.schemas.imports import (
    CancelImportResponse,
    DeleteImportResponse,
    ImportBatchResponse,
    ImportBatchRowResponse,
    ImportErrorReportResponse,
    ImportJobResponse,
    PaginatedImportJobResponse,
    ReprocessBatchResponse,
    ReprocessJobResponse,
    RestartImportResponse,
    StartImportRequest,
    StartImportResponse,
)
from electoral_ingest.services import job_store
from electoral_ingest.services.import_service import ImportEngine, ReprocessResult

router = APIRouter(prefix="/imports", tags=["imports"])

_NOT_FOUND = {404: {"model": ErrorResponse}}
_JOB_NOT_FOUND_DETAIL = "Import job not found"


def _reprocess_response(result: ReprocessResult) -> ReprocessBatchResponse:
    return ReprocessBatchResponse(
        batch=ImportBatchResponse.model_validate(result.batch),
        attempted=result.attempted,
        recovered=result.recovered,
        still_failed=result.still_failed,
    )


@router.get("", response_model=PaginatedImportJobResponse)
async def list_imports(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    pagination: Annotated[PaginationParams, Depends()],
    dataset_type: str | None = None,
    import_status: str | None = None,
) -> PaginatedImportJobResponse:
    """List import jobs with optional filters."""
    jobs, total = await job_store.list_import_jobs(
        session,
        dataset_type=dataset_type,
        status=import_status,
        page=pagination.page,
        page_size=pagination.page_size,
    )
    return PaginatedImportJobResponse(
        items=[ImportJobResponse.model_validate(j) for j in jobs],
        pagination=PaginationMeta(
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=max(1, math.ceil(total / pagination.page_size)),
        ),
    )


@router.post(
    "/batches/{batch_id}/reprocess",
    response_model=ReprocessBatchResponse,
    responses=_NOT_FOUND,
)
async def reprocess_batch(
    batch_id: uuid.UUID,
    engine: Annotated[ImportEngine, Depends(get_import_engine)],
) -> ReprocessBatchResponse:
    """Re-attempt the failed rows of a batch of a finished job."""
    return _reprocess_response(await engine.reprocess_batch(batch_id))


@router.get("/batches/{batch_id}/rows", response_model=list[ImportBatchRowResponse], responses=_NOT_FOUND)
async def list_batch_rows(
    batch_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    row_status: str | None = None,
) -> list[ImportBatchRowResponse]:
    """List the tracked rows of a batch, optionally filtered by status."""
    if await job_store.get_batch(session, batch_id) is None:
        msg = f"Import batch {batch_id} not found"
        raise ImportBatchNotFoundError(msg)
    rows = await job_store.list_batch_rows(session, batch_id, status=row_status)
    return [ImportBatchRowResponse.model_validate(r) for r in rows]


@router.post("/{dataset_type}", response_model=StartImportResponse, status_code=202)
async def start_import(
    dataset_type: str,
    request: StartImportRequest,
    engine: Annotated[ImportEngine, Depends(get_import_engine)],
) -> StartImportResponse:
    """Start importing a dataset in the background.

    When an equivalent import is already running (or completed, unless
    ``force`` is set) its job is returned with ``isExisting`` set.
    """
    result = await engine.submit_import(
        dataset_type,
        request.dataset_parameters(),
        force=request.force,
        triggered_by=request.triggered_by,
    )
    return StartImportResponse(
        job_id=result.job_id,
        status=result.status,
        is_existing=result.is_existing,
        is_in_progress=result.is_in_progress,
    )


@router.get("/{job_id}", response_model=ImportJobResponse, responses=_NOT_FOUND)
async def get_import(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ImportJobResponse:
    """Get import job status by ID."""
    job = await job_store.get_import_job(session, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_DETAIL)
    return ImportJobResponse.model_validate(job)


@router.post("/{job_id}/cancel", response_model=CancelImportResponse, responses=_NOT_FOUND)
async def cancel_import(
    job_id: uuid.UUID,
    engine: Annotated[ImportEngine, Depends(get_import_engine)],
) -> CancelImportResponse:
    """Cancel a running import; 400 if it already finished."""
    job_status = await engine.cancel(job_id)
    return CancelImportResponse(job_id=job_id, status=job_status)


@router.post("/{job_id}/restart", response_model=RestartImportResponse, status_code=202, responses=_NOT_FOUND)
async def restart_import(
    job_id: uuid.UUID,
    engine: Annotated[ImportEngine, Depends(get_import_engine)],
) -> RestartImportResponse:
    """Start a new job with the same type and parameters as a finished ``job_id``; 400 while it runs."""
    result = await engine.restart(job_id, background=True)
    return RestartImportResponse(
        original_job_id=job_id,
        new_job_id=result.job_id,
        status=result.status,
        is_existing=result.is_existing,
    )


@router.delete("/{job_id}", response_model=DeleteImportResponse, responses=_NOT_FOUND)
async def delete_import(
    job_id: uuid.UUID,
    engine: Annotated[ImportEngine, Depends(get_import_engine)],
) -> DeleteImportResponse:
    """Delete a finished import job and the records it imported; 400 while it runs."""
    deleted = await engine.delete_job(job_id)
    return DeleteImportResponse(job_id=job_id, deleted_records=deleted)


@router.post("/{job_id}/reprocess-failed", response_model=ReprocessJobResponse, responses=_NOT_FOUND)
async def reprocess_failed_batches(
    job_id: uuid.UUID,
    engine: Annotated[ImportEngine, Depends(get_import_engine)],
) -> ReprocessJobResponse:
    """Re-attempt the failed rows of every failed batch of a finished job."""
    result = await engine.reprocess_failed_batches(job_id)
    return ReprocessJobResponse(
        job_id=job_id,
        batches=[_reprocess_response(batch) for batch in result.batches],
        attempted=result.attempted,
        recovered=result.recovered,
        still_failed=result.still_failed,
    )


@router.get("/{job_id}/errors", response_model=ImportErrorReportResponse, responses=_NOT_FOUND)
async def get_import_errors(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ImportErrorReportResponse:
    """Get the error report for an import job."""
    return await job_store.get_error_report(session, job_id)


@router.get("/{job_id}/batches", response_model=list[ImportBatchResponse], responses=_NOT_FOUND)
async def list_import_batches(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> list[ImportBatchResponse]:
    """List the batches of an import job in window order."""
    await job_store.require_import_job(session, job_id)
    batches = await job_store.list_batches(session, job_id)
    return [ImportBatchResponse.model_validate(b) for b in batches]
