"""Persistence of import jobs, batches, batch rows and errors.

Status writes are conditional: a job in a terminal status is never moved
again, so whichever of "finish" and "cancel" lands first wins.
"""

import uuid
from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from electoral_ingest.lib.ingest.datasets import DatasetIdentity
from electoral_ingest.lib.ingest.errors import ImportJobNotFoundError
from electoral_ingest.models.base import utcnow
from electoral_ingest.models.import_batch import BatchStatus, ImportBatch, ImportBatchRow, RowStatus
from electoral_ingest.models.import_error import ImportErrorRecord
from electoral_ingest.models.import_job import (
    CANCELLED_MESSAGE,
    IN_PROGRESS_STATUSES,
    ImportJob,
    ImportJobStatus,
)
from electoral_ingest.schemas.imports import (
    ImportErrorReportResponse,
    ImportErrorResponse,
    ImportErrorSummary,
    ImportJobResponse,
)

# Distinct affected records listed in an error report summary
AFFECTED_RECORDS_LIMIT = 100


async def create_import_job(
    session: AsyncSession,
    *,
    dataset_type: str,
    parameters: dict[str, Any],
    identity: DatasetIdentity,
    source: str | None = None,
    triggered_by: str | None = None,
) -> ImportJob:
    """Create a new pending import job.

    Args:
        session: Database session.
        dataset_type: Dataset kind to import.
        parameters: Normalized dataset parameters.
        identity: Dataset identity derived from the parameters.
        source: Human-readable source label.
        triggered_by: Operator or system that requested the import.

    Returns:
        The created ImportJob.
    """
    job = ImportJob(
        type=dataset_type,
        status=ImportJobStatus.PENDING,
        parameters=parameters,
        source=source,
        dataset_year=identity.year,
        region_code=identity.region,
        dataset_subtype=identity.subtype,
        triggered_by=triggered_by,
    )
    session.add(job)
    await session.commit()
    await session.refresh(job)
    return job


async def get_import_job(session: AsyncSession, job_id: uuid.UUID) -> ImportJob | None:
    """Get an import job by ID.

    Args:
        session: Database session.
        job_id: The import job ID.

    Returns:
        The ImportJob or None if not found.
    """
    result = await session.execute(select(ImportJob).where(ImportJob.id == job_id))
    return result.scalar_one_or_none()


async def require_import_job(session: AsyncSession, job_id: uuid.UUID) -> ImportJob:
    """Get an import job by ID or raise.

    Raises:
        ImportJobNotFoundError: If the job does not exist.
    """
    job = await get_import_job(session, job_id)
    if job is None:
        msg = f"Import job {job_id} not found"
        raise ImportJobNotFoundError(msg)
    return job


async def get_job_status(session: AsyncSession, job_id: uuid.UUID) -> str | None:
    """Read the persisted status of a job, bypassing the identity map."""
    result = await session.execute(select(ImportJob.status).where(ImportJob.id == job_id))
    return result.scalar_one_or_none()


async def list_import_jobs(
    session: AsyncSession,
    *,
    dataset_type: str | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ImportJob], int]:
    """List import jobs with optional filters, newest first.

    Args:
        session: Database session.
        dataset_type: Filter by dataset type.
        status: Filter by status.
        page: Page number.
        page_size: Items per page.

    Returns:
        Tuple of (jobs, total count).
    """
    query = select(ImportJob)
    count_query = select(func.count(ImportJob.id))

    if dataset_type:
        query = query.where(ImportJob.type == dataset_type)
        count_query = count_query.where(ImportJob.type == dataset_type)
    if status:
        query = query.where(ImportJob.status == status)
        count_query = count_query.where(ImportJob.status == status)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(ImportJob.created_at.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    jobs = list(result.scalars().all())

    return jobs, total


async def update_active_job(session: AsyncSession, job_id: uuid.UUID, **values: Any) -> bool:
    """Update a job only while it is still in progress.

    Does not commit.

    Returns:
        True if the job was in progress and got updated.
    """
    stmt = (
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status.in_([str(s) for s in IN_PROGRESS_STATUSES]))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def mark_cancelled(session: AsyncSession, job_id: uuid.UUID) -> bool:
    """Persist a cancellation request. Does not commit.

    Returns:
        False if the job had already reached a terminal status.
    """
    return await update_active_job(
        session,
        job_id,
        status=ImportJobStatus.CANCELLED,
        error_message=CANCELLED_MESSAGE,
        completed_at=utcnow(),
    )


async def finalize_cancelled(session: AsyncSession, job_id: uuid.UUID, *, processed: int, failed: int) -> bool:
    """Record the final partial counts of a cancelled job. Does not commit.

    Also moves a still-running job to ``cancelled`` when the cancellation was
    only ever seen in-process.
    """
    allowed = [str(s) for s in IN_PROGRESS_STATUSES] + [ImportJobStatus.CANCELLED.value]
    stmt = (
        update(ImportJob)
        .where(ImportJob.id == job_id, ImportJob.status.in_(allowed))
        .values(
            status=ImportJobStatus.CANCELLED,
            processed_records=processed,
            failed_records=failed,
            error_message=CANCELLED_MESSAGE,
            completed_at=func.coalesce(ImportJob.completed_at, utcnow()),
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


def add_import_errors(session: AsyncSession, job_id: uuid.UUID, errors: Iterable[dict[str, Any]]) -> int:
    """Append error records to a job. Does not commit.

    Returns:
        Number of errors added.
    """
    records = [ImportErrorRecord(import_job_id=job_id, **error) for error in errors]
    session.add_all(records)
    return len(records)


async def create_batch(
    session: AsyncSession,
    job_id: uuid.UUID,
    *,
    batch_index: int,
    row_start: int | None,
    row_end: int | None,
    total_rows: int,
) -> ImportBatch:
    """Create a ``processing`` batch for one window. Does not commit."""
    batch = ImportBatch(
        import_job_id=job_id,
        batch_index=batch_index,
        status=BatchStatus.PROCESSING,
        row_start=row_start,
        row_end=row_end,
        total_rows=total_rows,
        started_at=utcnow(),
    )
    session.add(batch)
    await session.flush()
    return batch


def add_failed_rows(session: AsyncSession, batch: ImportBatch, rows: Iterable[dict[str, Any]]) -> None:
    """Track failed records of a batch so it can be reprocessed later."""
    now = utcnow()
    session.add_all(
        ImportBatchRow(batch_id=batch.id, status=RowStatus.FAILED, processed_at=now, **row) for row in rows
    )


async def get_batch(session: AsyncSession, batch_id: uuid.UUID) -> ImportBatch | None:
    result = await session.execute(select(ImportBatch).where(ImportBatch.id == batch_id))
    return result.scalar_one_or_none()


async def list_batches(session: AsyncSession, job_id: uuid.UUID) -> list[ImportBatch]:
    """List the batches of a job in window order."""
    result = await session.execute(
        select(ImportBatch).where(ImportBatch.import_job_id == job_id).order_by(ImportBatch.batch_index)
    )
    return list(result.scalars().all())


async def list_failed_rows(session: AsyncSession, batch_id: uuid.UUID) -> list[ImportBatchRow]:
    """List the tracked rows of a batch that still hold a failed record."""
    result = await session.execute(
        select(ImportBatchRow)
        .where(
            ImportBatchRow.batch_id == batch_id,
            ImportBatchRow.status != RowStatus.COMPLETED,
            ImportBatchRow.parsed_data.is_not(None),
        )
        .order_by(ImportBatchRow.row_number)
    )
    return list(result.scalars().all())


async def list_batch_rows(
    session: AsyncSession, batch_id: uuid.UUID, *, status: str | None = None
) -> list[ImportBatchRow]:
    """List the tracked rows of a batch in row order, optionally by status."""
    query = select(ImportBatchRow).where(ImportBatchRow.batch_id == batch_id)
    if status:
        query = query.where(ImportBatchRow.status == status)
    result = await session.execute(query.order_by(ImportBatchRow.row_number))
    return list(result.scalars().all())


async def delete_import_job(session: AsyncSession, job: ImportJob, data_model: type[Any]) -> int:
    """Delete a finished job, the records it imported and its bookkeeping.

    Batches, batch rows and errors go with the job through ``ON DELETE
    CASCADE``. Does not commit.

    Args:
        session: Database session.
        job: The job to delete.
        data_model: Target table model of the job's dataset.

    Returns:
        Number of imported records deleted.

    Raises:
        ValueError: If the job is still in progress.
    """
    if not job.is_terminal:
        msg = f"Import job {job.id} is still {job.status}; cancel it before deleting"
        raise ValueError(msg)
    data = await session.execute(
        delete(data_model)
        .where(data_model.import_job_id == job.id)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(ImportJob).where(ImportJob.id == job.id).execution_options(synchronize_session=False)
    )
    return data.rowcount or 0


async def list_import_errors(
    session: AsyncSession, job_id: uuid.UUID, *, limit: int | None = None
) -> list[ImportErrorRecord]:
    query = (
        select(ImportErrorRecord)
        .where(ImportErrorRecord.import_job_id == job_id)
        .order_by(ImportErrorRecord.created_at, ImportErrorRecord.row_number)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_error_report(session: AsyncSession, job_id: uuid.UUID) -> ImportErrorReportResponse:
    """Build the error report of a job.

    Args:
        session: Database session.
        job_id: The import job ID.

    Returns:
        The job, a summary (total, counts per type, distinct affected
        records) and every captured error.

    Raises:
        ImportJobNotFoundError: If the job does not exist.
    """
    job = await require_import_job(session, job_id)
    errors = await list_import_errors(session, job_id)

    by_type_result = await session.execute(
        select(ImportErrorRecord.error_type, func.count(ImportErrorRecord.id))
        .where(ImportErrorRecord.import_job_id == job_id)
        .group_by(ImportErrorRecord.error_type)
    )
    errors_by_type = {error_type: count for error_type, count in by_type_result.all()}

    affected: list[str] = []
    for error in errors:
        if error.record and error.record not in affected:
            affected.append(error.record)
            if len(affected) >= AFFECTED_RECORDS_LIMIT:
                break

    return ImportErrorReportResponse(
        job=ImportJobResponse.model_validate(job),
        summary=ImportErrorSummary(
            total_errors=sum(errors_by_type.values()),
            errors_by_type=errors_by_type,
            affected_records=affected,
        ),
        errors=[ImportErrorResponse.model_validate(error) for error in errors],
    )
