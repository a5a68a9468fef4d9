"""Import orchestration: drives dataset imports from request to terminal status.

A job is driven window by window: each window of source rows is mapped to
records, written through the adaptive splitter in pre-computed chunks, and
committed together with its batch bookkeeping and the job's progress
counters. Sessions are short-lived and never held while the source is read.
"""

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from electoral_ingest.core.background import InProcessTaskRunner, task_runner
from electoral_ingest.core.config import Settings
from electoral_ingest.core.logging import job_logger
from electoral_ingest.lib.ingest.cancellation import CancellationRegistry
from electoral_ingest.lib.ingest.classifier import ErrorKind, classify, error_code
from electoral_ingest.lib.ingest.datasets import DatasetSpec, get_dataset
from electoral_ingest.lib.ingest.errors import (
    ImportBatchNotFoundError,
    RecordError,
    SourceError,
)
from electoral_ingest.lib.ingest.sources import PreparedRecord, SourceProvider, SourceRow
from electoral_ingest.lib.ingest.splitter import AdaptiveBatchSplitter, SplitResult, WriteFailure, chunk_size
from electoral_ingest.models.base import utcnow
from electoral_ingest.models.import_batch import BatchStatus, ImportBatch, RowStatus
from electoral_ingest.models.import_job import ImportJobStatus
from electoral_ingest.services import job_store
from electoral_ingest.services.batch_writer import BatchWriter
from electoral_ingest.services.cancellation_service import CancellationMonitor
from electoral_ingest.services.import_resolver import find_existing_import

WriterFactory = Callable[[AsyncSession, DatasetSpec, uuid.UUID], BatchWriter]

# Error record of a job-level failure
SYSTEM_RECORD = "SYSTEM"

_ERROR_SUMMARY_MAX = 500


@dataclass
class StartImportResult:
    """Job that will serve an import request."""

    job_id: uuid.UUID
    status: str
    is_existing: bool = False
    is_in_progress: bool = False


@dataclass
class ReprocessResult:
    batch: ImportBatch
    attempted: int
    recovered: int
    still_failed: int


@dataclass
class JobReprocessResult:
    """Outcome of reprocessing every failed batch of a job."""

    job_id: uuid.UUID
    batches: list[ReprocessResult] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return sum(result.attempted for result in self.batches)

    @property
    def recovered(self) -> int:
        return sum(result.recovered for result in self.batches)

    @property
    def still_failed(self) -> int:
        return sum(result.still_failed for result in self.batches)


@dataclass
class _Progress:
    total: int = 0
    processed: int = 0
    failed: int = 0


class _JobCancelled(Exception):
    """Cancellation observed inside the import loop."""


def _failure_error(failure: WriteFailure[PreparedRecord]) -> dict[str, Any]:
    items = failure.items
    first = items[0]
    if len(items) == 1:
        record = first.label or f"row {first.row_number}"
        details = None
    else:
        record = f"rows {first.row_number}-{items[-1].row_number}"
        details = {"row_numbers": [item.row_number for item in items]}
    return {
        "row_number": first.row_number,
        "record": record[:255],
        "error_type": _failure_type(failure),
        "error_message": failure.message,
        "error_code": failure.error_code,
        "details": details,
    }


def _failure_type(failure: WriteFailure[PreparedRecord]) -> str:
    return "capacity_error" if failure.kind is ErrorKind.CAPACITY else "insert_error"


def _failed_rows(
    data_errors: list[dict[str, Any]], failures: list[WriteFailure[PreparedRecord]]
) -> list[dict[str, Any]]:
    """Row tracking entries for a window; only write failures can be re-attempted."""
    rows = [
        {
            "row_number": error["row_number"],
            "error_type": error["error_type"],
            "error_message": error["error_message"],
            "parsed_data": None,
        }
        for error in data_errors
    ]
    for failure in failures:
        rows.extend(
            {
                "row_number": item.row_number,
                "error_type": _failure_type(failure),
                "error_message": failure.message,
                "parsed_data": item.values,
            }
            for item in failure.items
        )
    return rows


class ImportEngine:
    """Starts, runs, cancels, restarts and reprocesses import jobs.

    Args:
        session_factory: Factory for short-lived database sessions.
        settings: Application settings (window size, write ceiling, ...).
        registry: In-process cancellation flags (process-wide by default).
        datasets: Dataset registry override; the built-in kinds by default.
        writer_factory: Builds the batch writer for a window's session.
        runner: Background task runner used by ``submit_import``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        *,
        registry: CancellationRegistry | None = None,
        datasets: dict[str, DatasetSpec] | None = None,
        writer_factory: WriterFactory = BatchWriter,
        runner: InProcessTaskRunner | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.settings = settings
        self.datasets = datasets
        self.monitor = CancellationMonitor(session_factory, registry)
        self._writer_factory = writer_factory
        self._runner = runner if runner is not None else task_runner

    def dataset(self, dataset_type: str) -> DatasetSpec:
        return get_dataset(dataset_type, self.datasets)

    # -- starting -------------------------------------------------------

    async def create_job(
        self,
        dataset_type: str,
        parameters: dict[str, Any],
        *,
        force: bool = False,
        triggered_by: str | None = None,
    ) -> StartImportResult:
        """Resolve duplicates and create a pending job if none matches.

        Raises:
            UnknownDatasetError: If ``dataset_type`` is not registered.
            ValueError: If the parameters are invalid for the dataset.
        """
        spec = self.dataset(dataset_type)
        params = spec.normalize_parameters(parameters)
        identity = spec.identity(params)
        source = spec.create_provider(params, self.settings).source_label

        async with self._session_factory() as session:
            existing = await find_existing_import(session, spec.type, identity, source=source, force=force)
            if existing is not None:
                job_logger(existing.job.id).info(
                    f"Import of {spec.type} {params} served by existing job ({existing.job.status})"
                )
                return StartImportResult(
                    job_id=existing.job.id,
                    status=existing.job.status,
                    is_existing=True,
                    is_in_progress=existing.is_in_progress,
                )
            job = await job_store.create_import_job(
                session,
                dataset_type=spec.type,
                parameters=params,
                identity=identity,
                source=source,
                triggered_by=triggered_by,
            )
        job_logger(job.id).info(f"Created {spec.type} import job with {params}")
        return StartImportResult(job_id=job.id, status=job.status)

    async def start_import(
        self,
        dataset_type: str,
        parameters: dict[str, Any],
        *,
        force: bool = False,
        triggered_by: str | None = None,
    ) -> StartImportResult:
        """Start an import and drive it to a terminal status before returning.

        An equivalent in-flight import, or a completed one unless ``force`` is
        set, is returned instead of starting new work.
        """
        result = await self.create_job(dataset_type, parameters, force=force, triggered_by=triggered_by)
        if not result.is_existing:
            result.status = await self.run_job(result.job_id)
        return result

    async def submit_import(
        self,
        dataset_type: str,
        parameters: dict[str, Any],
        *,
        force: bool = False,
        triggered_by: str | None = None,
    ) -> StartImportResult:
        """Start an import in the background task runner and return immediately."""
        result = await self.create_job(dataset_type, parameters, force=force, triggered_by=triggered_by)
        if not result.is_existing:
            self._runner.submit_task(str(result.job_id), self.run_job(result.job_id))
        return result

    # -- running --------------------------------------------------------

    async def run_job(self, job_id: uuid.UUID) -> str:
        """Drive a pending job to a terminal status.

        Returns:
            The job's final status. A job that is no longer pending is left
            untouched and its current status returned.
        """
        log = job_logger(job_id)
        async with self._session_factory() as session:
            job = await job_store.require_import_job(session, job_id)
            if job.status != ImportJobStatus.PENDING:
                log.warning(f"Job is {job.status}, not pending; not running it")
                return job.status
            spec = self.dataset(job.type)
            parameters = dict(job.parameters or {})

        progress = _Progress()
        provider: SourceProvider | None = None
        try:
            provider = spec.create_provider(parameters, self.settings)
            return await self._execute(job_id, spec, provider, progress, log)
        except _JobCancelled:
            return await self._finish_cancelled(job_id, progress, log)
        except asyncio.CancelledError:
            await self._fail(job_id, "import interrupted by shutdown", None, progress, log)
            raise
        except Exception as exc:
            log.exception(f"Import failed: {exc}")
            return await self._fail(job_id, str(exc) or type(exc).__name__, exc, progress, log)
        finally:
            if provider is not None:
                await provider.close()
            self.monitor.clear(job_id)

    async def _execute(
        self,
        job_id: uuid.UUID,
        spec: DatasetSpec,
        provider: SourceProvider,
        progress: _Progress,
        log: Any,
    ) -> str:
        if not await self._update_job(job_id, started_at=utcnow(), phase="starting"):
            raise _JobCancelled

        async def on_phase(status: str, phase: str) -> None:
            log.info(phase)
            if not await self._update_job(job_id, status=status, phase=phase):
                raise _JobCancelled

        await provider.prepare(on_phase)
        if self.monitor.is_cancelled(job_id):
            raise _JobCancelled

        total = await provider.count()
        if total < 0:
            msg = f"Source reported a negative record count ({total})"
            raise SourceError(msg)
        progress.total = total
        if not await self._update_job(
            job_id,
            status=ImportJobStatus.RUNNING,
            phase=f"importing {total} records",
            total_records=total,
            source=provider.source_label,
        ):
            raise _JobCancelled

        window_size = self.settings.import_window_size
        chunk = chunk_size(
            self.settings.import_max_parameters, spec.columns_per_record, self.settings.import_safety_factor
        )
        log.info(f"Importing {total} records from {provider.source_label} (window={window_size}, chunk={chunk})")

        offset = 0
        batch_index = 0
        while offset < total:
            await self._check_cancelled(job_id, batch_index)
            limit = min(window_size, total - offset)
            rows = await provider.fetch_page(offset, limit)
            if not rows:
                msg = f"Source returned no rows at offset {offset} of {total}"
                raise SourceError(msg)
            if len(rows) > limit:
                msg = f"Source returned {len(rows)} rows for a page of {limit}"
                raise SourceError(msg)
            if self.monitor.is_cancelled(job_id):
                raise _JobCancelled

            await self._process_window(job_id, spec, provider, rows, batch_index, chunk, progress, log)
            offset += len(rows)
            batch_index += 1

        message = f"completed with {progress.failed} failed record(s)" if progress.failed else None
        if not await self._update_job(
            job_id,
            status=ImportJobStatus.COMPLETED,
            phase="completed",
            completed_at=utcnow(),
            processed_records=progress.processed,
            failed_records=progress.failed,
            error_message=message,
        ):
            raise _JobCancelled
        log.info(f"Import completed: {progress.processed} processed, {progress.failed} failed of {total}")
        return ImportJobStatus.COMPLETED

    async def _check_cancelled(self, job_id: uuid.UUID, batch_index: int) -> None:
        if self.monitor.is_cancelled(job_id):
            raise _JobCancelled
        interval = self.settings.import_status_poll_interval
        if batch_index and batch_index % interval == 0 and await self.monitor.check_persisted(job_id):
            raise _JobCancelled

    async def _process_window(
        self,
        job_id: uuid.UUID,
        spec: DatasetSpec,
        provider: SourceProvider,
        rows: list[SourceRow],
        batch_index: int,
        chunk: int,
        progress: _Progress,
        log: Any,
    ) -> None:
        records: list[PreparedRecord] = []
        data_errors: list[dict[str, Any]] = []
        for row in rows:
            try:
                records.append(provider.to_record(row))
            except RecordError as e:
                data_errors.append(
                    {
                        "row_number": row.row_number,
                        "record": f"row {row.row_number}",
                        "error_type": e.error_type,
                        "error_message": str(e),
                        "details": {"values": row.values},
                    }
                )

        interrupted = False
        async with self._session_factory() as session:
            batch = await job_store.create_batch(
                session,
                job_id,
                batch_index=batch_index,
                row_start=rows[0].row_number,
                row_end=rows[-1].row_number,
                total_rows=len(rows),
            )
            writer = self._writer_factory(session, spec, job_id)
            splitter: AdaptiveBatchSplitter[PreparedRecord] = AdaptiveBatchSplitter(writer.write, log=log)
            result: SplitResult[PreparedRecord] = SplitResult()
            for start in range(0, len(records), chunk):
                if start and self.monitor.is_cancelled(job_id):
                    interrupted = True
                    break
                result.merge(await splitter.write(records[start : start + chunk]))

            errors = data_errors + [_failure_error(failure) for failure in result.failures]
            job_store.add_import_errors(session, job_id, errors)
            if self.settings.import_track_failed_rows:
                job_store.add_failed_rows(session, batch, _failed_rows(data_errors, result.failures))

            failed = len(data_errors) + result.failed
            batch.processed_rows = result.written
            batch.inserted_rows = result.inserted
            batch.skipped_rows = result.skipped
            batch.error_count = failed
            batch.status = BatchStatus.FAILED if failed and not result.written else BatchStatus.COMPLETED
            batch.error_summary = "; ".join(error["error_message"] for error in errors)[:_ERROR_SUMMARY_MAX] or None
            batch.completed_at = utcnow()

            processed = progress.processed + result.written
            failed_total = progress.failed + failed
            active = await job_store.update_active_job(
                session,
                job_id,
                processed_records=processed,
                failed_records=failed_total,
                phase=f"window {batch_index + 1}: {processed + failed_total}/{progress.total} records",
            )
            await session.commit()

        progress.processed = processed
        progress.failed = failed_total
        log.info(
            f"Window {batch_index + 1}: {result.inserted} inserted, {result.skipped} skipped, "
            f"{failed} failed ({result.attempts} write attempt(s), {result.splits} split(s))"
        )
        if interrupted or not active:
            raise _JobCancelled

    async def _update_job(self, job_id: uuid.UUID, **values: Any) -> bool:
        async with self._session_factory() as session:
            updated = await job_store.update_active_job(session, job_id, **values)
            await session.commit()
        return updated

    async def _finish_cancelled(self, job_id: uuid.UUID, progress: _Progress, log: Any) -> str:
        async with self._session_factory() as session:
            finalized = await job_store.finalize_cancelled(
                session, job_id, processed=progress.processed, failed=progress.failed
            )
            await session.commit()
            status = ImportJobStatus.CANCELLED if finalized else await job_store.get_job_status(session, job_id)
        log.warning(f"Import cancelled: {progress.processed} processed, {progress.failed} failed")
        return status or ImportJobStatus.CANCELLED

    async def _fail(
        self,
        job_id: uuid.UUID,
        message: str,
        exc: BaseException | None,
        progress: _Progress,
        log: Any,
    ) -> str:
        async with self._session_factory() as session:
            failed = await job_store.update_active_job(
                session,
                job_id,
                status=ImportJobStatus.FAILED,
                phase="failed",
                error_message=message,
                completed_at=utcnow(),
                processed_records=progress.processed,
                failed_records=progress.failed,
            )
            if failed:
                job_store.add_import_errors(
                    session,
                    job_id,
                    [
                        {
                            "record": SYSTEM_RECORD,
                            "error_type": "fatal_error",
                            "error_message": message,
                            "error_code": error_code(exc) if exc is not None else None,
                            "details": {
                                "exception": type(exc).__name__ if exc is not None else None,
                                "kind": str(classify(exc)) if exc is not None else None,
                            },
                        }
                    ],
                )
            await session.commit()
            status = ImportJobStatus.FAILED if failed else await job_store.get_job_status(session, job_id)
        if not failed:
            log.warning(f"Failure after the job was already {status}: {message}")
        return status or ImportJobStatus.FAILED

    # -- operator actions -------------------------------------------------

    async def cancel(self, job_id: uuid.UUID) -> str:
        """Cancel a job that has not finished yet.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            JobAlreadyFinishedError: If the job already reached a terminal status.
        """
        await self.monitor.request_cancel(job_id)
        return ImportJobStatus.CANCELLED

    async def restart(self, job_id: uuid.UUID, *, background: bool = False) -> StartImportResult:
        """Start a new job with the type and parameters of an existing one.

        Only finished jobs (completed, failed or cancelled) can be restarted.
        The original job is left untouched. A completed import of the same
        data does not short-circuit the restart; an in-flight one does.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            ValueError: If the job is still pending or running.
        """
        async with self._session_factory() as session:
            job = await job_store.require_import_job(session, job_id)
        if not job.is_terminal:
            msg = f"Import job {job_id} is still {job.status}; only finished jobs can be restarted"
            raise ValueError(msg)
        self.monitor.clear(job_id)

        start = self.submit_import if background else self.start_import
        result = await start(job.type, dict(job.parameters or {}), force=True, triggered_by=job.triggered_by)
        job_logger(job_id).info(f"Restarted as job {result.job_id}")
        return result

    async def reprocess_batch(self, batch_id: uuid.UUID) -> ReprocessResult:
        """Re-attempt the tracked failed rows of a batch.

        Recovered rows move from the job's failed count to its processed
        count. The job's status is not changed.

        Raises:
            ImportBatchNotFoundError: If the batch does not exist.
            ValueError: If the batch's job is still in progress.
        """
        async with self._session_factory() as session:
            batch = await job_store.get_batch(session, batch_id)
            if batch is None:
                msg = f"Import batch {batch_id} not found"
                raise ImportBatchNotFoundError(msg)
            job = await job_store.require_import_job(session, batch.import_job_id)
            if not job.is_terminal:
                msg = f"Import job {job.id} is still {job.status}; reprocess once it has finished"
                raise ValueError(msg)

            log = job_logger(job.id)
            spec = self.dataset(job.type)
            rows = await job_store.list_failed_rows(session, batch_id)
            items = [
                PreparedRecord(row_number=row.row_number, values=dict(row.parsed_data or {})) for row in rows
            ]

            writer = self._writer_factory(session, spec, job.id)
            splitter: AdaptiveBatchSplitter[PreparedRecord] = AdaptiveBatchSplitter(writer.write, log=log)
            result = await splitter.write(items)

            still_failing = {item.row_number: failure for failure in result.failures for item in failure.items}
            now = utcnow()
            for row in rows:
                failure = still_failing.get(row.row_number)
                if failure is None:
                    row.status = RowStatus.COMPLETED
                    row.error_type = None
                    row.error_message = None
                else:
                    row.error_message = failure.message
                row.processed_at = now

            recovered = result.written
            batch.processed_rows += recovered
            batch.inserted_rows += result.inserted
            batch.skipped_rows += result.skipped
            batch.error_count = max(batch.error_count - recovered, 0)
            if batch.error_count == 0:
                batch.status = BatchStatus.COMPLETED
            job.processed_records += recovered
            job.failed_records = max(job.failed_records - recovered, 0)
            await session.commit()

        log.info(
            f"Reprocessed batch {batch.batch_index}: {recovered} of {len(items)} recovered, "
            f"{result.failed} still failing"
        )
        return ReprocessResult(batch=batch, attempted=len(items), recovered=recovered, still_failed=result.failed)

    async def reprocess_failed_batches(self, job_id: uuid.UUID) -> JobReprocessResult:
        """Reprocess every batch of a finished job that still has failed rows.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            ValueError: If the job is still in progress.
        """
        async with self._session_factory() as session:
            job = await job_store.require_import_job(session, job_id)
            if not job.is_terminal:
                msg = f"Import job {job_id} is still {job.status}; reprocess once it has finished"
                raise ValueError(msg)
            batch_ids = [batch.id for batch in await job_store.list_batches(session, job_id) if batch.error_count]

        outcome = JobReprocessResult(job_id=job_id)
        for batch_id in batch_ids:
            outcome.batches.append(await self.reprocess_batch(batch_id))
        job_logger(job_id).info(
            f"Reprocessed {len(batch_ids)} failed batch(es): {outcome.recovered} of {outcome.attempted} recovered"
        )
        return outcome

    async def delete_job(self, job_id: uuid.UUID) -> int:
        """Delete a finished job together with the records it imported.

        Returns:
            Number of imported records deleted.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            ValueError: If the job is still in progress, or its import task
                in this process has not unwound yet.
        """
        if str(job_id) in self._runner.active_keys:
            msg = f"Import job {job_id} is still winding down; retry once it has stopped"
            raise ValueError(msg)
        async with self._session_factory() as session:
            job = await job_store.require_import_job(session, job_id)
            spec = self.dataset(job.type)
            deleted = await job_store.delete_import_job(session, job, spec.model)
            await session.commit()
        self.monitor.clear(job_id)
        job_logger(job_id).info(f"Deleted {spec.type} import job and {deleted} imported record(s)")
        return deleted
