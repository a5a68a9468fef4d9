"""Import CLI commands: start, inspect, cancel, restart, reprocess and delete import jobs.

Imports started from the CLI run in the foreground until they reach a
terminal status. Cancelling from another shell persists the request; the
running import observes it at its next status poll.
"""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any

import typer

import_app = typer.Typer()


@asynccontextmanager
async def _database() -> AsyncIterator[Any]:
    """Initialize the engine for one command and yield its settings."""
    from electoral_ingest.core.config import get_settings
    from electoral_ingest.core.database import dispose_engine, init_engine

    settings = get_settings()
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)
    try:
        yield settings
    finally:
        await dispose_engine()


def _build_engine(settings: Any) -> Any:
    from electoral_ingest.core.database import get_session_factory
    from electoral_ingest.services.import_service import ImportEngine

    return ImportEngine(get_session_factory(), settings)


def _echo_job(job: Any) -> None:
    typer.echo(f"Import job {job.id} ({job.type})")
    typer.echo(f"  Status:     {job.status}")
    typer.echo(f"  Phase:      {job.phase or '-'}")
    typer.echo(f"  Source:     {job.source or '-'}")
    typer.echo(f"  Total:      {job.total_records or 0}")
    typer.echo(f"  Processed:  {job.processed_records or 0}")
    typer.echo(f"  Failed:     {job.failed_records or 0}")
    if job.error_message:
        typer.echo(f"  Message:    {job.error_message}")


@import_app.command("start")
def start(
    dataset_type: Annotated[str, typer.Argument(help="Dataset type (candidate_votes, municipalities)")],
    year: Annotated[int | None, typer.Option("--year", help="Election year")] = None,
    uf: Annotated[str | None, typer.Option("--uf", help="Two-letter state code")] = None,
    office_code: Annotated[int | None, typer.Option("--office", help="Office code (CD_CARGO)")] = None,
    path: Annotated[Path | None, typer.Option("--path", help="Local CSV or ZIP file", exists=True)] = None,
    url: Annotated[str | None, typer.Option("--url", help="Remote ZIP or CSV URL")] = None,
    file_name: Annotated[str | None, typer.Option("--file-name", help="Member to read from a ZIP")] = None,
    force: Annotated[bool, typer.Option("--force", help="Import even if a completed job exists")] = False,
    triggered_by: Annotated[str, typer.Option("--triggered-by", help="Recorded requester")] = "cli",
) -> None:
    """Import a dataset and wait for the job to finish."""
    parameters: dict[str, Any] = {
        "year": year,
        "uf": uf,
        "office_code": office_code,
        "path": str(path) if path is not None else None,
        "url": url,
        "file_name": file_name,
    }
    parameters = {key: value for key, value in parameters.items() if value is not None}
    asyncio.run(_start_impl(dataset_type, parameters, force, triggered_by))


async def _start_impl(dataset_type: str, parameters: dict[str, Any], force: bool, triggered_by: str) -> None:
    """Async implementation of the start command."""
    from electoral_ingest.core.database import get_session_factory
    from electoral_ingest.services import job_store

    async with _database() as settings:
        engine = _build_engine(settings)
        try:
            result = await engine.start_import(dataset_type, parameters, force=force, triggered_by=triggered_by)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

        if result.is_existing:
            state = "in progress" if result.is_in_progress else "already imported"
            typer.echo(f"Dataset {state}; use --force to import again")

        async with get_session_factory()() as session:
            job = await job_store.require_import_job(session, result.job_id)
        _echo_job(job)

    if job.status != "completed":
        raise typer.Exit(code=1)


@import_app.command("status")
def status(
    job_id: Annotated[uuid.UUID, typer.Argument(help="Import job ID")],
) -> None:
    """Show the status and counters of an import job."""
    asyncio.run(_status_impl(job_id))


async def _status_impl(job_id: uuid.UUID) -> None:
    """Async implementation of the status command."""
    from electoral_ingest.core.database import get_session_factory
    from electoral_ingest.services import job_store

    async with _database():
        async with get_session_factory()() as session:
            job = await job_store.get_import_job(session, job_id)
        if job is None:
            typer.echo(f"Error: import job {job_id} not found", err=True)
            raise typer.Exit(code=1)
        _echo_job(job)


@import_app.command("list")
def list_jobs(
    dataset_type: Annotated[str | None, typer.Option("--type", help="Filter by dataset type")] = None,
    job_status: Annotated[str | None, typer.Option("--status", help="Filter by status")] = None,
    limit: Annotated[int, typer.Option("--limit", help="Maximum jobs to show")] = 20,
) -> None:
    """List recent import jobs, newest first."""
    asyncio.run(_list_impl(dataset_type, job_status, limit))


async def _list_impl(dataset_type: str | None, job_status: str | None, limit: int) -> None:
    """Async implementation of the list command."""
    from electoral_ingest.core.database import get_session_factory
    from electoral_ingest.services import job_store

    async with _database():
        async with get_session_factory()() as session:
            jobs, total = await job_store.list_import_jobs(
                session, dataset_type=dataset_type, status=job_status, page=1, page_size=limit
            )
    typer.echo(f"{total} import job(s)")
    for job in jobs:
        typer.echo(
            f"  {job.id}  {job.type:<16} {job.status:<11} "
            f"{job.processed_records or 0}/{job.total_records or 0} processed, {job.failed_records or 0} failed"
        )


@import_app.command("cancel")
def cancel(
    job_id: Annotated[uuid.UUID, typer.Argument(help="Import job ID")],
) -> None:
    """Cancel an import job that has not finished yet."""
    asyncio.run(_cancel_impl(job_id))


async def _cancel_impl(job_id: uuid.UUID) -> None:
    """Async implementation of the cancel command."""
    async with _database() as settings:
        engine = _build_engine(settings)
        try:
            job_status = await engine.cancel(job_id)
        except (LookupError, ValueError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e
    typer.echo(f"Import job {job_id} {job_status}")


@import_app.command("restart")
def restart(
    job_id: Annotated[uuid.UUID, typer.Argument(help="Import job ID to restart")],
) -> None:
    """Run a new import with the same type and parameters as an earlier job."""
    asyncio.run(_restart_impl(job_id))


async def _restart_impl(job_id: uuid.UUID) -> None:
    """Async implementation of the restart command."""
    async with _database() as settings:
        engine = _build_engine(settings)
        try:
            result = await engine.restart(job_id)
        except (LookupError, ValueError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e
    typer.echo(f"Restarted {job_id} as {result.job_id}: {result.status}")


@import_app.command("errors")
def errors(
    job_id: Annotated[uuid.UUID, typer.Argument(help="Import job ID")],
    limit: Annotated[int, typer.Option("--limit", help="Maximum errors to print")] = 50,
) -> None:
    """Print the error report of an import job."""
    asyncio.run(_errors_impl(job_id, limit))


async def _errors_impl(job_id: uuid.UUID, limit: int) -> None:
    """Async implementation of the errors command."""
    from electoral_ingest.core.database import get_session_factory
    from electoral_ingest.lib.ingest.errors import ImportJobNotFoundError
    from electoral_ingest.services import job_store

    async with _database():
        async with get_session_factory()() as session:
            try:
                report = await job_store.get_error_report(session, job_id)
            except ImportJobNotFoundError as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e

    summary = report.summary
    typer.echo(f"Import job {job_id}: {summary.total_errors} error(s)")
    for error_type, count in sorted(summary.errors_by_type.items()):
        typer.echo(f"  {error_type}: {count}")
    for error in report.errors[:limit]:
        location = f"row {error.row_number}" if error.row_number is not None else "job"
        typer.echo(f"  [{error.error_type}] {location} {error.record or ''}: {error.error_message}")
    if len(report.errors) > limit:
        typer.echo(f"  ... {len(report.errors) - limit} more")


@import_app.command("reprocess")
def reprocess(
    batch_id: Annotated[uuid.UUID, typer.Argument(help="Import batch ID")],
) -> None:
    """Re-attempt the failed rows of a batch of a finished import."""
    asyncio.run(_reprocess_impl(batch_id))


async def _reprocess_impl(batch_id: uuid.UUID) -> None:
    """Async implementation of the reprocess command."""
    async with _database() as settings:
        engine = _build_engine(settings)
        try:
            result = await engine.reprocess_batch(batch_id)
        except (LookupError, ValueError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e
    typer.echo(
        f"Batch {batch_id}: {result.recovered} of {result.attempted} recovered, {result.still_failed} still failing"
    )


@import_app.command("reprocess-failed")
def reprocess_failed(
    job_id: Annotated[uuid.UUID, typer.Argument(help="Import job ID")],
) -> None:
    """Re-attempt the failed rows of every failed batch of a finished import."""
    asyncio.run(_reprocess_failed_impl(job_id))


async def _reprocess_failed_impl(job_id: uuid.UUID) -> None:
    """Async implementation of the reprocess-failed command."""
    async with _database() as settings:
        engine = _build_engine(settings)
        try:
            result = await engine.reprocess_failed_batches(job_id)
        except (LookupError, ValueError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e
    for batch in result.batches:
        typer.echo(
            f"  Batch {batch.batch.batch_index}: {batch.recovered} of {batch.attempted} recovered, "
            f"{batch.still_failed} still failing"
        )
    typer.echo(
        f"Import job {job_id}: {len(result.batches)} batch(es), {result.recovered} of {result.attempted} recovered, "
        f"{result.still_failed} still failing"
    )


@import_app.command("rows")
def rows(
    batch_id: Annotated[uuid.UUID, typer.Argument(help="Import batch ID")],
    row_status: Annotated[str | None, typer.Option("--status", help="Filter by row status")] = None,
) -> None:
    """List the tracked rows of an import batch."""
    asyncio.run(_rows_impl(batch_id, row_status))


async def _rows_impl(batch_id: uuid.UUID, row_status: str | None) -> None:
    """Async implementation of the rows command."""
    from electoral_ingest.core.database import get_session_factory
    from electoral_ingest.services import job_store

    async with _database():
        async with get_session_factory()() as session:
            batch = await job_store.get_batch(session, batch_id)
            if batch is None:
                typer.echo(f"Error: import batch {batch_id} not found", err=True)
                raise typer.Exit(code=1)
            batch_rows = await job_store.list_batch_rows(session, batch_id, status=row_status)
    typer.echo(f"Batch {batch_id}: {len(batch_rows)} tracked row(s)")
    for row in batch_rows:
        typer.echo(f"  row {row.row_number:<8} {row.status:<10} [{row.error_type or '-'}] {row.error_message or ''}")


@import_app.command("delete")
def delete(
    job_id: Annotated[uuid.UUID, typer.Argument(help="Import job ID")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
) -> None:
    """Delete a finished import job together with the records it imported."""
    if not yes:
        typer.confirm(f"Delete import job {job_id} and every record it imported?", abort=True)
    asyncio.run(_delete_impl(job_id))


async def _delete_impl(job_id: uuid.UUID) -> None:
    """Async implementation of the delete command."""
    async with _database() as settings:
        engine = _build_engine(settings)
        try:
            deleted = await engine.delete_job(job_id)
        except (LookupError, ValueError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e
    typer.echo(f"Deleted import job {job_id} and {deleted} imported record(s)")
