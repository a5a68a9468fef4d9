"""Finds an existing import equivalent to a new request."""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from electoral_ingest.lib.ingest.datasets import DatasetIdentity
from electoral_ingest.models.import_job import IN_PROGRESS_STATUSES, ImportJob, ImportJobStatus


@dataclass
class ExistingImport:
    """An import matching the requested dataset identity."""

    job: ImportJob
    is_in_progress: bool


def _identity_filters(identity: DatasetIdentity, source: str | None) -> list:
    """Equality filters for the identity fields that are set; unset ones match anything."""
    fields = (
        (ImportJob.dataset_year, identity.year),
        (ImportJob.region_code, identity.region),
        (ImportJob.dataset_subtype, identity.subtype),
        (ImportJob.source, source),
    )
    return [column == value for column, value in fields if value is not None]


async def find_existing_import(
    session: AsyncSession,
    dataset_type: str,
    identity: DatasetIdentity,
    *,
    source: str | None = None,
    force: bool = False,
) -> ExistingImport | None:
    """Find an in-flight or completed import of the same data.

    An in-flight import always wins, even when ``force`` is set; a completed
    import is only returned when ``force`` is not set. Among several matches
    the most recently created job is returned.

    Args:
        session: Database session.
        dataset_type: Dataset kind of the request.
        identity: Year, region and subtype of the requested data.
        source: Source label of the request.
        force: Ignore completed imports.

    Returns:
        The matching import, or None if a new job should be created.
    """
    query = select(ImportJob).where(ImportJob.type == dataset_type, *_identity_filters(identity, source))
    newest_first = (ImportJob.created_at.desc(), ImportJob.id.desc())

    in_flight = await session.execute(
        query.where(ImportJob.status.in_([str(s) for s in IN_PROGRESS_STATUSES])).order_by(*newest_first).limit(1)
    )
    job = in_flight.scalar_one_or_none()
    if job is not None:
        return ExistingImport(job=job, is_in_progress=True)

    if force:
        return None

    completed = await session.execute(
        query.where(ImportJob.status == ImportJobStatus.COMPLETED).order_by(*newest_first).limit(1)
    )
    job = completed.scalar_one_or_none()
    if job is not None:
        return ExistingImport(job=job, is_in_progress=False)
    return None
