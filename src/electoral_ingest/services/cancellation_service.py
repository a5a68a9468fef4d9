"""Operator cancellation of running imports.

A request is recorded twice: as an in-process flag for the import loop's
fast path, and as the persisted ``cancelled`` status, which stays
authoritative across processes and restarts.
"""

import uuid

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from electoral_ingest.lib.ingest.cancellation import CancellationRegistry, cancellation_registry
from electoral_ingest.lib.ingest.errors import JobAlreadyFinishedError
from electoral_ingest.models.import_job import ImportJobStatus
from electoral_ingest.services import job_store


class CancellationMonitor:
    """Requests and observes import cancellations.

    Args:
        session_factory: Factory for short-lived sessions.
        registry: In-process flag set (the process-wide one by default).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: CancellationRegistry | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.registry = registry if registry is not None else cancellation_registry

    async def request_cancel(self, job_id: uuid.UUID) -> None:
        """Cancel a job that has not finished yet.

        Raises:
            ImportJobNotFoundError: If the job does not exist.
            JobAlreadyFinishedError: If the job already reached a terminal status.
        """
        async with self._session_factory() as session:
            job = await job_store.require_import_job(session, job_id)
            if job.is_terminal:
                msg = f"Import job {job_id} already {job.status}"
                raise JobAlreadyFinishedError(msg)

            self.registry.request(job_id)
            if not await job_store.mark_cancelled(session, job_id):
                self.registry.clear(job_id)
                status = await job_store.get_job_status(session, job_id)
                msg = f"Import job {job_id} already {status}"
                raise JobAlreadyFinishedError(msg)
            await session.commit()
        logger.bind(job_id=str(job_id)).info("Cancellation requested")

    def is_cancelled(self, job_id: uuid.UUID) -> bool:
        """Fast path: has a cancellation been requested in this process?"""
        return self.registry.is_cancelled(job_id)

    async def check_persisted(self, job_id: uuid.UUID) -> bool:
        """Authoritative check against the persisted job status.

        A job that no longer exists counts as cancelled.
        """
        async with self._session_factory() as session:
            status = await job_store.get_job_status(session, job_id)
        cancelled = status is None or status == ImportJobStatus.CANCELLED
        if cancelled:
            self.registry.request(job_id)
        return cancelled

    def clear(self, job_id: uuid.UUID) -> None:
        self.registry.clear(job_id)
