"""Unit tests for the cancellation monitor."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from electoral_ingest.lib.ingest.cancellation import CancellationRegistry
from electoral_ingest.lib.ingest.datasets import DatasetIdentity
from electoral_ingest.lib.ingest.errors import ImportJobNotFoundError, JobAlreadyFinishedError
from electoral_ingest.models.import_job import ImportJob, ImportJobStatus
from electoral_ingest.services import job_store
from electoral_ingest.services.cancellation_service import CancellationMonitor


@pytest.fixture
def registry() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture
def monitor(session_factory: async_sessionmaker[AsyncSession], registry: CancellationRegistry) -> CancellationMonitor:
    return CancellationMonitor(session_factory, registry)


async def _job(session_factory: async_sessionmaker[AsyncSession], status: str = ImportJobStatus.RUNNING) -> ImportJob:
    async with session_factory() as session:
        job = await job_store.create_import_job(
            session, dataset_type="municipalities", parameters={}, identity=DatasetIdentity()
        )
        await job_store.update_active_job(session, job.id, status=status)
        await session.commit()
    return job


class TestCancellationMonitor:
    """Tests for CancellationMonitor."""

    async def test_request_cancel(
        self,
        monitor: CancellationMonitor,
        registry: CancellationRegistry,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        job = await _job(session_factory)

        await monitor.request_cancel(job.id)

        assert registry.is_cancelled(job.id)
        assert monitor.is_cancelled(job.id)
        async with session_factory() as session:
            assert await job_store.get_job_status(session, job.id) == ImportJobStatus.CANCELLED

    async def test_request_cancel_missing_job(self, monitor: CancellationMonitor) -> None:
        with pytest.raises(ImportJobNotFoundError):
            await monitor.request_cancel(uuid.uuid4())

    @pytest.mark.parametrize("status", [ImportJobStatus.COMPLETED, ImportJobStatus.FAILED])
    async def test_request_cancel_finished_job(
        self,
        monitor: CancellationMonitor,
        registry: CancellationRegistry,
        session_factory: async_sessionmaker[AsyncSession],
        status: str,
    ) -> None:
        job = await _job(session_factory, status)

        with pytest.raises(JobAlreadyFinishedError, match=f"already {status}"):
            await monitor.request_cancel(job.id)
        assert not registry.is_cancelled(job.id)

    async def test_cancelling_twice(
        self, monitor: CancellationMonitor, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        job = await _job(session_factory)
        await monitor.request_cancel(job.id)

        with pytest.raises(JobAlreadyFinishedError, match="already cancelled"):
            await monitor.request_cancel(job.id)

    async def test_check_persisted(
        self,
        monitor: CancellationMonitor,
        registry: CancellationRegistry,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        job = await _job(session_factory)
        assert await monitor.check_persisted(job.id) is False

        # Cancelled by another process: only the persisted status changed
        async with session_factory() as session:
            await job_store.mark_cancelled(session, job.id)
            await session.commit()

        assert await monitor.check_persisted(job.id) is True
        assert registry.is_cancelled(job.id)

    async def test_missing_job_counts_as_cancelled(self, monitor: CancellationMonitor) -> None:
        assert await monitor.check_persisted(uuid.uuid4()) is True

    async def test_clear(self, monitor: CancellationMonitor, registry: CancellationRegistry) -> None:
        job_id = uuid.uuid4()
        registry.request(job_id)
        monitor.clear(job_id)
        assert not monitor.is_cancelled(job_id)
