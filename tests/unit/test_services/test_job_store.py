"""Unit tests for import job persistence."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from electoral_ingest.lib.ingest.datasets import DatasetIdentity
from electoral_ingest.lib.ingest.errors import ImportJobNotFoundError
from electoral_ingest.models.import_batch import BatchStatus, RowStatus
from electoral_ingest.models.import_job import CANCELLED_MESSAGE, ImportJob, ImportJobStatus
from electoral_ingest.services import job_store


async def _create_job(session: AsyncSession, dataset_type: str = "municipalities", **kwargs: object) -> ImportJob:
    return await job_store.create_import_job(
        session,
        dataset_type=dataset_type,
        parameters={"uf": "RJ"},
        identity=DatasetIdentity(region="RJ"),
        **kwargs,  # type: ignore[arg-type]
    )


class TestCreateAndGet:
    """Tests for creating and reading jobs."""

    async def test_create_import_job(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session, source="IBGE/localidades/RJ", triggered_by="ops")

        assert job.status == ImportJobStatus.PENDING
        assert job.parameters == {"uf": "RJ"}
        assert job.region_code == "RJ"
        assert job.dataset_year is None
        assert job.processed_records == 0
        assert job.failed_records == 0
        assert job.triggered_by == "ops"
        assert job.created_at is not None

    async def test_get_missing_job(self, async_session: AsyncSession) -> None:
        assert await job_store.get_import_job(async_session, uuid.uuid4()) is None
        assert await job_store.get_job_status(async_session, uuid.uuid4()) is None

    async def test_require_missing_job(self, async_session: AsyncSession) -> None:
        with pytest.raises(ImportJobNotFoundError, match="not found"):
            await job_store.require_import_job(async_session, uuid.uuid4())

    async def test_list_import_jobs(self, async_session: AsyncSession) -> None:
        for _ in range(3):
            await _create_job(async_session)
        votes = await _create_job(async_session, dataset_type="candidate_votes")

        jobs, total = await job_store.list_import_jobs(async_session, page=1, page_size=2)
        assert total == 4
        assert len(jobs) == 2

        jobs, total = await job_store.list_import_jobs(async_session, dataset_type="candidate_votes")
        assert total == 1
        assert jobs[0].id == votes.id

        jobs, total = await job_store.list_import_jobs(async_session, status=ImportJobStatus.COMPLETED)
        assert total == 0
        assert jobs == []


class TestConditionalUpdates:
    """Status writes only apply while a job is in progress."""

    async def test_update_active_job(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)

        assert await job_store.update_active_job(async_session, job.id, status=ImportJobStatus.RUNNING, phase="go")
        await async_session.commit()
        await async_session.refresh(job)
        assert job.status == ImportJobStatus.RUNNING
        assert job.phase == "go"

    async def test_terminal_job_is_not_updated(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)
        await job_store.update_active_job(async_session, job.id, status=ImportJobStatus.COMPLETED)
        await async_session.commit()

        assert not await job_store.update_active_job(async_session, job.id, status=ImportJobStatus.FAILED)
        assert not await job_store.mark_cancelled(async_session, job.id)
        await async_session.commit()
        assert await job_store.get_job_status(async_session, job.id) == ImportJobStatus.COMPLETED

    async def test_mark_cancelled(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)

        assert await job_store.mark_cancelled(async_session, job.id)
        await async_session.commit()
        await async_session.refresh(job)

        assert job.status == ImportJobStatus.CANCELLED
        assert job.error_message == CANCELLED_MESSAGE
        assert job.completed_at is not None

    async def test_finalize_cancelled_keeps_completion_time(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)
        await job_store.mark_cancelled(async_session, job.id)
        await async_session.commit()
        await async_session.refresh(job)
        cancelled_at = job.completed_at

        assert await job_store.finalize_cancelled(async_session, job.id, processed=300, failed=2)
        await async_session.commit()
        await async_session.refresh(job)

        assert job.status == ImportJobStatus.CANCELLED
        assert job.processed_records == 300
        assert job.failed_records == 2
        assert job.completed_at == cancelled_at

    async def test_finalize_cancelled_from_running(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)
        await job_store.update_active_job(async_session, job.id, status=ImportJobStatus.RUNNING)

        assert await job_store.finalize_cancelled(async_session, job.id, processed=1, failed=0)
        await async_session.commit()
        assert await job_store.get_job_status(async_session, job.id) == ImportJobStatus.CANCELLED

    async def test_finalize_cancelled_never_overrides_failure(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)
        await job_store.update_active_job(async_session, job.id, status=ImportJobStatus.FAILED)

        assert not await job_store.finalize_cancelled(async_session, job.id, processed=1, failed=0)
        await async_session.commit()
        assert await job_store.get_job_status(async_session, job.id) == ImportJobStatus.FAILED


class TestBatches:
    """Tests for batch and batch row bookkeeping."""

    async def test_batches_and_failed_rows(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)
        first = await job_store.create_batch(
            async_session, job.id, batch_index=0, row_start=1, row_end=20, total_rows=20
        )
        second = await job_store.create_batch(
            async_session, job.id, batch_index=1, row_start=21, row_end=30, total_rows=10
        )
        job_store.add_failed_rows(
            async_session,
            first,
            [
                {"row_number": 3, "error_type": "parse_error", "error_message": "bad", "parsed_data": None},
                {"row_number": 7, "error_type": "insert_error", "error_message": "bad", "parsed_data": {"k": 7}},
            ],
        )
        await async_session.commit()

        assert first.status == BatchStatus.PROCESSING
        assert [b.id for b in await job_store.list_batches(async_session, job.id)] == [first.id, second.id]
        assert (await job_store.get_batch(async_session, second.id)).total_rows == 10  # type: ignore[union-attr]

        rows = await job_store.list_failed_rows(async_session, first.id)
        assert [row.row_number for row in rows] == [7]
        assert rows[0].status == RowStatus.FAILED
        assert rows[0].parsed_data == {"k": 7}


class TestErrorReport:
    """Tests for the error report."""

    async def test_error_report(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)
        added = job_store.add_import_errors(
            async_session,
            job.id,
            [
                {"row_number": 1, "record": "row 1", "error_type": "parse_error", "error_message": "bad int"},
                {"row_number": 2, "record": "row 2", "error_type": "parse_error", "error_message": "bad int"},
                {"row_number": 2, "record": "row 2", "error_type": "missing_field", "error_message": "no uf"},
                {"record": "SYSTEM", "error_type": "fatal_error", "error_message": "gone"},
            ],
        )
        await async_session.commit()

        report = await job_store.get_error_report(async_session, job.id)

        assert added == 4
        assert report.job.id == job.id
        assert report.summary.total_errors == 4
        assert report.summary.errors_by_type == {"parse_error": 2, "missing_field": 1, "fatal_error": 1}
        assert sorted(report.summary.affected_records) == ["SYSTEM", "row 1", "row 2"]
        assert len(report.errors) == 4

    async def test_affected_records_are_capped(self, async_session: AsyncSession) -> None:
        job = await _create_job(async_session)
        job_store.add_import_errors(
            async_session,
            job.id,
            [
                {"row_number": n, "record": f"row {n}", "error_type": "parse_error", "error_message": "bad"}
                for n in range(1, job_store.AFFECTED_RECORDS_LIMIT + 21)
            ],
        )
        await async_session.commit()

        report = await job_store.get_error_report(async_session, job.id)

        assert report.summary.total_errors == job_store.AFFECTED_RECORDS_LIMIT + 20
        assert len(report.summary.affected_records) == job_store.AFFECTED_RECORDS_LIMIT
        assert len(report.errors) == job_store.AFFECTED_RECORDS_LIMIT + 20

    async def test_error_report_missing_job(self, async_session: AsyncSession) -> None:
        with pytest.raises(ImportJobNotFoundError):
            await job_store.get_error_report(async_session, uuid.uuid4())
