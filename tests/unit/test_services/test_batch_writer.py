"""Unit tests for the multi-row upsert writer."""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from electoral_ingest.lib.ingest.classifier import ErrorKind, classify
from electoral_ingest.lib.ingest.datasets import CANDIDATE_VOTES, MUNICIPALITIES, DatasetIdentity
from electoral_ingest.lib.ingest.sources import PreparedRecord
from electoral_ingest.models.candidate_vote import CandidateVote
from electoral_ingest.models.import_job import ImportJob
from electoral_ingest.models.municipality import Municipality
from electoral_ingest.services import job_store
from electoral_ingest.services.batch_writer import BatchWriter


def _municipality(code: str, name: str) -> PreparedRecord:
    return PreparedRecord(
        row_number=int(code[-3:]),
        values={
            "ibge_code": code,
            "name": name,
            "uf": "RJ",
            "uf_name": "Rio de Janeiro",
            "region_name": "Sudeste",
            "mesoregion": None,
            "microregion": None,
        },
    )


def _vote(candidate: int, uf: str | None = "SP") -> PreparedRecord:
    return PreparedRecord(
        row_number=candidate,
        values={
            "election_year": 2022,
            "election_code": 546,
            "round": 1,
            "uf": uf,
            "municipality_code": 71072,
            "zone": 1,
            "office_code": 13,
            "candidate_number": candidate,
            "transit_vote": "N",
            "nominal_votes": 100,
        },
    )


@pytest.fixture
async def job(async_session: AsyncSession) -> ImportJob:
    return await job_store.create_import_job(
        async_session, dataset_type="candidate_votes", parameters={}, identity=DatasetIdentity()
    )


class TestBatchWriter:
    """Tests for BatchWriter."""

    async def test_inserts_rows(self, async_session: AsyncSession, job: ImportJob) -> None:
        writer = BatchWriter(async_session, CANDIDATE_VOTES, job.id)

        inserted = await writer.write([_vote(1301), _vote(1302)])
        await async_session.commit()

        assert inserted == 2
        votes = (await async_session.execute(select(CandidateVote))).scalars().all()
        assert {vote.candidate_number for vote in votes} == {1301, 1302}
        assert all(vote.import_job_id == job.id for vote in votes)

    async def test_existing_rows_are_skipped(self, async_session: AsyncSession, job: ImportJob) -> None:
        writer = BatchWriter(async_session, CANDIDATE_VOTES, job.id)
        await writer.write([_vote(1301)])

        inserted = await writer.write([_vote(1301), _vote(1302)])
        await async_session.commit()

        assert inserted == 1
        count = (await async_session.execute(select(func.count(CandidateVote.id)))).scalar_one()
        assert count == 2

    async def test_update_columns_refresh_existing_rows(self, async_session: AsyncSession, job: ImportJob) -> None:
        writer = BatchWriter(async_session, MUNICIPALITIES, job.id)
        await writer.write([_municipality("3303302", "Nictheroy")])

        await writer.write([_municipality("3303302", "Niterói")])
        await async_session.commit()

        names = (await async_session.execute(select(Municipality.name))).scalars().all()
        assert names == ["Niterói"]

    async def test_empty_write(self, async_session: AsyncSession, job: ImportJob) -> None:
        assert await BatchWriter(async_session, CANDIDATE_VOTES, job.id).write([]) == 0

    async def test_rejected_write_leaves_transaction_usable(self, async_session: AsyncSession, job: ImportJob) -> None:
        writer = BatchWriter(async_session, CANDIDATE_VOTES, job.id)
        await writer.write([_vote(1301)])

        with pytest.raises(IntegrityError) as exc_info:
            await writer.write([_vote(1302), _vote(1303, uf=None)])
        assert classify(exc_info.value) is ErrorKind.DATA

        assert await writer.write([_vote(1304)]) == 1
        await async_session.commit()
        numbers = (await async_session.execute(select(CandidateVote.candidate_number))).scalars().all()
        assert sorted(numbers) == [1301, 1304]
