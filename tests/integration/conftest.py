"""Fixtures for driving the import engine end to end against SQLite.

Imports use a scripted source provider that writes into the real
``candidate_votes`` table, so conflicts, batches and error trails behave
exactly as they do for TSE files.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from electoral_ingest.core.background import InProcessTaskRunner
from electoral_ingest.core.config import Settings
from electoral_ingest.lib.ingest.cancellation import CancellationRegistry
from electoral_ingest.lib.ingest.datasets import DatasetIdentity, DatasetSpec
from electoral_ingest.lib.ingest.errors import RecordError, SourceError
from electoral_ingest.lib.ingest.sources import BaseSourceProvider, PreparedRecord, SourceRow
from electoral_ingest.models.candidate_vote import CANDIDATE_VOTE_KEY, CandidateVote
from electoral_ingest.services.import_service import ImportEngine

FAKE_TYPE = "fake_votes"


def vote_values(candidate: int) -> dict[str, Any]:
    return {
        "election_year": 2022,
        "election_code": 546,
        "round": 1,
        "uf": "SP",
        "municipality_code": 71072,
        "zone": 1,
        "office_code": 13,
        "candidate_number": candidate,
        "transit_vote": "N",
        "nominal_votes": candidate * 10,
    }


class ScriptedVoteSource(BaseSourceProvider):
    """Serves ``total`` numbered rows, with hooks to inject failures.

    Args:
        total: Number of rows the source reports and serves.
        invalid: Row numbers that fail mapping, with their error type.
        on_fetch: Awaited with the offset before each page is served.
        fail_at: Offset from which fetching raises a SourceError.
    """

    label = "fake://votes"

    def __init__(
        self,
        total: int,
        *,
        invalid: dict[int, str] | None = None,
        on_fetch: Callable[[int], Awaitable[None]] | None = None,
        fail_at: int | None = None,
    ) -> None:
        self.total = total
        self.invalid = invalid or {}
        self.on_fetch = on_fetch
        self.fail_at = fail_at
        self.offsets: list[int] = []
        self.closed = 0

    async def count(self) -> int:
        return self.total

    async def fetch_page(self, offset: int, limit: int) -> list[SourceRow]:
        self.offsets.append(offset)
        if self.on_fetch is not None:
            await self.on_fetch(offset)
        if self.fail_at is not None and offset >= self.fail_at:
            msg = f"source unavailable at offset {offset}"
            raise SourceError(msg)
        end = min(offset + limit, self.total)
        return [SourceRow(row_number=n + 1, values={"n": n + 1}) for n in range(offset, end)]

    def to_record(self, row: SourceRow) -> PreparedRecord:
        n = row.values["n"]
        if n in self.invalid:
            msg = f"row {n} is invalid"
            raise RecordError(msg, self.invalid[n])
        return PreparedRecord(row_number=n, values=vote_values(n), label=f"candidate {n}")

    async def close(self) -> None:
        self.closed += 1


def scripted_dataset(source: ScriptedVoteSource) -> DatasetSpec:
    return DatasetSpec(
        type=FAKE_TYPE,
        description="Scripted candidate votes",
        model=CandidateVote,
        conflict_columns=CANDIDATE_VOTE_KEY,
        normalize=dict,
        provider_factory=lambda params, settings: source,
        identity_fn=lambda params: DatasetIdentity(year=params.get("year"), region=params.get("uf")),
    )


@pytest.fixture
def registry() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture
def runner() -> InProcessTaskRunner:
    return InProcessTaskRunner()


@pytest.fixture
def make_engine(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    registry: CancellationRegistry,
    runner: InProcessTaskRunner,
) -> Callable[..., ImportEngine]:
    """Build an engine whose only dataset is served by ``source``."""

    def _make(source: ScriptedVoteSource, **kwargs: Any) -> ImportEngine:
        kwargs.setdefault("registry", registry)
        return ImportEngine(
            session_factory,
            settings,
            datasets={FAKE_TYPE: scripted_dataset(source)},
            runner=runner,
            **kwargs,
        )

    return _make


@pytest.fixture
def scripted_source() -> Callable[..., ScriptedVoteSource]:
    """Factory for scripted vote sources."""
    return ScriptedVoteSource
