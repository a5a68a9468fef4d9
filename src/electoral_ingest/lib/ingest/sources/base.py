"""Source provider contract.

A provider hands the orchestrator a dataset in pages. It is created per job
from the job's parameters, prepared once (download/extract), then asked for
its total record count and for successive ``(offset, limit)`` pages.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# Called with a job status ("downloading", "extracting") and a phase description
PhaseCallback = Callable[[str, str], Awaitable[None]]


@dataclass
class SourceRow:
    """One raw row read from a source.

    Attributes:
        row_number: 1-based position of the row in the source.
        values: Raw field values keyed by source column name.
    """

    row_number: int
    values: dict[str, Any]


@dataclass
class PreparedRecord:
    """A source row mapped to store column values, ready to be written."""

    row_number: int
    values: dict[str, Any]
    label: str | None = None


@runtime_checkable
class SourceProvider(Protocol):
    """Paged access to one dataset."""

    @property
    def source_label(self) -> str:
        """Human-readable origin of the data (file name or API endpoint)."""
        ...

    async def prepare(self, on_phase: PhaseCallback) -> None:
        """Download or extract whatever the provider needs before counting."""
        ...

    async def count(self) -> int:
        """Total number of records the provider will return."""
        ...

    async def fetch_page(self, offset: int, limit: int) -> list[SourceRow]:
        """Return up to ``limit`` rows starting at ``offset``."""
        ...

    def to_record(self, row: SourceRow) -> PreparedRecord:
        """Map a raw row to store column values.

        Raises:
            RecordError: If the row is invalid.
        """
        ...

    async def close(self) -> None:
        """Release files, clients and temporary data."""
        ...


class BaseSourceProvider:
    """Convenience base with no-op preparation and cleanup."""

    label = "source"

    @property
    def source_label(self) -> str:
        return self.label

    async def prepare(self, on_phase: PhaseCallback) -> None:  # noqa: ARG002
        return None

    def to_record(self, row: SourceRow) -> PreparedRecord:
        return PreparedRecord(row_number=row.row_number, values=dict(row.values))

    async def close(self) -> None:
        return None
