"""Adaptive batch splitter.

Writes a list of records through a caller-supplied write function. When the
store rejects the write for exceeding a parameter or size ceiling, the list
is halved and each half retried, recursively, until every record is either
written or isolated as an unrecoverable singleton. A uniqueness conflict is
narrowed the same way, and only a single conflicting record counts as
already present; the rest of its list still gets written. Any other failure
is recorded once for the whole list without recursing.

Write attempts are expected to be individually rolled back by the write
function (e.g. each one runs inside its own SAVEPOINT); the splitter never
touches the surrounding transaction.
"""

import math
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from loguru import logger

from electoral_ingest.lib.ingest.classifier import ErrorKind, classify, error_code, error_message

T = TypeVar("T")

WriteFn = Callable[[Sequence[T]], Awaitable[int]]


def chunk_size(max_parameters: int, columns_per_record: int, safety_factor: float = 0.9) -> int:
    """Pre-compute how many records fit in one write call.

    Args:
        max_parameters: Bound-parameter ceiling of the store's write call.
        columns_per_record: Parameters consumed by each record.
        safety_factor: Fraction of the ceiling to use.

    Returns:
        ``floor(max_parameters / columns_per_record * safety_factor)``, at least 1.
    """
    if columns_per_record <= 0:
        msg = "columns_per_record must be positive"
        raise ValueError(msg)
    return max(1, math.floor(max_parameters / columns_per_record * safety_factor))


@dataclass
class WriteFailure(Generic[T]):
    """Records the store refused, with the reason they were refused."""

    items: list[T]
    kind: ErrorKind
    message: str
    error_code: str | None = None

    @property
    def count(self) -> int:
        return len(self.items)


@dataclass
class SplitResult(Generic[T]):
    """Outcome of writing one list of records through the splitter.

    Attributes:
        written: Records accepted by the store, including rows that were
            already present (conflicts count as success).
        inserted: Rows the store reported as newly inserted.
        attempts: Write calls made, including failed ones.
        splits: Times a list was halved after a capacity or conflict failure.
        failures: Records that could not be written.
    """

    written: int = 0
    inserted: int = 0
    attempts: int = 0
    splits: int = 0
    failures: list[WriteFailure[T]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return sum(failure.count for failure in self.failures)

    @property
    def skipped(self) -> int:
        """Records accepted without inserting a new row (already present)."""
        return self.written - self.inserted

    def merge(self, other: "SplitResult[T]") -> None:
        self.written += other.written
        self.inserted += other.inserted
        self.attempts += other.attempts
        self.splits += other.splits
        self.failures.extend(other.failures)


class AdaptiveBatchSplitter(Generic[T]):
    """Write records, halving on capacity failures.

    Args:
        write_fn: Coroutine function writing a list of items in one call and
            returning the number of newly inserted rows.
        log: Logger to report splits and failures on (defaults to the global one).
    """

    def __init__(self, write_fn: WriteFn[T], *, log: Any = None) -> None:
        self._write_fn = write_fn
        self._log = log or logger

    async def write(self, items: Sequence[T]) -> SplitResult[T]:
        """Write ``items``, returning how many were written and which failed.

        Raises:
            Exception: Failures classified as ``source`` propagate unchanged;
                they mean the store itself is unavailable.
        """
        result: SplitResult[T] = SplitResult()
        await self._write(list(items), result)
        return result

    async def _write(self, items: list[T], result: SplitResult[T]) -> None:
        if not items:
            return

        result.attempts += 1
        try:
            inserted = await self._write_fn(items)
        except Exception as exc:
            kind = classify(exc)
            if kind is ErrorKind.SOURCE:
                raise
            if kind is ErrorKind.CONFLICT and len(items) == 1:
                self._log.debug("Record is already present; treating as written")
                result.written += 1
                return

            message = error_message(exc)
            if kind in (ErrorKind.CAPACITY, ErrorKind.CONFLICT):
                if len(items) == 1:
                    self._log.error(f"Record exceeds store capacity on its own, skipping: {message}")
                    result.failures.append(WriteFailure([items[0]], kind, message, error_code(exc)))
                    return
                mid = len(items) // 2
                result.splits += 1
                if kind is ErrorKind.CAPACITY:
                    self._log.warning(
                        f"Capacity exceeded writing {len(items)} records, retrying as {mid} + {len(items) - mid}"
                    )
                else:
                    self._log.debug(f"Key conflict in {len(items)} records, retrying as {mid} + {len(items) - mid}")
                await self._write(items[:mid], result)
                await self._write(items[mid:], result)
                return

            self._log.error(f"Failed to write {len(items)} record(s): {message}")
            result.failures.append(WriteFailure(items, kind, message, error_code(exc)))
            return

        result.written += len(items)
        result.inserted += max(inserted, 0)
