"""Batch writer: multi-row INSERT ... ON CONFLICT for one dataset table."""

import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from electoral_ingest.lib.ingest.datasets import DatasetSpec
from electoral_ingest.lib.ingest.sources import PreparedRecord


class BatchWriter:
    """Writes prepared records to a dataset's target table.

    Every call runs inside its own SAVEPOINT so a rejected write leaves the
    window's transaction usable for the next attempt. Rows conflicting on the
    dataset's unique key are skipped, or updated when the dataset declares
    update columns.

    Args:
        session: Database session owning the window's transaction.
        dataset: Dataset kind being imported.
        job_id: Import job stamped on every written row.
    """

    def __init__(self, session: AsyncSession, dataset: DatasetSpec, job_id: uuid.UUID) -> None:
        self.session = session
        self.dataset = dataset
        self.job_id = job_id

    def _rows(self, records: Sequence[PreparedRecord]) -> list[dict[str, Any]]:
        return [{**record.values, "id": uuid.uuid4(), "import_job_id": self.job_id} for record in records]

    def build_statement(self, records: Sequence[PreparedRecord]):  # type: ignore[no-untyped-def]
        """Build the dialect-specific upsert for ``records``."""
        dialect = self.session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert(self.dataset.model).values(self._rows(records))
        if self.dataset.update_columns:
            return stmt.on_conflict_do_update(
                index_elements=list(self.dataset.conflict_columns),
                set_={column: stmt.excluded[column] for column in self.dataset.update_columns},
            )
        return stmt.on_conflict_do_nothing(index_elements=list(self.dataset.conflict_columns))

    async def write(self, records: Sequence[PreparedRecord]) -> int:
        """Write ``records`` in one statement.

        Returns:
            Rows inserted or updated; rows skipped on conflict are not counted.
        """
        if not records:
            return 0
        stmt = self.build_statement(records)
        async with self.session.begin_nested():
            result = await self.session.execute(stmt)
        return max(result.rowcount or 0, 0)
