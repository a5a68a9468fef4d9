"""ImportBatch and ImportBatchRow models — per-window write bookkeeping."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from electoral_ingest.models.base import Base, JSONType, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from electoral_ingest.models.import_job import ImportJob


class BatchStatus(enum.StrEnum):
    """Status of a persisted batch."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RowStatus(enum.StrEnum):
    """Status of a tracked batch row."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ImportBatch(Base, UUIDMixin, TimestampMixin):
    """One outermost window of records handed to the adaptive splitter.

    Recursive halves produced while splitting are not persisted.
    """

    __tablename__ = "import_batches"

    import_job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    batch_index: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BatchStatus.PENDING, server_default="pending"
    )
    row_start: Mapped[int | None] = mapped_column(Integer, nullable=True)
    row_end: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    inserted_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    job: Mapped["ImportJob"] = relationship(back_populates="batches")
    rows: Mapped[list["ImportBatchRow"]] = relationship(
        back_populates="batch", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("import_job_id", "batch_index", name="uq_import_batches_job_index"),
        Index("ix_import_batches_status", "status"),
    )


class ImportBatchRow(Base, UUIDMixin):
    """Granular tracking of a single record inside a batch.

    Only populated for records that failed, so the batch can be reprocessed
    without re-deriving the whole dataset. Not every batch has rows.
    """

    __tablename__ = "import_batch_rows"

    batch_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("import_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RowStatus.PENDING, server_default="pending")
    error_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    parsed_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    batch: Mapped["ImportBatch"] = relationship(back_populates="rows")

    __table_args__ = (
        Index("ix_import_batch_rows_batch_id", "batch_id"),
        Index("ix_import_batch_rows_status", "status"),
    )
