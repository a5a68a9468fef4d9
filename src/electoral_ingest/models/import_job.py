"""ImportJob model — one end-to-end request to import a dataset."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from electoral_ingest.models.base import Base, JSONType, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from electoral_ingest.models.import_batch import ImportBatch
    from electoral_ingest.models.import_error import ImportErrorRecord


class ImportJobStatus(enum.StrEnum):
    """Lifecycle states of an import job."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


IN_PROGRESS_STATUSES = frozenset(
    {
        ImportJobStatus.PENDING,
        ImportJobStatus.DOWNLOADING,
        ImportJobStatus.EXTRACTING,
        ImportJobStatus.RUNNING,
    }
)
TERMINAL_STATUSES = frozenset({ImportJobStatus.COMPLETED, ImportJobStatus.FAILED, ImportJobStatus.CANCELLED})

CANCELLED_MESSAGE = "cancelled by operator"


class ImportJob(Base, UUIDMixin, TimestampMixin):
    """Tracks a dataset import: lifecycle status, progress counters and the recipe to reproduce it.

    A job reaches a terminal status exactly once. Restarting creates a sibling
    job with the same ``type`` and ``parameters``.
    """

    __tablename__ = "import_jobs"

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ImportJobStatus.PENDING, server_default="pending"
    )
    phase: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Record counts
    total_records: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processed_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    failed_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Reproduction recipe: dataset year / region / kind
    parameters: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    source: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Dataset identity derived from parameters; used to find existing imports
    dataset_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    region_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    dataset_subtype: Mapped[str | None] = mapped_column(String(50), nullable=True)

    triggered_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    batches: Mapped[list["ImportBatch"]] = relationship(
        back_populates="job", cascade="all, delete-orphan", passive_deletes=True, order_by="ImportBatch.batch_index"
    )
    errors: Mapped[list["ImportErrorRecord"]] = relationship(
        back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_import_jobs_status", "status"),
        Index("ix_import_jobs_type", "type"),
        Index("ix_import_jobs_identity", "type", "dataset_year", "region_code", "dataset_subtype"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
