"""ImportErrorRecord model — append-only error trail of an import job."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from electoral_ingest.models.base import Base, JSONType, UUIDMixin, utcnow

if TYPE_CHECKING:
    from electoral_ingest.models.import_job import ImportJob


class ImportErrorRecord(Base, UUIDMixin):
    """A data, capacity or fatal error captured while importing a job.

    Rows are inserted once and never updated; together they form the
    error report surfaced to operators.
    """

    __tablename__ = "import_errors"

    import_job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    row_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    record: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_type: Mapped[str] = mapped_column(String(50), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    # Relationships
    job: Mapped["ImportJob"] = relationship(back_populates="errors")

    __table_args__ = (
        Index("ix_import_errors_job_id", "import_job_id"),
        Index("ix_import_errors_error_type", "error_type"),
    )
