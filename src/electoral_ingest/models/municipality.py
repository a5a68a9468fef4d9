"""Municipality model — IBGE municipal registry."""

import uuid

from sqlalchemy import ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from electoral_ingest.models.base import Base, TimestampMixin, UUIDMixin


class Municipality(Base, UUIDMixin, TimestampMixin):
    """A Brazilian municipality as published by the IBGE localidades API."""

    __tablename__ = "municipalities"

    import_job_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("import_jobs.id", ondelete="SET NULL"),
        nullable=True,
    )
    ibge_code: Mapped[str] = mapped_column(String(7), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    uf: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    uf_name: Mapped[str] = mapped_column(String(100), nullable=False)
    region_name: Mapped[str] = mapped_column(String(50), nullable=False)
    mesoregion: Mapped[str | None] = mapped_column(String(200), nullable=True)
    microregion: Mapped[str | None] = mapped_column(String(200), nullable=True)
