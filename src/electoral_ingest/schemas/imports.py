"""Import job Pydantic v2 request/response schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from electoral_ingest.schemas.common import CamelModel, PaginationMeta


class StartImportRequest(CamelModel):
    """Dataset identity parameters of a new import.

    Which fields are required depends on the dataset type; unknown or
    missing combinations are rejected with 400.
    """

    year: int | None = Field(default=None, description="Election year (candidate_votes)")
    uf: str | None = Field(default=None, description="Two-letter state code")
    office_code: int | None = Field(default=None, description="TSE office code filter (CD_CARGO)")
    path: str | None = Field(default=None, description="Local CSV or ZIP file readable by the server")
    url: str | None = Field(default=None, description="Remote ZIP to download")
    file_name: str | None = Field(default=None, description="Member to read from a multi-file archive")
    force: bool = Field(default=False, description="Re-import even if a completed import exists")
    triggered_by: str | None = Field(default=None, description="Operator or system starting the import")

    def dataset_parameters(self) -> dict[str, Any]:
        return self.model_dump(exclude={"force", "triggered_by"}, exclude_none=True)


class StartImportResponse(CamelModel):
    """Outcome of starting an import."""

    job_id: UUID
    status: str
    is_existing: bool = Field(default=False, description="An equivalent import already exists")
    is_in_progress: bool = Field(default=False, description="The existing import is still running")


class ImportJobResponse(CamelModel):
    """Import job status and metadata."""

    id: UUID
    type: str
    status: str
    phase: str | None = None
    total_records: int | None = None
    processed_records: int = 0
    failed_records: int = 0
    error_message: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    source: str | None = None
    triggered_by: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class PaginatedImportJobResponse(CamelModel):
    """Paginated list of import jobs."""

    items: list[ImportJobResponse]
    pagination: PaginationMeta


class CancelImportResponse(CamelModel):
    cancelled: bool = True
    job_id: UUID
    status: str


class RestartImportResponse(CamelModel):
    """The job started by a restart, and the job it was restarted from."""

    original_job_id: UUID
    new_job_id: UUID
    status: str
    is_existing: bool = False


class ImportBatchResponse(CamelModel):
    """One persisted window of an import."""

    id: UUID
    import_job_id: UUID
    batch_index: int
    status: str
    row_start: int | None = None
    row_end: int | None = None
    total_rows: int
    processed_rows: int
    inserted_rows: int
    skipped_rows: int
    error_count: int
    error_summary: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ImportBatchRowResponse(CamelModel):
    """A tracked record of a batch."""

    id: UUID
    batch_id: UUID
    row_number: int
    status: str
    error_type: str | None = None
    error_message: str | None = None
    parsed_data: dict[str, Any] | None = Field(default=None, description="Record to re-attempt; unset if unmappable")
    processed_at: datetime | None = None


class ReprocessBatchResponse(CamelModel):
    """Outcome of re-attempting a batch's failed rows."""

    batch: ImportBatchResponse
    attempted: int
    recovered: int
    still_failed: int


class ReprocessJobResponse(CamelModel):
    """Outcome of re-attempting every failed batch of a job."""

    job_id: UUID
    batches: list[ReprocessBatchResponse] = Field(default_factory=list)
    attempted: int = 0
    recovered: int = 0
    still_failed: int = 0


class DeleteImportResponse(CamelModel):
    deleted: bool = True
    job_id: UUID
    deleted_records: int = Field(description="Imported records removed with the job")


class ImportErrorResponse(CamelModel):
    """A single captured import error."""

    id: UUID
    row_number: int | None = None
    record: str | None = None
    error_type: str
    error_message: str
    error_code: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


class ImportErrorSummary(CamelModel):
    total_errors: int
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    affected_records: list[str] = Field(default_factory=list, description="Distinct affected records (first 100)")


class ImportErrorReportResponse(CamelModel):
    """Error report of an import job: job status, summary and the full error list."""

    job: ImportJobResponse
    summary: ImportErrorSummary
    errors: list[ImportErrorResponse]

