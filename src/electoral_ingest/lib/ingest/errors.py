"""Exceptions raised by the import engine."""


class IngestError(Exception):
    """Base class for import engine errors."""


class SourceError(IngestError):
    """The source provider is unreachable or returned malformed data.

    Fatal to the whole job: the orchestrator marks the job ``failed``.
    """


class RecordError(IngestError):
    """A single source row could not be mapped to a store record.

    Args:
        message: Human-readable reason.
        error_type: Category recorded on the import error (e.g. ``parse_error``).
    """

    def __init__(self, message: str, error_type: str = "validation_error") -> None:
        super().__init__(message)
        self.error_type = error_type


class UnknownDatasetError(IngestError, ValueError):
    """No dataset kind is registered under the requested type."""


class ImportJobNotFoundError(IngestError, LookupError):
    """The requested import job does not exist."""


class ImportBatchNotFoundError(IngestError, LookupError):
    """The requested import batch does not exist."""


class JobAlreadyFinishedError(IngestError, ValueError):
    """The job has already reached a terminal status."""
