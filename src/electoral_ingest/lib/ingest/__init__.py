"""Import engine library public API.

Provides write-failure classification, the adaptive batch splitter,
in-process cancellation flags, source providers and the dataset registry.
"""

from electoral_ingest.lib.ingest.cancellation import CancellationRegistry, cancellation_registry
from electoral_ingest.lib.ingest.classifier import ErrorKind, classify, error_code, error_message
from electoral_ingest.lib.ingest.datasets import DATASETS, DatasetIdentity, DatasetSpec, get_dataset
from electoral_ingest.lib.ingest.errors import (
    ImportBatchNotFoundError,
    ImportJobNotFoundError,
    IngestError,
    JobAlreadyFinishedError,
    RecordError,
    SourceError,
    UnknownDatasetError,
)
from electoral_ingest.lib.ingest.splitter import AdaptiveBatchSplitter, SplitResult, WriteFailure, chunk_size

__all__ = [
    "DATASETS",
    "AdaptiveBatchSplitter",
    "CancellationRegistry",
    "DatasetIdentity",
    "DatasetSpec",
    "ErrorKind",
    "ImportBatchNotFoundError",
    "ImportJobNotFoundError",
    "IngestError",
    "JobAlreadyFinishedError",
    "RecordError",
    "SourceError",
    "SplitResult",
    "UnknownDatasetError",
    "WriteFailure",
    "cancellation_registry",
    "chunk_size",
    "classify",
    "error_code",
    "error_message",
    "get_dataset",
]
