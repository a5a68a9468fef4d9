"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from electoral_ingest.models.candidate_vote import CandidateVote
from electoral_ingest.models.import_batch import ImportBatch, ImportBatchRow
from electoral_ingest.models.import_error import ImportErrorRecord
from electoral_ingest.models.import_job import ImportJob
from electoral_ingest.models.municipality import Municipality

__all__ = [
    "CandidateVote",
    "ImportBatch",
    "ImportBatchRow",
    "ImportErrorRecord",
    "ImportJob",
    "Municipality",
]
