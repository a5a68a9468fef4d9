"""Add import job, batch, error and dataset tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_TYPE = sa.JSON().with_variant(JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Import jobs
    op.create_table(
        "import_jobs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("phase", sa.String(200), nullable=True),
        sa.Column("total_records", sa.Integer, nullable=True),
        sa.Column("processed_records", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_records", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("parameters", JSON_TYPE, nullable=False),
        sa.Column("source", sa.String(255), nullable=True),
        sa.Column("dataset_year", sa.Integer, nullable=True),
        sa.Column("region_code", sa.String(10), nullable=True),
        sa.Column("dataset_subtype", sa.String(50), nullable=True),
        sa.Column("triggered_by", sa.String(100), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_import_jobs_status", "import_jobs", ["status"])
    op.create_index("ix_import_jobs_type", "import_jobs", ["type"])
    op.create_index(
        "ix_import_jobs_identity", "import_jobs", ["type", "dataset_year", "region_code", "dataset_subtype"]
    )
    op.create_index("ix_import_jobs_created_at", "import_jobs", ["created_at"])

    # Batches (one per window) and tracked failed rows
    op.create_table(
        "import_batches",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "import_job_id",
            UUID(as_uuid=True),
            sa.ForeignKey("import_jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("batch_index", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("row_start", sa.Integer, nullable=True),
        sa.Column("row_end", sa.Integer, nullable=True),
        sa.Column("total_rows", sa.Integer, nullable=False),
        sa.Column("processed_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("inserted_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_summary", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("import_job_id", "batch_index", name="uq_import_batches_job_index"),
    )
    op.create_index("ix_import_batches_status", "import_batches", ["status"])
    op.create_index("ix_import_batches_created_at", "import_batches", ["created_at"])

    op.create_table(
        "import_batch_rows",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "batch_id",
            UUID(as_uuid=True),
            sa.ForeignKey("import_batches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("row_number", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("error_type", sa.String(50), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("parsed_data", JSON_TYPE, nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_import_batch_rows_batch_id", "import_batch_rows", ["batch_id"])
    op.create_index("ix_import_batch_rows_status", "import_batch_rows", ["status"])

    # Error trail
    op.create_table(
        "import_errors",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "import_job_id",
            UUID(as_uuid=True),
            sa.ForeignKey("import_jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("row_number", sa.Integer, nullable=True),
        sa.Column("record", sa.String(255), nullable=True),
        sa.Column("error_type", sa.String(50), nullable=False),
        sa.Column("error_message", sa.Text, nullable=False),
        sa.Column("error_code", sa.String(20), nullable=True),
        sa.Column("details", JSON_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_import_errors_job_id", "import_errors", ["import_job_id"])
    op.create_index("ix_import_errors_error_type", "import_errors", ["error_type"])

    # IBGE municipalities
    op.create_table(
        "municipalities",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "import_job_id",
            UUID(as_uuid=True),
            sa.ForeignKey("import_jobs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("ibge_code", sa.String(7), unique=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("uf", sa.String(2), nullable=False),
        sa.Column("uf_name", sa.String(100), nullable=False),
        sa.Column("region_name", sa.String(50), nullable=False),
        sa.Column("mesoregion", sa.String(200), nullable=True),
        sa.Column("microregion", sa.String(200), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_municipalities_uf", "municipalities", ["uf"])
    op.create_index("ix_municipalities_created_at", "municipalities", ["created_at"])

    # TSE candidate votes
    op.create_table(
        "candidate_votes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "import_job_id",
            UUID(as_uuid=True),
            sa.ForeignKey("import_jobs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        # Election
        sa.Column("generated_date", sa.String(10), nullable=True),
        sa.Column("election_year", sa.Integer, nullable=False),
        sa.Column("election_type_code", sa.Integer, nullable=True),
        sa.Column("election_type_name", sa.String(100), nullable=True),
        sa.Column("round", sa.Integer, nullable=False),
        sa.Column("election_code", sa.Integer, nullable=False),
        sa.Column("election_description", sa.String(200), nullable=True),
        sa.Column("election_date", sa.String(10), nullable=True),
        sa.Column("scope", sa.String(10), nullable=True),
        # Geography
        sa.Column("uf", sa.String(2), nullable=False),
        sa.Column("electoral_unit_code", sa.String(10), nullable=True),
        sa.Column("electoral_unit_name", sa.String(100), nullable=True),
        sa.Column("municipality_code", sa.Integer, nullable=False),
        sa.Column("municipality_name", sa.String(100), nullable=True),
        sa.Column("zone", sa.Integer, nullable=False),
        # Office and candidate
        sa.Column("office_code", sa.Integer, nullable=False),
        sa.Column("office_description", sa.String(100), nullable=True),
        sa.Column("candidate_sequence", sa.String(20), nullable=True),
        sa.Column("candidate_number", sa.Integer, nullable=False),
        sa.Column("candidate_name", sa.String(200), nullable=True),
        sa.Column("ballot_name", sa.String(100), nullable=True),
        sa.Column("candidacy_status_code", sa.Integer, nullable=True),
        sa.Column("candidacy_status", sa.String(100), nullable=True),
        # Party
        sa.Column("party_number", sa.Integer, nullable=True),
        sa.Column("party_abbreviation", sa.String(20), nullable=True),
        sa.Column("party_name", sa.String(200), nullable=True),
        sa.Column("coalition_name", sa.String(300), nullable=True),
        # Totals
        sa.Column("transit_vote", sa.String(1), nullable=False, server_default="N"),
        sa.Column("nominal_votes", sa.Integer, nullable=True),
        sa.Column("valid_nominal_votes", sa.Integer, nullable=True),
        sa.Column("result_code", sa.Integer, nullable=True),
        sa.Column("result_description", sa.String(100), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "uq_candidate_votes_natural_key",
        "candidate_votes",
        [
            "election_year",
            "election_code",
            "round",
            "uf",
            "municipality_code",
            "zone",
            "office_code",
            "candidate_number",
            "transit_vote",
        ],
        unique=True,
    )
    op.create_index("ix_candidate_votes_year_uf_office", "candidate_votes", ["election_year", "uf", "office_code"])
    op.create_index("ix_candidate_votes_party", "candidate_votes", ["party_abbreviation"])
    op.create_index("ix_candidate_votes_created_at", "candidate_votes", ["created_at"])


def downgrade() -> None:
    op.drop_table("candidate_votes")
    op.drop_table("municipalities")
    op.drop_table("import_errors")
    op.drop_table("import_batch_rows")
    op.drop_table("import_batches")
    op.drop_table("import_jobs")
