"""CandidateVote model — TSE nominal vote totals per municipality and zone."""

import uuid

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from electoral_ingest.models.base import Base, TimestampMixin, UUIDMixin

# Natural key of a TSE vote row; re-imports conflict on it and are skipped.
CANDIDATE_VOTE_KEY = (
    "election_year",
    "election_code",
    "round",
    "uf",
    "municipality_code",
    "zone",
    "office_code",
    "candidate_number",
    "transit_vote",
)


class CandidateVote(Base, UUIDMixin, TimestampMixin):
    """One row of the TSE "votação nominal por município e zona" file."""

    __tablename__ = "candidate_votes"

    import_job_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("import_jobs.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Election
    generated_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    election_year: Mapped[int] = mapped_column(Integer, nullable=False)
    election_type_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    election_type_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    round: Mapped[int] = mapped_column(Integer, nullable=False)
    election_code: Mapped[int] = mapped_column(Integer, nullable=False)
    election_description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    election_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    scope: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Geography
    uf: Mapped[str] = mapped_column(String(2), nullable=False)
    electoral_unit_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    electoral_unit_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    municipality_code: Mapped[int] = mapped_column(Integer, nullable=False)
    municipality_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zone: Mapped[int] = mapped_column(Integer, nullable=False)

    # Office and candidate
    office_code: Mapped[int] = mapped_column(Integer, nullable=False)
    office_description: Mapped[str | None] = mapped_column(String(100), nullable=True)
    candidate_sequence: Mapped[str | None] = mapped_column(String(20), nullable=True)
    candidate_number: Mapped[int] = mapped_column(Integer, nullable=False)
    candidate_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    ballot_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    candidacy_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    candidacy_status: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Party
    party_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    party_abbreviation: Mapped[str | None] = mapped_column(String(20), nullable=True)
    party_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    coalition_name: Mapped[str | None] = mapped_column(String(300), nullable=True)

    # Totals
    transit_vote: Mapped[str] = mapped_column(String(1), nullable=False, default="N", server_default="N")
    nominal_votes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    valid_nominal_votes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result_description: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        Index("uq_candidate_votes_natural_key", *CANDIDATE_VOTE_KEY, unique=True),
        Index("ix_candidate_votes_year_uf_office", "election_year", "uf", "office_code"),
        Index("ix_candidate_votes_party", "party_abbreviation"),
    )
