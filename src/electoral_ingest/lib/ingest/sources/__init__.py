"""Source providers: paged access to the datasets the engine imports."""

from electoral_ingest.lib.ingest.sources.base import (
    BaseSourceProvider,
    PhaseCallback,
    PreparedRecord,
    SourceProvider,
    SourceRow,
)
from electoral_ingest.lib.ingest.sources.ibge import IbgeMunicipalitySource, map_municipality
from electoral_ingest.lib.ingest.sources.tse import TseCandidateVoteSource, map_candidate_vote, parse_value

__all__ = [
    "BaseSourceProvider",
    "IbgeMunicipalitySource",
    "PhaseCallback",
    "PreparedRecord",
    "SourceProvider",
    "SourceRow",
    "TseCandidateVoteSource",
    "map_candidate_vote",
    "map_municipality",
    "parse_value",
]
