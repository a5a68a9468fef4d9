"""Dataset kinds the engine knows how to import.

Each kind binds a job ``type`` to its target table, the columns its rows
conflict on, how to validate the job parameters, and how to build a source
provider for them.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from electoral_ingest.lib.ingest.errors import UnknownDatasetError
from electoral_ingest.lib.ingest.sources import IbgeMunicipalitySource, SourceProvider, TseCandidateVoteSource
from electoral_ingest.models.candidate_vote import CANDIDATE_VOTE_KEY, CandidateVote
from electoral_ingest.models.municipality import Municipality

if TYPE_CHECKING:
    from electoral_ingest.core.config import Settings

_UF_PATTERN = re.compile(r"^[A-Z]{2}$")


@dataclass(frozen=True)
class DatasetIdentity:
    """What makes two import requests ask for the same data."""

    year: int | None = None
    region: str | None = None
    subtype: str | None = None


def _normalize_uf(value: Any) -> str | None:
    if value in (None, ""):
        return None
    uf = str(value).strip().upper()
    if not _UF_PATTERN.match(uf):
        msg = f"Invalid uf {value!r}: expected a two-letter state code"
        raise ValueError(msg)
    return uf


def _normalize_int(name: str, value: Any, *, required: bool = False) -> int | None:
    if value in (None, ""):
        if required:
            msg = f"Parameter '{name}' is required"
            raise ValueError(msg)
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        msg = f"Parameter '{name}' must be an integer, got {value!r}"
        raise ValueError(msg) from None


def _drop_none(params: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


@dataclass(frozen=True)
class DatasetSpec:
    """Registration of one importable dataset kind.

    Attributes:
        type: Job type string (e.g. ``candidate_votes``).
        description: One-line description for listings.
        model: ORM model of the target table.
        conflict_columns: Columns of the unique key rows conflict on.
        normalize: Validates and normalizes job parameters; raises ValueError.
        provider_factory: Builds a source provider from normalized parameters.
        identity_fn: Derives the dataset identity from normalized parameters.
        update_columns: When set, conflicting rows are updated with these
            columns instead of skipped.
    """

    type: str
    description: str
    model: type[Any]
    conflict_columns: tuple[str, ...]
    normalize: Callable[[dict[str, Any]], dict[str, Any]]
    provider_factory: Callable[[dict[str, Any], "Settings"], SourceProvider]
    identity_fn: Callable[[dict[str, Any]], DatasetIdentity]
    update_columns: tuple[str, ...] = field(default=())

    @property
    def columns_per_record(self) -> int:
        """Bound parameters one row consumes in a multi-row INSERT."""
        return len(self.model.__table__.columns)

    def normalize_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        return self.normalize(dict(parameters or {}))

    def identity(self, parameters: dict[str, Any]) -> DatasetIdentity:
        return self.identity_fn(parameters)

    def create_provider(self, parameters: dict[str, Any], settings: "Settings") -> SourceProvider:
        return self.provider_factory(parameters, settings)


# candidate_votes


def _normalize_candidate_votes(params: dict[str, Any]) -> dict[str, Any]:
    year = _normalize_int("year", params.get("year"), required=True)
    path = params.get("path") or None
    url = params.get("url") or None
    if not path and not url:
        msg = "A candidate_votes import needs either 'path' or 'url'"
        raise ValueError(msg)
    if url and not str(url).startswith(("http://", "https://")):
        msg = f"Invalid url {url!r}"
        raise ValueError(msg)
    return _drop_none(
        {
            "year": year,
            "uf": _normalize_uf(params.get("uf")),
            "office_code": _normalize_int("office_code", params.get("office_code")),
            "path": path,
            "url": url,
            "file_name": params.get("file_name") or None,
        }
    )


def _candidate_votes_identity(params: dict[str, Any]) -> DatasetIdentity:
    office_code = params.get("office_code")
    return DatasetIdentity(
        year=params.get("year"),
        region=params.get("uf"),
        subtype=str(office_code) if office_code is not None else None,
    )


def _candidate_votes_provider(params: dict[str, Any], settings: "Settings") -> SourceProvider:
    return TseCandidateVoteSource(
        year=params["year"],
        uf=params.get("uf"),
        office_code=params.get("office_code"),
        path=params.get("path"),
        url=params.get("url"),
        file_name=params.get("file_name"),
        data_dir=settings.import_data_dir,
        timeout=settings.source_http_timeout,
    )


# municipalities


def _normalize_municipalities(params: dict[str, Any]) -> dict[str, Any]:
    return _drop_none({"uf": _normalize_uf(params.get("uf"))})


def _municipalities_identity(params: dict[str, Any]) -> DatasetIdentity:
    return DatasetIdentity(region=params.get("uf"))


def _municipalities_provider(params: dict[str, Any], settings: "Settings") -> SourceProvider:
    return IbgeMunicipalitySource(
        base_url=settings.ibge_api_base_url,
        uf=params.get("uf"),
        timeout=settings.source_http_timeout,
    )


CANDIDATE_VOTES = DatasetSpec(
    type="candidate_votes",
    description="TSE nominal votes per candidate, municipality and zone",
    model=CandidateVote,
    conflict_columns=CANDIDATE_VOTE_KEY,
    normalize=_normalize_candidate_votes,
    provider_factory=_candidate_votes_provider,
    identity_fn=_candidate_votes_identity,
)

MUNICIPALITIES = DatasetSpec(
    type="municipalities",
    description="IBGE municipal registry",
    model=Municipality,
    conflict_columns=("ibge_code",),
    normalize=_normalize_municipalities,
    provider_factory=_municipalities_provider,
    identity_fn=_municipalities_identity,
    update_columns=("name", "uf", "uf_name", "region_name", "mesoregion", "microregion", "import_job_id"),
)

DATASETS: dict[str, DatasetSpec] = {spec.type: spec for spec in (CANDIDATE_VOTES, MUNICIPALITIES)}


def get_dataset(dataset_type: str, registry: dict[str, DatasetSpec] | None = None) -> DatasetSpec:
    """Look up a dataset kind.

    Raises:
        UnknownDatasetError: If no dataset is registered under ``dataset_type``.
    """
    registry = DATASETS if registry is None else registry
    try:
        return registry[dataset_type]
    except KeyError:
        msg = f"Unknown dataset type: {dataset_type!r} (known: {', '.join(sorted(registry))})"
        raise UnknownDatasetError(msg) from None
