"""Unit tests for dataset registration, parameter normalization and identity."""

import pytest

from electoral_ingest.core.config import Settings
from electoral_ingest.lib.ingest.datasets import (
    CANDIDATE_VOTES,
    DATASETS,
    MUNICIPALITIES,
    DatasetIdentity,
    get_dataset,
)
from electoral_ingest.lib.ingest.errors import UnknownDatasetError
from electoral_ingest.lib.ingest.sources import IbgeMunicipalitySource, TseCandidateVoteSource


class TestGetDataset:
    """Tests for get_dataset."""

    def test_known_types(self) -> None:
        assert get_dataset("candidate_votes") is CANDIDATE_VOTES
        assert get_dataset("municipalities") is MUNICIPALITIES
        assert set(DATASETS) == {"candidate_votes", "municipalities"}

    def test_unknown_type(self) -> None:
        with pytest.raises(UnknownDatasetError, match="Unknown dataset type"):
            get_dataset("polling_stations")

    def test_unknown_type_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            get_dataset("polling_stations")

    def test_custom_registry(self) -> None:
        assert get_dataset("mine", {"mine": MUNICIPALITIES}) is MUNICIPALITIES


class TestCandidateVotes:
    """Tests for the candidate_votes dataset."""

    def test_normalizes_parameters(self) -> None:
        params = CANDIDATE_VOTES.normalize_parameters(
            {"year": "2022", "uf": " sp ", "office_code": "13", "url": "https://cdn.tse.jus.br/votacao.zip"}
        )
        assert params == {
            "year": 2022,
            "uf": "SP",
            "office_code": 13,
            "url": "https://cdn.tse.jus.br/votacao.zip",
        }

    def test_year_required(self) -> None:
        with pytest.raises(ValueError, match="'year' is required"):
            CANDIDATE_VOTES.normalize_parameters({"path": "votes.csv"})

    def test_year_must_be_integer(self) -> None:
        with pytest.raises(ValueError, match="must be an integer"):
            CANDIDATE_VOTES.normalize_parameters({"year": "twenty", "path": "votes.csv"})

    def test_needs_path_or_url(self) -> None:
        with pytest.raises(ValueError, match="'path' or 'url'"):
            CANDIDATE_VOTES.normalize_parameters({"year": 2022})

    def test_rejects_non_http_url(self) -> None:
        with pytest.raises(ValueError, match="Invalid url"):
            CANDIDATE_VOTES.normalize_parameters({"year": 2022, "url": "ftp://example.com/a.zip"})

    def test_rejects_bad_uf(self) -> None:
        with pytest.raises(ValueError, match="two-letter"):
            CANDIDATE_VOTES.normalize_parameters({"year": 2022, "path": "a.csv", "uf": "SAO"})

    def test_identity(self) -> None:
        identity = CANDIDATE_VOTES.identity({"year": 2022, "uf": "SP", "office_code": 13, "path": "a.csv"})
        assert identity == DatasetIdentity(year=2022, region="SP", subtype="13")

    def test_identity_without_filters(self) -> None:
        assert CANDIDATE_VOTES.identity({"year": 2020, "path": "a.csv"}) == DatasetIdentity(year=2020)

    def test_conflict_columns_are_natural_key(self) -> None:
        assert "candidate_number" in CANDIDATE_VOTES.conflict_columns
        assert CANDIDATE_VOTES.update_columns == ()

    def test_create_provider(self, settings: Settings) -> None:
        provider = CANDIDATE_VOTES.create_provider({"year": 2022, "uf": "SP", "path": "votes.csv"}, settings)
        assert isinstance(provider, TseCandidateVoteSource)
        assert provider.uf == "SP"
        assert provider.source_label == "votes.csv"


class TestMunicipalities:
    """Tests for the municipalities dataset."""

    def test_normalizes_optional_uf(self) -> None:
        assert MUNICIPALITIES.normalize_parameters({}) == {}
        assert MUNICIPALITIES.normalize_parameters({"uf": "rj"}) == {"uf": "RJ"}

    def test_identity(self) -> None:
        assert MUNICIPALITIES.identity({"uf": "RJ"}) == DatasetIdentity(region="RJ")

    def test_updates_on_conflict(self) -> None:
        assert MUNICIPALITIES.conflict_columns == ("ibge_code",)
        assert "name" in MUNICIPALITIES.update_columns

    def test_columns_per_record(self) -> None:
        # id, import_job_id, ibge_code, name, uf, uf_name, region_name, mesoregion,
        # microregion, created_at, updated_at
        assert MUNICIPALITIES.columns_per_record == 11

    def test_create_provider(self, settings: Settings) -> None:
        provider = MUNICIPALITIES.create_provider({"uf": "RJ"}, settings)
        assert isinstance(provider, IbgeMunicipalitySource)
        assert provider.url == "https://servicodados.ibge.gov.br/api/v1/localidades/estados/RJ/municipios"
