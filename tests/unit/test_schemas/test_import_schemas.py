"""Tests for the import request/response schemas."""

import uuid
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from electoral_ingest.schemas.common import PaginationParams
from electoral_ingest.schemas.imports import ImportJobResponse, StartImportRequest, StartImportResponse


class TestStartImportRequest:
    def test_accepts_camel_and_snake_case(self) -> None:
        camel = StartImportRequest.model_validate({"year": 2022, "officeCode": 13, "fileName": "votos.csv"})
        snake = StartImportRequest.model_validate({"year": 2022, "office_code": 13, "file_name": "votos.csv"})
        assert camel == snake

    def test_dataset_parameters_drop_flags_and_unset_fields(self) -> None:
        request = StartImportRequest(year=2022, uf="SP", force=True, triggered_by="ops")
        assert request.dataset_parameters() == {"year": 2022, "uf": "SP"}

    def test_rejects_non_integer_year(self) -> None:
        with pytest.raises(ValidationError):
            StartImportRequest.model_validate({"year": "twenty"})


class TestResponses:
    def test_job_response_from_model_serializes_camel_case(self) -> None:
        job = SimpleNamespace(
            id=uuid.uuid4(),
            type="candidate_votes",
            status="running",
            phase="window 3: 300/1000 records",
            total_records=1000,
            processed_records=300,
            failed_records=0,
            error_message=None,
            parameters={"year": 2022, "uf": "SP"},
            source="votacao_candidato_munzona_2022_SP.csv",
            triggered_by=None,
            started_at=datetime.now(UTC),
            completed_at=None,
            created_at=datetime.now(UTC),
            updated_at=None,
        )

        body = ImportJobResponse.model_validate(job).model_dump(by_alias=True, mode="json")

        assert body["processedRecords"] == 300
        assert body["totalRecords"] == 1000
        assert body["completedAt"] is None
        assert "processed_records" not in body

    def test_start_response_defaults(self) -> None:
        body = StartImportResponse(job_id=uuid.uuid4(), status="pending").model_dump(by_alias=True)
        assert body["isExisting"] is False
        assert body["isInProgress"] is False


class TestPaginationParams:
    def test_page_size_bounds(self) -> None:
        with pytest.raises(ValidationError):
            PaginationParams(page_size=101)
        with pytest.raises(ValidationError):
            PaginationParams(page=0)
