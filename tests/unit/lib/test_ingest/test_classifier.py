"""Unit tests for write-failure classification."""

import httpx
import pandas as pd
import pytest
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError, ProgrammingError

from electoral_ingest.lib.ingest.classifier import ErrorKind, classify, error_code, error_message
from electoral_ingest.lib.ingest.errors import SourceError


class _DriverError(Exception):
    """Stand-in for a driver exception carrying a SQLSTATE."""

    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def _wrap(cls: type, message: str, sqlstate: str | None = None, **kwargs: object) -> Exception:
    return cls("INSERT INTO candidate_votes ...", {"p1": 1}, _DriverError(message, sqlstate), **kwargs)


class TestClassifyByCode:
    """SQLSTATE codes take precedence over message text."""

    def test_unique_violation_is_conflict(self) -> None:
        exc = _wrap(IntegrityError, "violates something", "23505")
        assert classify(exc) is ErrorKind.CONFLICT

    def test_cardinality_violation_is_conflict(self) -> None:
        exc = _wrap(ProgrammingError, "row touched twice", "21000")
        assert classify(exc) is ErrorKind.CONFLICT

    @pytest.mark.parametrize("code", ["54000", "54001", "08P01"])
    def test_limit_codes_are_capacity(self, code: str) -> None:
        assert classify(_wrap(OperationalError, "limit", code)) is ErrorKind.CAPACITY

    @pytest.mark.parametrize("code", ["22001", "23502", "22P02"])
    def test_data_exceptions_are_data(self, code: str) -> None:
        # "parameters" in the message must not override the code
        exc = _wrap(IntegrityError, "value too long for the parameters given", code)
        assert classify(exc) is ErrorKind.DATA

    def test_error_code_reads_pgcode(self) -> None:
        orig = Exception("boom")
        orig.pgcode = "23505"  # type: ignore[attr-defined]
        exc = IntegrityError("stmt", None, orig)
        assert error_code(exc) == "23505"

    def test_error_code_absent(self) -> None:
        assert error_code(ValueError("nope")) is None


class TestClassifyByMessage:
    """Message signatures for drivers without SQLSTATE codes."""

    def test_sqlite_too_many_variables_is_capacity(self) -> None:
        exc = _wrap(OperationalError, "too many SQL variables")
        assert classify(exc) is ErrorKind.CAPACITY

    def test_asyncpg_argument_limit_is_capacity(self) -> None:
        exc = _wrap(OperationalError, "the number of query arguments cannot exceed 32767")
        assert classify(exc) is ErrorKind.CAPACITY

    def test_sqlite_unique_constraint_is_conflict(self) -> None:
        exc = _wrap(IntegrityError, "UNIQUE constraint failed: municipalities.ibge_code")
        assert classify(exc) is ErrorKind.CONFLICT

    def test_duplicate_key_is_conflict(self) -> None:
        assert classify(RuntimeError("duplicate key value violates unique constraint")) is ErrorKind.CONFLICT

    def test_recursion_error_is_capacity(self) -> None:
        assert classify(RecursionError("deep")) is ErrorKind.CAPACITY

    def test_not_null_without_code_is_data(self) -> None:
        exc = _wrap(IntegrityError, "NOT NULL constraint failed: candidate_votes.uf")
        assert classify(exc) is ErrorKind.DATA

    def test_unknown_exception_is_data(self) -> None:
        assert classify(KeyError("zone")) is ErrorKind.DATA

    def test_statement_parameters_are_not_inspected(self) -> None:
        """The wrapped statement mentions parameters; only the driver message counts."""
        exc = _wrap(IntegrityError, "CHECK constraint failed: votes_positive")
        assert "parameters" in str(exc).lower()
        assert classify(exc) is ErrorKind.DATA


class TestClassifySource:
    """Failures of external collaborators are fatal to the job."""

    @pytest.mark.parametrize(
        "exc",
        [
            SourceError("feed gone"),
            httpx.ConnectError("refused"),
            DisconnectionError("server closed the connection"),
            TimeoutError("read timed out"),
            ConnectionResetError("reset by peer"),
            pd.errors.ParserError("bad csv"),
            pd.errors.EmptyDataError("no columns"),
        ],
    )
    def test_source_failures(self, exc: Exception) -> None:
        assert classify(exc) is ErrorKind.SOURCE

    def test_invalidated_connection_is_source(self) -> None:
        exc = _wrap(OperationalError, "too many SQL variables", connection_invalidated=True)
        assert classify(exc) is ErrorKind.SOURCE


class TestErrorMessage:
    """Tests for error_message."""

    def test_unwraps_dbapi_error(self) -> None:
        exc = _wrap(OperationalError, "too many SQL variables")
        assert error_message(exc) == "too many SQL variables"

    def test_empty_message_falls_back_to_type_name(self) -> None:
        assert error_message(ValueError()) == "ValueError"
