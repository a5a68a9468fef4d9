"""Write-failure classification.

Every exception raised while writing a chunk of records is mapped to one
``ErrorKind``. The adaptive splitter and the orchestrator branch only on
that kind, so this module is the single place that knows what the store's
error shapes look like.

Kinds:
    capacity: the write exceeded a parameter/size ceiling; retry smaller.
    conflict: a uniqueness violation; narrowed down to the rows that are
        already present.
    data: the records themselves are invalid; record and move on.
    source: an external collaborator (source provider or the store
        connection) is unavailable; fatal to the job.
"""

import enum

import httpx
import pandas as pd
from sqlalchemy.exc import DBAPIError, DisconnectionError

from electoral_ingest.lib.ingest.errors import SourceError


class ErrorKind(enum.StrEnum):
    """Classification of a failed write."""

    CAPACITY = "capacity"
    CONFLICT = "conflict"
    DATA = "data"
    SOURCE = "source"


# 54000 program_limit_exceeded, 54001 statement_too_complex (stack depth),
# 08P01 protocol_violation (bind message with too many parameters)
_CAPACITY_SQLSTATES = frozenset({"54000", "54001", "08P01"})

# 23505 unique_violation, 21000 cardinality_violation (ON CONFLICT touching a row twice)
_CONFLICT_SQLSTATES = frozenset({"23505", "21000"})

_CAPACITY_SIGNATURES = (
    "too many sql variables",
    "number of query arguments",
    "too many parameters",
    "parameters",
    "bind",
    "stack depth",
    "stack overflow",
    "maximum call stack",
    "32767",
    "65535",
)

_CONFLICT_SIGNATURES = (
    "unique constraint",
    "duplicate key",
    "cannot affect row a second time",
)


def error_code(exc: BaseException) -> str | None:
    """Return the driver SQLSTATE of a database error, if it carries one."""
    orig = exc.orig if isinstance(exc, DBAPIError) else exc
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if isinstance(code, str) and code:
            return code
    return None


def error_message(exc: BaseException) -> str:
    """Return the driver-level message of an exception.

    ``DBAPIError.__str__`` appends the statement and its bound parameters,
    which would match the capacity signatures for any failure, so the
    wrapped driver exception is used instead.
    """
    orig = exc.orig if isinstance(exc, DBAPIError) and exc.orig is not None else exc
    message = str(orig).strip()
    return message or type(orig).__name__


def classify(exc: BaseException) -> ErrorKind:
    """Classify an exception raised by a write attempt or a source call.

    Args:
        exc: The exception to classify.

    Returns:
        The matching ErrorKind. Unknown shapes are treated as data errors.
    """
    if isinstance(exc, SourceError | httpx.HTTPError | DisconnectionError):
        return ErrorKind.SOURCE
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return ErrorKind.SOURCE
    if isinstance(exc, OSError | pd.errors.ParserError | pd.errors.EmptyDataError):
        return ErrorKind.SOURCE

    code = error_code(exc)
    if code in _CONFLICT_SQLSTATES:
        return ErrorKind.CONFLICT
    if code in _CAPACITY_SQLSTATES:
        return ErrorKind.CAPACITY
    if code is not None and code[:2] in ("22", "23"):
        return ErrorKind.DATA

    message = error_message(exc).lower()
    if any(signature in message for signature in _CONFLICT_SIGNATURES):
        return ErrorKind.CONFLICT
    if isinstance(exc, RecursionError) or any(signature in message for signature in _CAPACITY_SIGNATURES):
        return ErrorKind.CAPACITY
    return ErrorKind.DATA
