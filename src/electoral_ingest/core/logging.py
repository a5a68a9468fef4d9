"""Loguru configuration for the API and the CLI.

Every line carries an import job id (``-`` outside a job); import code logs
through ``job_logger`` so a job's windows, splits and failures can be
grepped out of a shared log. Output is human-readable by default and one
JSON object per line when ``json`` is set.
"""

import sys
import uuid
from pathlib import Path

from loguru import logger

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[job_id]} | {name}:{function}:{line} | {message}"
_LOG_FILE = "electoral-ingest.log"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None, *, json: bool = False) -> None:
    """Replace Loguru's sinks with the application's.

    Args:
        log_level: Minimum level emitted (case-insensitive).
        log_dir: When set, also log to a file there, rotated daily and
            kept for 7 days.
        json: Serialize stderr records as JSON.
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(extra={"job_id": "-"})
    logger.add(sys.stderr, level=level, format=_LOG_FORMAT, serialize=json)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(path / _LOG_FILE, level=level, format=_LOG_FORMAT, rotation="24h", retention="7 days")


def job_logger(job_id: uuid.UUID | str):  # type: ignore[no-untyped-def]
    """Return a logger bound to an import job id."""
    return logger.bind(job_id=str(job_id))
