"""Unit tests for logging configuration."""

import uuid
from pathlib import Path

from loguru import logger

from electoral_ingest.core.logging import job_logger, setup_logging


class TestLogging:
    """Tests for Loguru logging setup."""

    def test_setup_logging_does_not_raise(self) -> None:
        """setup_logging with valid log level does not raise."""
        setup_logging("DEBUG")
        setup_logging("INFO")
        setup_logging("WARNING")

    def test_setup_logging_case_insensitive(self) -> None:
        """setup_logging accepts case-insensitive log levels."""
        setup_logging("info")
        setup_logging("debug")

    def test_file_sink(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        setup_logging("INFO", log_dir=str(log_dir))
        job_id = uuid.uuid4()

        job_logger(job_id).info("window 1 written")
        logger.complete()

        content = (log_dir / "electoral-ingest.log").read_text()
        assert "window 1 written" in content
        assert str(job_id) in content
        setup_logging("INFO")

    def test_job_logger_binds_job_id(self) -> None:
        messages: list[dict] = []
        sink_id = logger.add(lambda message: messages.append(message.record["extra"]), level="INFO")
        try:
            job_logger("job-1").info("hello")
        finally:
            logger.remove(sink_id)
        assert messages[-1]["job_id"] == "job-1"

    def test_json_output(self, capsys) -> None:  # type: ignore[no-untyped-def]
        setup_logging("INFO", json=True)
        try:
            job_logger("job-2").info("serialized")
            logger.complete()
        finally:
            setup_logging("INFO")
        err = capsys.readouterr().err
        assert '"job_id": "job-2"' in err
        assert '"message": "serialized"' in err
