"""Runtime settings, read from the environment (and an optional ``.env`` file).

Every field maps to the upper-cased environment variable of the same name,
e.g. ``IMPORT_WINDOW_SIZE=250``.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SCHEMA_NAME = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")


class Settings(BaseSettings):
    """Settings for the API, the CLI and the import engine."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Store
    database_url: str = Field(description="Async SQLAlchemy URL (postgresql+asyncpg, or sqlite+aiosqlite locally)")
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema to place every table in (isolated preview databases)",
    )

    # Import windows and write chunks
    import_window_size: int = Field(default=100, gt=0, description="Source records read and committed per window")
    import_max_parameters: int = Field(
        default=32767,
        gt=0,
        description="Most bound parameters one write statement may carry",
    )
    import_safety_factor: float = Field(
        default=0.9,
        gt=0,
        le=1,
        description="Share of import_max_parameters a pre-computed chunk may use",
    )
    import_status_poll_interval: int = Field(
        default=10,
        gt=0,
        description="Re-read the persisted job status every N windows",
    )
    import_track_failed_rows: bool = Field(
        default=True,
        description="Keep rejected records on their batch for later reprocessing",
    )
    import_data_dir: str = Field(default="./data/imports", description="Where source archives are downloaded")

    # Source providers
    source_http_timeout: float = Field(default=60.0, gt=0, description="Seconds before a source request times out")
    ibge_api_base_url: str = Field(
        default="https://servicodados.ibge.gov.br/api/v1/localidades",
        description="IBGE localidades API root",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Minimum level emitted by Loguru sinks")
    log_dir: str | None = Field(default=None, description="Add a daily-rotated log file in this directory")
    log_json: bool = Field(default=False, description="Emit stderr logs as one JSON object per line")

    # HTTP API
    api_v1_prefix: str = Field(default="/api/v1", description="Mount point of the v1 routers")

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is not None and not _SCHEMA_NAME.match(v):
            msg = f"Invalid database_schema: must match {_SCHEMA_NAME.pattern}"
            raise ValueError(msg)
        return v

    @field_validator("ibge_api_base_url")
    @classmethod
    def validate_ibge_api_base_url(cls, v: str) -> str:
        if not v.startswith("https://"):
            msg = "ibge_api_base_url must use HTTPS"
            raise ValueError(msg)
        return v.rstrip("/")


def get_settings() -> Settings:
    """Load settings from the current environment."""
    return Settings()  # type: ignore[call-arg]
