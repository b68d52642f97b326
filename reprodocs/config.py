"""Pipeline configuration — env-driven.

Centralized settings using pydantic-settings.  Reads from a .env file and
REPRODOCS_* environment variables.  The two variables the CI agents already
export (``MARKETING_URL`` and ``RELEASE_NOTES_CACHE_DIR``) are honoured as
aliases.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PipelineSettings(BaseSettings):
    """Pipeline settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export REPRODOCS_NOTES_URL=https://example.com/notes/{revision}.txt
        export REPRODOCS_FETCH_TIMEOUT_SECONDS=10
        export RELEASE_NOTES_CACHE_DIR=/opt/buildagent/cache/release-notes

    Or via .env file::

        REPRODOCS_LOG_LEVEL=DEBUG
        REPRODOCS_RUN_TIMEOUT_SECONDS=600
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="REPRODOCS_",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"

    # Release notes endpoint; "{revision}" is substituted when present
    notes_url: str = Field(
        default="https://example.com",
        validation_alias=AliasChoices("REPRODOCS_NOTES_URL", "MARKETING_URL"),
    )
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    notes_stage_timeout_seconds: float = Field(default=300.0, gt=0)

    # Persistent cache, outside any run's workspace
    cache_dir: Path = Field(
        default=Path(".reprodocs/cache/release-notes"),
        validation_alias=AliasChoices("REPRODOCS_CACHE_DIR", "RELEASE_NOTES_CACHE_DIR"),
    )
    cache_max_age_seconds: float | None = None

    # Scheduling
    max_workers: int = Field(default=4, ge=1)
    run_timeout_seconds: float = Field(default=1800.0, gt=0)

    # Documentation generation
    source_dir: Path = Path(".")
    docs_command: str = "mvn -B -q javadoc:javadoc"
    docs_output_dir: Path = Path("target/reports/apidocs")
    docs_archive_prefix: str = "apidocs"

    # Packaging
    archive_path: Path = Path("docs.tar.gz")
    notes_archive_path: str = "release-notes.txt"
    include_build_info: bool = True

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"
