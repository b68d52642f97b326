"""Tests for PipelineSettings — defaults and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from reprodocs.config import PipelineSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "REPRODOCS_NOTES_URL",
        "MARKETING_URL",
        "REPRODOCS_CACHE_DIR",
        "RELEASE_NOTES_CACHE_DIR",
        "REPRODOCS_MAX_WORKERS",
        "REPRODOCS_ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self):
        settings = PipelineSettings(_env_file=None)
        assert settings.notes_url == "https://example.com"
        assert settings.fetch_timeout_seconds == 30.0
        assert settings.notes_stage_timeout_seconds == 300.0
        assert settings.run_timeout_seconds == 1800.0
        assert settings.archive_path == Path("docs.tar.gz")
        assert settings.notes_archive_path == "release-notes.txt"
        assert settings.docs_output_dir == Path("target/reports/apidocs")
        assert settings.cache_max_age_seconds is None
        assert settings.include_build_info is True
        assert not settings.is_production


class TestEnvironment:
    def test_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("REPRODOCS_MAX_WORKERS", "8")
        monkeypatch.setenv("REPRODOCS_ENVIRONMENT", "production")
        settings = PipelineSettings(_env_file=None)
        assert settings.max_workers == 8
        assert settings.is_production

    def test_ci_variable_aliases(self, monkeypatch):
        monkeypatch.setenv("MARKETING_URL", "https://marketing.example.test/notes")
        monkeypatch.setenv("RELEASE_NOTES_CACHE_DIR", "/opt/buildagent/cache/release-notes")
        settings = PipelineSettings(_env_file=None)
        assert settings.notes_url == "https://marketing.example.test/notes"
        assert settings.cache_dir == Path("/opt/buildagent/cache/release-notes")

    def test_prefixed_name_wins_over_alias(self, monkeypatch):
        monkeypatch.setenv("MARKETING_URL", "https://alias.example.test")
        monkeypatch.setenv("REPRODOCS_NOTES_URL", "https://primary.example.test")
        assert PipelineSettings(_env_file=None).notes_url == "https://primary.example.test"

    def test_init_overrides_environment(self, monkeypatch):
        monkeypatch.setenv("REPRODOCS_MAX_WORKERS", "8")
        assert PipelineSettings(_env_file=None, max_workers=2).max_workers == 2

    def test_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("REPRODOCS_LOG_LEVEL=DEBUG\nREPRODOCS_RUN_TIMEOUT_SECONDS=600\n")
        settings = PipelineSettings(_env_file=env_file)
        assert settings.log_level == "DEBUG"
        assert settings.run_timeout_seconds == 600.0


class TestValidation:
    def test_rejects_zero_workers(self):
        with pytest.raises(ValidationError):
            PipelineSettings(_env_file=None, max_workers=0)

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            PipelineSettings(_env_file=None, fetch_timeout_seconds=0)
