"""Tests for all Pydantic data models — validation, immutability, defaults."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from reprodocs.errors import ExitCode
from reprodocs.models.artifacts import Artifact
from reprodocs.models.cache import CacheEntry, FetchResult, FetchStatus
from reprodocs.models.config import RunConfig, new_run_id
from reprodocs.models.reports import RunReport, StageOutcome
from reprodocs.models.stages import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    StageDefinition,
    StageState,
)


class TestStageModels:
    def test_stage_state_values(self):
        assert StageState.PENDING == "pending"
        assert StageState.SKIPPED_UPSTREAM_FAILURE == "skipped_upstream_failure"

    def test_terminal_states(self):
        assert TERMINAL_STATES == {
            StageState.SUCCEEDED,
            StageState.FAILED,
            StageState.SKIPPED_UPSTREAM_FAILURE,
            StageState.CANCELLED,
        }

    def test_only_running_reaches_outcomes(self):
        for state, targets in VALID_TRANSITIONS.items():
            if state != StageState.RUNNING:
                assert StageState.SUCCEEDED not in targets
                assert StageState.FAILED not in targets

    def test_definition_is_frozen(self):
        sd = StageDefinition(stage_id="a", display_name="A")
        with pytest.raises(ValidationError):
            sd.stage_id = "b"  # type: ignore[misc]

    def test_hard_and_optional_overlap_rejected(self):
        with pytest.raises(ValidationError, match="both hard and optional"):
            StageDefinition(stage_id="a", display_name="A", inputs=["x"], optional_inputs=["x"])

    def test_duplicate_outputs_rejected(self):
        with pytest.raises(ValidationError, match="duplicate"):
            StageDefinition(stage_id="a", display_name="A", outputs=["x", "x"])

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            StageDefinition(stage_id="a", display_name="A", timeout_seconds=0)

    def test_all_inputs_order(self):
        sd = StageDefinition(stage_id="a", display_name="A", inputs=["h"], optional_inputs=["o"])
        assert sd.all_inputs == ["h", "o"]


class TestArtifact:
    def test_digest_and_ref(self):
        artifact = Artifact(path="notes.txt", content=b"hello", producer="notes")
        ref = artifact.ref()
        assert ref.content_address == f"sha256:{artifact.sha256}"
        assert ref.size_bytes == 5
        assert ref.producer == "notes"

    def test_frozen(self):
        artifact = Artifact(path="a", content=b"")
        with pytest.raises(ValidationError):
            artifact.content = b"changed"  # type: ignore[misc]


class TestCacheModels:
    def test_age_seconds(self):
        fetched = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        entry = CacheEntry(revision="abc123", content=b"", fetched_at=fetched)
        assert entry.age_seconds(fetched + timedelta(minutes=5)) == 300

    @pytest.mark.parametrize(
        "status,degraded",
        [
            (FetchStatus.FRESH, False),
            (FetchStatus.STALE_FALLBACK, True),
            (FetchStatus.MISSING, True),
        ],
    )
    def test_degraded(self, status: FetchStatus, degraded: bool):
        assert FetchResult(revision="abc123", status=status).degraded is degraded


class TestRunConfig:
    def test_run_id_format(self):
        run_id = new_run_id()
        assert run_id.startswith("rd-")
        assert len(run_id) == 15

    def test_defaults(self):
        rc = RunConfig(revision="abc123")
        assert rc.max_workers == 4
        assert rc.created_at.tzinfo is not None

    def test_invalid_workers(self):
        with pytest.raises(ValidationError):
            RunConfig(revision="abc123", max_workers=0)


class TestRunReport:
    def _report(self, **kwargs) -> RunReport:
        return RunReport(
            run_id="rd-1",
            revision="abc123",
            outcomes=[
                StageOutcome(
                    stage_id="release_notes",
                    display_name="Release Notes",
                    state=StageState.SUCCEEDED,
                    note="release notes missing",
                ),
                StageOutcome(
                    stage_id="docs",
                    display_name="Docs",
                    state=StageState.FAILED,
                    note="ignored for failed stages",
                ),
            ],
            **kwargs,
        )

    def test_warnings_only_from_succeeded_stages(self):
        assert self._report().warnings == ["release_notes: release notes missing"]

    def test_succeeded_follows_exit_code(self):
        assert self._report().succeeded
        assert not self._report(exit_code=ExitCode.STAGE_FAILED).succeeded

    def test_state_lookup(self):
        report = self._report()
        assert report.state_of("docs") == StageState.FAILED
        with pytest.raises(KeyError):
            report.outcome("missing")
