"""Tests for the StageMachine — transitions, readiness, cascades, cancellation."""

from __future__ import annotations

import pytest

from reprodocs.core.stage_graph import StageGraph
from reprodocs.core.stage_machine import StageMachine
from reprodocs.errors import InvalidTransitionError
from reprodocs.models.stages import StageState
from reprodocs.pipeline import default_stage_definitions


@pytest.fixture
def machine(settings) -> StageMachine:
    """A fresh StageMachine over the standard pipeline."""
    return StageMachine(StageGraph(default_stage_definitions(settings)))


def _succeed(machine: StageMachine, stage_id: str) -> None:
    machine.transition(stage_id, StageState.READY)
    machine.transition(stage_id, StageState.RUNNING)
    machine.transition(stage_id, StageState.SUCCEEDED)


class TestStageMachine:
    def test_all_pending_initially(self, machine: StageMachine):
        states = machine.get_all_states()
        assert len(states) == 5
        assert all(s == StageState.PENDING for s in states.values())
        assert not machine.is_finished()

    def test_happy_path_transitions(self, machine: StageMachine):
        machine.transition("docs", StageState.READY)
        machine.transition("docs", StageState.RUNNING)
        record = machine.transition("docs", StageState.SUCCEEDED)
        assert record.from_state == StageState.RUNNING
        assert record.to_state == StageState.SUCCEEDED
        assert machine.get_current_state("docs") == StageState.SUCCEEDED

    def test_pending_cannot_jump_to_running(self, machine: StageMachine):
        with pytest.raises(InvalidTransitionError):
            machine.transition("docs", StageState.RUNNING)

    def test_ready_requires_inputs(self, machine: StageMachine):
        with pytest.raises(InvalidTransitionError, match="inputs not satisfied"):
            machine.transition("archive", StageState.READY)

    def test_ready_after_inputs_succeed(self, machine: StageMachine):
        for sid in ("commit_timestamp", "release_notes", "docs"):
            _succeed(machine, sid)
        machine.transition("archive", StageState.READY)
        assert machine.get_current_state("archive") == StageState.READY

    def test_promote_ready(self, machine: StageMachine):
        assert machine.promote_ready() == ["commit_timestamp", "release_notes", "docs"]
        assert machine.promote_ready() == []

    def test_history_records_every_transition(self, machine: StageMachine):
        _succeed(machine, "docs")
        assert [(t.from_state, t.to_state) for t in machine.history] == [
            (StageState.PENDING, StageState.READY),
            (StageState.READY, StageState.RUNNING),
            (StageState.RUNNING, StageState.SUCCEEDED),
        ]

    def test_stages_in(self, machine: StageMachine):
        machine.promote_ready()
        assert machine.stages_in(StageState.PENDING) == ["archive", "verify"]


class TestFailureCascade:
    def test_failed_docs_skips_archive_and_verify(self, machine: StageMachine):
        machine.transition("docs", StageState.READY)
        machine.transition("docs", StageState.RUNNING)
        machine.transition("docs", StageState.FAILED, reason="javadoc exploded")

        assert machine.get_current_state("archive") == StageState.SKIPPED_UPSTREAM_FAILURE
        assert machine.get_current_state("verify") == StageState.SKIPPED_UPSTREAM_FAILURE
        skip = [t for t in machine.history if t.stage_id == "archive"][-1]
        assert skip.upstream_ref == "docs"
        assert "docs" in skip.reason

    def test_siblings_unaffected(self, machine: StageMachine):
        machine.transition("docs", StageState.READY)
        machine.transition("docs", StageState.RUNNING)
        machine.transition("docs", StageState.FAILED)
        assert machine.get_current_state("release_notes") == StageState.PENDING

    def test_skipped_stage_never_runs(self, machine: StageMachine):
        machine.transition("docs", StageState.READY)
        machine.transition("docs", StageState.RUNNING)
        machine.transition("docs", StageState.FAILED)
        with pytest.raises(InvalidTransitionError):
            machine.transition("archive", StageState.RUNNING)


class TestCancellation:
    def test_cancel_outstanding_leaves_running(self, machine: StageMachine):
        machine.promote_ready()
        machine.transition("docs", StageState.RUNNING)
        cancelled = machine.cancel_outstanding("fatal failure elsewhere")
        assert cancelled == ["commit_timestamp", "release_notes", "archive", "verify"]
        assert machine.get_current_state("docs") == StageState.RUNNING

    def test_cancel_outstanding_including_running(self, machine: StageMachine):
        machine.promote_ready()
        machine.transition("docs", StageState.RUNNING)
        machine.cancel_outstanding("deadline", include_running=True)
        assert machine.is_finished()
        assert machine.get_current_state("docs") == StageState.CANCELLED

    def test_terminal_states_are_final(self, machine: StageMachine):
        machine.cancel_outstanding("stop")
        for target in StageState:
            with pytest.raises(InvalidTransitionError):
                machine.transition("docs", target)
