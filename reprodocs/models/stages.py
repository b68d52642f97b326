"""Stage state machine models — deterministic transitions and typed stage nodes."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StageState(str, Enum):
    """Strict state model for each pipeline stage."""

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED_UPSTREAM_FAILURE = "skipped_upstream_failure"
    CANCELLED = "cancelled"


class FailurePolicy(str, Enum):
    """What a stage failure means for the rest of the run."""

    FAIL_TO_START_DOWNSTREAM = "fail_to_start_downstream"
    CONTINUE_WITH_FALLBACK = "continue_with_fallback"
    FATAL = "fatal"


class ExecutionKind(str, Enum):
    """Coarse classification of the work a stage performs."""

    NETWORK_FETCH = "network_fetch"
    LOCAL_COMPUTE = "local_compute"
    PACKAGE = "package"


# Valid state transitions, enforced by StageMachine.
# Terminal states have no outgoing transitions.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.PENDING: {
        StageState.READY,
        StageState.SKIPPED_UPSTREAM_FAILURE,
        StageState.CANCELLED,
    },
    StageState.READY: {
        StageState.RUNNING,
        StageState.SKIPPED_UPSTREAM_FAILURE,
        StageState.CANCELLED,
    },
    StageState.RUNNING: {
        StageState.SUCCEEDED,
        StageState.FAILED,
        StageState.CANCELLED,
    },
    StageState.SUCCEEDED: set(),  # terminal
    StageState.FAILED: set(),  # terminal
    StageState.SKIPPED_UPSTREAM_FAILURE: set(),  # terminal
    StageState.CANCELLED: set(),  # terminal
}

TERMINAL_STATES: frozenset[StageState] = frozenset(
    state for state, targets in VALID_TRANSITIONS.items() if not targets
)


class StageDefinition(BaseModel):
    """A pipeline stage node: what it consumes, what it publishes, how it fails.

    ``inputs`` are hard dependencies: the stage never runs unless every one of
    them was published.  ``optional_inputs`` are consumed when available and
    silently absent when their producer failed.
    """

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    inputs: list[str] = []
    optional_inputs: list[str] = []
    outputs: list[str] = []
    failure_policy: FailurePolicy = FailurePolicy.FAIL_TO_START_DOWNSTREAM
    execution_kind: ExecutionKind = ExecutionKind.LOCAL_COMPUTE
    timeout_seconds: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _check_references(self) -> StageDefinition:
        overlap = set(self.inputs) & set(self.optional_inputs)
        if overlap:
            raise ValueError(
                f"{self.stage_id}: references both hard and optional: {sorted(overlap)}"
            )
        if len(set(self.outputs)) != len(self.outputs):
            raise ValueError(f"{self.stage_id}: duplicate output references")
        return self

    @property
    def all_inputs(self) -> list[str]:
        """Hard inputs followed by optional ones."""
        return [*self.inputs, *self.optional_inputs]


class StageTransition(BaseModel):
    """Records a single state transition for the run history."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    from_state: StageState
    to_state: StageState
    reason: str | None = None  # populated for failures, skips and cancellations
    upstream_ref: str | None = None  # stage_id that caused a skip
