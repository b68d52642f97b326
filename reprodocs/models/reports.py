"""Run and verification report models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from reprodocs.errors import ExitCode
from reprodocs.models.artifacts import Artifact, ArtifactRef
from reprodocs.models.stages import StageState, StageTransition


class StageOutcome(BaseModel):
    """Final state of one stage after a run."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    state: StageState
    error: str | None = None
    note: str | None = None  # degradation note, e.g. release notes fallback
    duration_seconds: float = 0.0
    artifacts: list[ArtifactRef] = []
    input_hash: str | None = None
    output_hash: str | None = None


class RunReport(BaseModel):
    """Everything a caller needs to decide what a run produced."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    revision: str
    outcomes: list[StageOutcome]
    transitions: list[StageTransition] = []
    exit_code: ExitCode = ExitCode.SUCCESS
    failed_stage: str | None = None
    failure_reason: str | None = None
    timed_out: bool = False
    artifacts: dict[str, list[Artifact]] = {}

    @property
    def succeeded(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS

    @property
    def warnings(self) -> list[str]:
        """Degradation notes from stages that still succeeded."""
        return [
            f"{o.stage_id}: {o.note}"
            for o in self.outcomes
            if o.note and o.state == StageState.SUCCEEDED
        ]

    def outcome(self, stage_id: str) -> StageOutcome:
        for o in self.outcomes:
            if o.stage_id == stage_id:
                return o
        raise KeyError(stage_id)

    def state_of(self, stage_id: str) -> StageState:
        return self.outcome(stage_id).state


class EntryDigest(BaseModel):
    """Normalized header and content digest of one archive entry."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: str  # "file" or "dir"
    mode: int
    uid: int
    gid: int
    uname: str
    gname: str
    mtime: int
    size: int
    sha256: str = ""


class VerificationReport(BaseModel):
    """Result of comparing an archive against another archive or a hash."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    actual_sha256: str
    expected_sha256: str
    first_difference: str | None = None
    detail: str | None = None
