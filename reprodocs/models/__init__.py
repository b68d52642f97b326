"""reprodocs data models — all Pydantic v2, all frozen (immutable)."""

from reprodocs.models.artifacts import Artifact, ArtifactRef
from reprodocs.models.cache import CacheEntry, FetchResult, FetchStatus
from reprodocs.models.config import RunConfig, new_run_id
from reprodocs.models.reports import (
    EntryDigest,
    RunReport,
    StageOutcome,
    VerificationReport,
)
from reprodocs.models.stages import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ExecutionKind,
    FailurePolicy,
    StageDefinition,
    StageState,
    StageTransition,
)

__all__ = [
    # stages
    "StageState",
    "FailurePolicy",
    "ExecutionKind",
    "StageDefinition",
    "StageTransition",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    # artifacts
    "Artifact",
    "ArtifactRef",
    # cache
    "CacheEntry",
    "FetchResult",
    "FetchStatus",
    # config
    "RunConfig",
    "new_run_id",
    # reports
    "EntryDigest",
    "RunReport",
    "StageOutcome",
    "VerificationReport",
]
