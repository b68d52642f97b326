"""Pipeline stages of the standard documentation build.

Usage::

    from reprodocs.stages import STAGE_ORDER, ResolveTimestampStage

    stage = ResolveTimestampStage(resolver)
    result = stage.run_stage(context)

Stages are constructed with their collaborators, so there is no
zero-argument registry; :func:`reprodocs.pipeline.build_default_pipeline`
wires all of them from settings.
"""

from __future__ import annotations

from reprodocs.stages.base import (
    BaseStage,
    CallableStage,
    StageCancelled,
    StageContext,
    StageExecutionError,
    StageResult,
)
from reprodocs.stages.commit_timestamp import ResolveTimestampStage
from reprodocs.stages.docs import GenerateDocsStage
from reprodocs.stages.package import AssembleArchiveStage
from reprodocs.stages.release_notes import FetchReleaseNotesStage
from reprodocs.stages.verify import VerifyArchiveStage

# ---------------------------------------------------------------------------
# Stage classes by stage_id, in declaration order of the standard pipeline
# ---------------------------------------------------------------------------

STAGE_CLASSES: dict[str, type[BaseStage]] = {
    "commit_timestamp": ResolveTimestampStage,
    "release_notes": FetchReleaseNotesStage,
    "docs": GenerateDocsStage,
    "archive": AssembleArchiveStage,
    "verify": VerifyArchiveStage,
}

STAGE_ORDER: list[str] = list(STAGE_CLASSES)

__all__ = [
    # Base
    "BaseStage",
    "CallableStage",
    "StageCancelled",
    "StageContext",
    "StageExecutionError",
    "StageResult",
    # Registry
    "STAGE_CLASSES",
    "STAGE_ORDER",
    # Concrete stages
    "ResolveTimestampStage",
    "FetchReleaseNotesStage",
    "GenerateDocsStage",
    "AssembleArchiveStage",
    "VerifyArchiveStage",
]
