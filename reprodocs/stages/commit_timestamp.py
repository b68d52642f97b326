"""Commit timestamp stage.

Resolves the canonical ``YYYY-MM-DD HH:MM:SS`` UTC timestamp of the
revision.  Every archive entry of the run is stamped with it, so it is the
only notion of time the packaging stages ever see.

Outputs:
    commit-timestamp -- one artifact holding the timestamp as ASCII text.
"""

from __future__ import annotations

import logging

from reprodocs.core.timestamp import TimestampResolver
from reprodocs.models.artifacts import Artifact
from reprodocs.models.stages import ExecutionKind, FailurePolicy, StageDefinition
from reprodocs.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

STAGE_ID = "commit_timestamp"
OUTPUT_REF = "commit-timestamp"
ARTIFACT_PATH = "COMMIT-TIMESTAMP"


class ResolveTimestampStage(BaseStage):
    """Publishes the revision's commit timestamp."""

    def __init__(self, resolver: TimestampResolver) -> None:
        self._resolver = resolver
        self._definition = StageDefinition(
            stage_id=STAGE_ID,
            display_name="Commit Timestamp",
            outputs=[OUTPUT_REF],
            failure_policy=FailurePolicy.FATAL,
            execution_kind=ExecutionKind.LOCAL_COMPUTE,
        )

    @property
    def definition(self) -> StageDefinition:
        return self._definition

    def execute(self, context: StageContext) -> StageResult:
        timestamp, used_fallback = self._resolver.resolve_with_status(context.revision)
        logger.info("Commit timestamp for %s: %s", context.revision, timestamp)
        note = None
        if used_fallback:
            note = f"commit metadata unavailable, using fallback timestamp {timestamp}"
        return StageResult(
            outputs={
                OUTPUT_REF: [Artifact(path=ARTIFACT_PATH, content=timestamp.encode("ascii"))]
            },
            note=note,
            metadata={"timestamp": timestamp, "used_fallback": used_fallback},
        )


def read_timestamp(context: StageContext) -> str:
    """The timestamp published by this stage, as seen by a downstream stage."""
    return context.single(OUTPUT_REF).content.decode("ascii")
