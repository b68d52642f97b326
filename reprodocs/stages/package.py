"""Archive stage.

Packages the release notes and the documentation tree into the
deterministic ``.tar.gz``, stamped with the commit timestamp.  The bytes stay
in memory; the verify stage writes them out once they are proven
reproducible.

Outputs:
    archive -- one artifact holding the archive bytes.
"""

from __future__ import annotations

import logging

from reprodocs.core.archive import ArchiveAssembler
from reprodocs.core.hasher import sha256_hex
from reprodocs.models.artifacts import Artifact
from reprodocs.models.stages import ExecutionKind, FailurePolicy, StageDefinition
from reprodocs.stages import commit_timestamp, docs, release_notes
from reprodocs.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

STAGE_ID = "archive"
OUTPUT_REF = "archive"
DEFAULT_NAME = "docs.tar.gz"

# References packaged into the archive, in declaration order.
CONTENT_REFS: tuple[str, ...] = (release_notes.OUTPUT_REF, docs.OUTPUT_REF)


def archive_contents(context: StageContext) -> list[Artifact]:
    """Every artifact that belongs inside the archive."""
    return [artifact for ref in CONTENT_REFS for artifact in context.get(ref)]


class AssembleArchiveStage(BaseStage):
    """Publishes the reproducible documentation archive.

    Parameters
    ----------
    assembler:
        Deterministic tar.gz builder.
    archive_name:
        Logical name of the published archive.
    """

    def __init__(self, assembler: ArchiveAssembler, archive_name: str = DEFAULT_NAME) -> None:
        self._assembler = assembler
        self._archive_name = archive_name
        self._definition = StageDefinition(
            stage_id=STAGE_ID,
            display_name="Archive",
            inputs=[commit_timestamp.OUTPUT_REF, *CONTENT_REFS],
            outputs=[OUTPUT_REF],
            failure_policy=FailurePolicy.FATAL,
            execution_kind=ExecutionKind.PACKAGE,
        )

    @property
    def definition(self) -> StageDefinition:
        return self._definition

    def execute(self, context: StageContext) -> StageResult:
        timestamp = commit_timestamp.read_timestamp(context)
        archive = self._assembler.assemble(
            context.revision, timestamp, archive_contents(context)
        )
        context.raise_if_cancelled()

        digest = sha256_hex(archive)
        logger.info("Archive sha256 %s  %s", digest, self._archive_name)
        return StageResult(
            outputs={OUTPUT_REF: [Artifact(path=self._archive_name, content=archive)]},
            metadata={"sha256": digest, "size_bytes": len(archive)},
        )
