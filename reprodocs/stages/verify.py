"""Verification stage.

Re-derives the archive from the same published inputs (fed in reverse
order) and asserts the bytes match, then optionally checks the digest
against one recorded by an earlier run or another host.  Only an archive
that passes both checks is written to its well-known path, atomically, so a
failed verification leaves nothing new on disk.

Outputs:
    archive-digest -- one ``sha256sum``-style line for the archive.
"""

from __future__ import annotations

import logging
from pathlib import Path

from reprodocs.core.archive import ArchiveAssembler
from reprodocs.core.verifier import ReproducibilityVerifier
from reprodocs.errors import ReproducibilityError
from reprodocs.models.artifacts import Artifact
from reprodocs.models.reports import VerificationReport
from reprodocs.models.stages import ExecutionKind, FailurePolicy, StageDefinition
from reprodocs.stages import commit_timestamp, package
from reprodocs.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

STAGE_ID = "verify"
OUTPUT_REF = "archive-digest"


def _describe(report: VerificationReport) -> str:
    message = f"sha256 {report.actual_sha256} != {report.expected_sha256}"
    if report.first_difference:
        message += f"; first differing entry {report.first_difference!r}"
    if report.detail:
        message += f" ({report.detail})"
    return message


class VerifyArchiveStage(BaseStage):
    """Fails the run when the archive is not reproducible.

    Parameters
    ----------
    assembler:
        Assembler configured exactly like the one that built the archive.
    expected_sha256:
        Digest recorded by another build of the same revision, if any.
    output_path:
        Where the verified archive is written; ``None`` keeps it in memory.
    """

    def __init__(
        self,
        assembler: ArchiveAssembler,
        *,
        expected_sha256: str | None = None,
        verifier: ReproducibilityVerifier | None = None,
        output_path: Path | None = None,
    ) -> None:
        self._assembler = assembler
        self._output_path = Path(output_path) if output_path is not None else None
        self._expected = expected_sha256
        self._verifier = verifier or ReproducibilityVerifier()
        self._definition = StageDefinition(
            stage_id=STAGE_ID,
            display_name="Reproducibility Check",
            inputs=[package.OUTPUT_REF, commit_timestamp.OUTPUT_REF, *package.CONTENT_REFS],
            outputs=[OUTPUT_REF],
            failure_policy=FailurePolicy.FATAL,
            execution_kind=ExecutionKind.LOCAL_COMPUTE,
        )

    @property
    def definition(self) -> StageDefinition:
        return self._definition

    def execute(self, context: StageContext) -> StageResult:
        archive = context.single(package.OUTPUT_REF)
        report = self._verifier.rebuild_and_compare(
            self._assembler,
            context.revision,
            commit_timestamp.read_timestamp(context),
            package.archive_contents(context),
            archive.content,
        )
        if not report.passed:
            raise ReproducibilityError(f"Rebuilt archive differs: {_describe(report)}")

        if self._expected:
            recorded = self._verifier.check_hash(archive.content, self._expected)
            if not recorded.passed:
                raise ReproducibilityError(
                    f"Archive differs from recorded digest: {_describe(recorded)}"
                )

        context.raise_if_cancelled()
        if self._output_path is not None:
            ArchiveAssembler.write(self._output_path, archive.content)
            logger.info("Wrote %s", self._output_path)

        line = f"{report.actual_sha256}  {archive.path}\n"
        return StageResult(
            outputs={
                OUTPUT_REF: [Artifact(path=f"{archive.path}.sha256", content=line.encode("ascii"))]
            },
            metadata={"sha256": report.actual_sha256},
        )
