"""Documentation stage.

Runs the configured documentation generator against the source tree and
publishes every generated file under the archive prefix (``apidocs/`` by
default).

Outputs:
    apidocs -- one artifact per generated file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from reprodocs.core.docs_generator import DocumentationGenerator
from reprodocs.models.artifacts import Artifact
from reprodocs.models.stages import ExecutionKind, FailurePolicy, StageDefinition
from reprodocs.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

STAGE_ID = "docs"
OUTPUT_REF = "apidocs"
DEFAULT_PREFIX = "apidocs"


class GenerateDocsStage(BaseStage):
    """Publishes generated API documentation.

    Parameters
    ----------
    generator:
        Backend that turns the source tree into files.
    source_dir:
        Checked-out source tree.
    prefix:
        Directory inside the archive that receives the files.
    timeout_seconds:
        Optional budget for this stage alone.
    """

    def __init__(
        self,
        generator: DocumentationGenerator,
        source_dir: Path,
        *,
        prefix: str = DEFAULT_PREFIX,
        timeout_seconds: float | None = None,
    ) -> None:
        self._generator = generator
        self._source_dir = Path(source_dir)
        self._prefix = prefix.strip("/")
        self._definition = StageDefinition(
            stage_id=STAGE_ID,
            display_name="API Documentation",
            outputs=[OUTPUT_REF],
            failure_policy=FailurePolicy.FAIL_TO_START_DOWNSTREAM,
            execution_kind=ExecutionKind.LOCAL_COMPUTE,
            timeout_seconds=timeout_seconds,
        )

    @property
    def definition(self) -> StageDefinition:
        return self._definition

    def execute(self, context: StageContext) -> StageResult:
        files = self._generator.generate(self._source_dir)
        context.raise_if_cancelled()
        artifacts = [
            Artifact(path=f"{self._prefix}/{name}" if self._prefix else name, content=data)
            for name, data in sorted(files.items())
        ]
        logger.info("Collected %d documentation files for %s", len(artifacts), context.revision)
        return StageResult(outputs={OUTPUT_REF: artifacts}, metadata={"files": len(artifacts)})
