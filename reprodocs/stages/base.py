"""Abstract base stage with enforced lifecycle.

Every concrete stage inherits from BaseStage and implements only ``execute()``.
The ``run_stage()`` wrapper is **not overridable** — it enforces the canonical
lifecycle ordering:

    validate_inputs -> compute_input_hash -> execute
        -> validate_outputs -> compute_output_hash

This guarantees that every stage publishes exactly what it declared, and
that every published artifact is stamped with its producer.
"""

from __future__ import annotations

import abc
import logging
import threading
from collections.abc import Callable
from typing import Any, final

from pydantic import BaseModel, ConfigDict, Field

from reprodocs.core.hasher import compute_input_hash, compute_output_hash
from reprodocs.errors import (
    MissingUpstreamArtifact,
    PipelineError,
)
from reprodocs.models.artifacts import Artifact
from reprodocs.models.stages import StageDefinition

logger = logging.getLogger(__name__)


class StageExecutionError(PipelineError):
    """Raised when a stage's execute() method fails."""


class StageCancelled(PipelineError):
    """Raised by a stage that noticed its run was cancelled."""


class StageContext(BaseModel):
    """What a running stage can see: the revision and its published inputs.

    Optional inputs whose producer did not succeed are simply absent from
    ``inputs``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    run_id: str
    revision: str
    inputs: dict[str, list[Artifact]] = {}
    cancel_event: threading.Event = Field(default_factory=threading.Event)

    def has(self, ref: str) -> bool:
        return ref in self.inputs

    def get(self, ref: str) -> list[Artifact]:
        """All artifacts published under *ref*."""
        try:
            return self.inputs[ref]
        except KeyError:
            raise MissingUpstreamArtifact(f"Input {ref!r} was not published") from None

    def single(self, ref: str) -> Artifact:
        """The one artifact published under *ref*."""
        artifacts = self.get(ref)
        if len(artifacts) != 1:
            raise MissingUpstreamArtifact(
                f"Input {ref!r} holds {len(artifacts)} artifacts, expected exactly one"
            )
        return artifacts[0]

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise StageCancelled("Run was cancelled")


class StageResult(BaseModel):
    """What a stage hands back: its published outputs and an optional note.

    ``note`` carries a degradation message (the stage succeeded, but with
    fallback data) that the run report surfaces as a warning.
    ``input_hash`` and ``output_hash`` are filled in by ``run_stage``.
    """

    model_config = ConfigDict(frozen=True)

    outputs: dict[str, list[Artifact]] = {}
    note: str | None = None
    metadata: dict[str, Any] = {}
    input_hash: str | None = None
    output_hash: str | None = None


class BaseStage(abc.ABC):
    """Abstract base for all pipeline stages.

    Subclasses **must** implement:
        * ``definition`` — the stage's DAG node (id, inputs, outputs, policy).
        * ``execute(context)`` — the stage's core logic.

    Subclasses **must not** override ``run_stage()``.
    """

    # ------------------------------------------------------------------
    # Abstract interface: subclasses implement these
    # ------------------------------------------------------------------

    @property
    @abc.abstractmethod
    def definition(self) -> StageDefinition:
        """The stage's node in the pipeline graph."""
        ...

    @abc.abstractmethod
    def execute(self, context: StageContext) -> StageResult:
        """Execute the stage's core logic.

        Parameters
        ----------
        context:
            Revision, run id, published inputs and the cancellation event.

        Returns
        -------
        StageResult:
            Artifacts for every declared output reference.
        """
        ...

    @property
    def stage_id(self) -> str:
        return self.definition.stage_id

    @property
    def display_name(self) -> str:
        return self.definition.display_name

    # ------------------------------------------------------------------
    # Lifecycle (not overridable)
    # ------------------------------------------------------------------

    @final
    def run_stage(self, context: StageContext) -> StageResult:
        """Execute the full stage lifecycle.  **Do not override.**

        Ordering:
            1. ``validate_inputs(context)``
            2. ``compute_input_hash(context)``
            3. ``execute(context)``
            4. ``validate_outputs(result)``
            5. ``compute_output_hash(result)``

        Returns the StageResult with every artifact stamped with this
        stage's id and both hashes recorded.  Pipeline errors propagate
        unchanged; anything else is wrapped in StageExecutionError.
        """
        # 1. Validate inputs
        self.validate_inputs(context)

        # 2. Input hash, for tracing reproducibility across runs
        input_hash = compute_input_hash(self.stage_id, _digests(context.inputs))
        logger.info(
            "%s [%s] input_hash=%s",
            self.display_name,
            self.stage_id,
            input_hash[:12],
        )

        # 3. Execute the stage's core logic
        try:
            result = self.execute(context)
        except PipelineError as exc:
            logger.error(
                "%s [%s] execution failed: %s",
                self.display_name,
                self.stage_id,
                exc,
            )
            raise
        except Exception as exc:
            logger.error(
                "%s [%s] execution failed: %s",
                self.display_name,
                self.stage_id,
                exc,
            )
            raise StageExecutionError(
                f"Stage {self.stage_id} failed: {exc}"
            ) from exc

        # 4. Every declared output, nothing else
        result = self.validate_outputs(result)

        # 5. Output hash
        output_hash = compute_output_hash(self.stage_id, _digests(result.outputs))
        logger.info(
            "%s [%s] output_hash=%s",
            self.display_name,
            self.stage_id,
            output_hash[:12],
        )
        return result.model_copy(
            update={"input_hash": input_hash, "output_hash": output_hash}
        )

    # ------------------------------------------------------------------
    # Lifecycle helpers (not overridable)
    # ------------------------------------------------------------------

    @final
    def validate_inputs(self, context: StageContext) -> None:
        """Ensure every hard input is present in *context*."""
        missing = [ref for ref in self.definition.inputs if not context.has(ref)]
        if missing:
            raise MissingUpstreamArtifact(
                f"Cannot run {self.stage_id}: inputs not published: {', '.join(missing)}"
            )

    @final
    def validate_outputs(self, result: StageResult) -> StageResult:
        """Check declared vs. published outputs and stamp the producer."""
        declared = set(self.definition.outputs)
        published = set(result.outputs)
        missing = sorted(declared - published)
        if missing:
            raise MissingUpstreamArtifact(
                f"Stage {self.stage_id} did not publish declared outputs: {missing}"
            )
        undeclared = sorted(published - declared)
        if undeclared:
            raise StageExecutionError(
                f"Stage {self.stage_id} published undeclared outputs: {undeclared}"
            )
        stamped = {
            ref: [a.model_copy(update={"producer": self.stage_id}) for a in artifacts]
            for ref, artifacts in result.outputs.items()
        }
        return result.model_copy(update={"outputs": stamped})

    # ------------------------------------------------------------------
    # Repr
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} stage_id={self.stage_id!r} "
            f"policy={self.definition.failure_policy.value}>"
        )


class CallableStage(BaseStage):
    """Adapts a plain function to the stage lifecycle.

    The handler receives the StageContext and returns either a StageResult
    or a mapping of output reference to artifacts.
    """

    def __init__(
        self,
        definition: StageDefinition,
        handler: Callable[[StageContext], StageResult | dict[str, list[Artifact]]],
    ) -> None:
        self._definition = definition
        self._handler = handler

    @property
    def definition(self) -> StageDefinition:
        return self._definition

    def execute(self, context: StageContext) -> StageResult:
        result = self._handler(context)
        if isinstance(result, StageResult):
            return result
        return StageResult(outputs=dict(result))


def _digests(artifacts: dict[str, list[Artifact]]) -> dict[str, list[str]]:
    return {
        ref: sorted(f"{a.path}:{a.sha256}" for a in items)
        for ref, items in artifacts.items()
    }


__all__ = [
    "BaseStage",
    "CallableStage",
    "StageCancelled",
    "StageContext",
    "StageExecutionError",
    "StageResult",
]
