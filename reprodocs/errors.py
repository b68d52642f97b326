"""Error taxonomy for reprodocs pipelines.

Every error a run can end with derives from ``PipelineError`` and carries the
process exit code the CLI reports for it.  Errors that a component absorbs
locally (``TransientNetworkError``, ``CacheStoreCorruption``) still live here
so callers can name them when they log the degradation.
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes for a pipeline run."""

    SUCCESS = 0
    STAGE_FAILED = 1
    FATAL_STAGE_FAILURE = 2
    RUN_TIMEOUT = 3
    CACHE_STORE_ERROR = 4
    DETERMINISM_VIOLATION = 5
    CONFIGURATION_ERROR = 6


class PipelineError(RuntimeError):
    """Base class for every error raised by the pipeline core."""

    exit_code: ExitCode = ExitCode.STAGE_FAILED


# ---------------------------------------------------------------------------
# Fetch and cache
# ---------------------------------------------------------------------------


class TransientNetworkError(PipelineError):
    """A release-notes fetch failed (timeout, non-2xx, connection error).

    Always recovered inside the fetch cache; never a pipeline failure.
    """


class CacheStoreCorruption(PipelineError):
    """A persisted cache entry failed its integrity check."""


class CacheStoreError(PipelineError):
    """The persistent cache store cannot be opened or written."""

    exit_code = ExitCode.CACHE_STORE_ERROR


# ---------------------------------------------------------------------------
# Graph and scheduling
# ---------------------------------------------------------------------------


class PipelineDefinitionError(PipelineError, ValueError):
    """The stage definitions do not form a valid pipeline."""

    exit_code = ExitCode.CONFIGURATION_ERROR


class CyclicDependencyError(PipelineDefinitionError):
    """Raised when the stage graph contains a cycle."""


class InvalidTransitionError(PipelineError):
    """Raised when a requested stage state transition is not valid."""


class MissingUpstreamArtifact(PipelineError):
    """A stage finished without publishing an output it declared."""


class StageTimeout(PipelineError):
    """A stage exceeded its own time budget."""


class RunTimeout(PipelineError):
    """The whole run exceeded its deadline."""

    exit_code = ExitCode.RUN_TIMEOUT


# ---------------------------------------------------------------------------
# Packaging and verification
# ---------------------------------------------------------------------------


class PackagingDeterminismViolation(PipelineError):
    """The archive assembler cannot normalize its inputs.

    Always aborts the run: a non-deterministic archive is worse than none.
    """

    exit_code = ExitCode.DETERMINISM_VIOLATION


class ReproducibilityError(PipelineError):
    """Two builds of the same revision produced different archives."""

    exit_code = ExitCode.FATAL_STAGE_FAILURE
