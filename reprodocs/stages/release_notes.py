"""Release notes stage.

Fetches the marketing release notes for the revision through the
cache-backed fetcher.  The fetcher never raises, so this stage always
succeeds: a stale or missing fetch becomes a degradation note on the run
report instead of a failure.

Outputs:
    release-notes -- one artifact, ``release-notes.txt`` at the archive root
                     (empty when nothing could be fetched or cached).
"""

from __future__ import annotations

import logging

from reprodocs.core.fetcher import ReleaseNotesFetcher
from reprodocs.models.artifacts import Artifact
from reprodocs.models.stages import ExecutionKind, FailurePolicy, StageDefinition
from reprodocs.stages.base import BaseStage, StageContext, StageResult

logger = logging.getLogger(__name__)

STAGE_ID = "release_notes"
OUTPUT_REF = "release-notes"
DEFAULT_ARCHIVE_PATH = "release-notes.txt"


class FetchReleaseNotesStage(BaseStage):
    """Publishes the release notes, degraded to cached or empty content on failure.

    Parameters
    ----------
    fetcher:
        Revision-addressed fetcher with its persistent cache.
    archive_path:
        Logical path of the notes file inside the archive.
    refresh:
        Bypass a fresh cache entry and go to the network first.
    timeout_seconds:
        Budget for the whole stage, cache lookup included.
    """

    def __init__(
        self,
        fetcher: ReleaseNotesFetcher,
        *,
        archive_path: str = DEFAULT_ARCHIVE_PATH,
        refresh: bool = False,
        timeout_seconds: float | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._archive_path = archive_path
        self._refresh = refresh
        self._definition = StageDefinition(
            stage_id=STAGE_ID,
            display_name="Release Notes",
            outputs=[OUTPUT_REF],
            failure_policy=FailurePolicy.CONTINUE_WITH_FALLBACK,
            execution_kind=ExecutionKind.NETWORK_FETCH,
            timeout_seconds=timeout_seconds,
        )

    @property
    def definition(self) -> StageDefinition:
        return self._definition

    def execute(self, context: StageContext) -> StageResult:
        result = self._fetcher.fetch(
            context.revision, refresh=self._refresh, cancel_event=context.cancel_event
        )
        note = None
        if result.degraded:
            note = f"release notes {result.status.value}"
            if result.error:
                note += f" ({result.error})"
        return StageResult(
            outputs={
                OUTPUT_REF: [Artifact(path=self._archive_path, content=result.content)]
            },
            note=note,
            metadata={"status": result.status.value, "from_cache": result.from_cache},
        )
