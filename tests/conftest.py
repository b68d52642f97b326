"""Shared test fixtures for reprodocs."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from reprodocs.config import PipelineSettings
from reprodocs.core.cache_store import FileCacheStore, MemoryCacheStore
from reprodocs.core.timestamp import StaticCommitMetadataProvider
from reprodocs.models.artifacts import Artifact
from reprodocs.models.stages import FailurePolicy, StageDefinition
from reprodocs.stages.base import CallableStage, StageContext, StageResult

REVISION = "abc123"
COMMIT_TIME = "2024-03-01 10:00:00"
NOTES_URL = "https://notes.example.test/{revision}.txt"


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def revision() -> str:
    return REVISION


@pytest.fixture
def metadata_provider() -> StaticCommitMetadataProvider:
    """Commit metadata for the standard test revision."""
    return StaticCommitMetadataProvider({REVISION: COMMIT_TIME})


@pytest.fixture
def memory_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def file_store(tmp_dir: Path) -> FileCacheStore:
    """Provide a FileCacheStore rooted in a temp directory."""
    return FileCacheStore(tmp_dir / "cache")


# ---------------------------------------------------------------------------
# Notes endpoint doubles
# ---------------------------------------------------------------------------


class RecordingEndpoint:
    """httpx MockTransport handler that records every request it serves."""

    def __init__(self, status_code: int = 200, body: bytes = b"", error: Exception | None = None):
        self.status_code = status_code
        self.body = body
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.body)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def make_endpoint() -> Callable[..., RecordingEndpoint]:
    """Factory fixture: an endpoint with a custom status, body or error."""
    return RecordingEndpoint


@pytest.fixture
def notes_endpoint() -> RecordingEndpoint:
    """A healthy endpoint serving release notes."""
    return RecordingEndpoint(200, b"Release notes for abc123\n")


@pytest.fixture
def broken_endpoint() -> RecordingEndpoint:
    """An endpoint that answers HTTP 500."""
    return RecordingEndpoint(500, b"internal error")


@pytest.fixture
def offline_endpoint() -> RecordingEndpoint:
    """An endpoint that cannot be reached at all."""
    return RecordingEndpoint(error=httpx.ConnectError("connection refused"))


# ---------------------------------------------------------------------------
# Source tree and settings
# ---------------------------------------------------------------------------


@pytest.fixture
def source_dir(tmp_dir: Path) -> Path:
    """A checkout whose documentation has already been generated."""
    root = tmp_dir / "src"
    docs = root / "target" / "reports" / "apidocs"
    (docs / "com" / "example").mkdir(parents=True)
    (docs / "index.html").write_text("<html>index</html>\n")
    (docs / "package-list").write_text("com.example\n")
    (docs / "com" / "example" / "Widget.html").write_text("<html>Widget</html>\n")
    return root


@pytest.fixture
def settings(tmp_dir: Path, source_dir: Path) -> PipelineSettings:
    """Settings pointing every path into the temp directory."""
    return PipelineSettings(
        _env_file=None,
        source_dir=source_dir,
        cache_dir=tmp_dir / "cache",
        archive_path=tmp_dir / "out" / "docs.tar.gz",
        notes_url=NOTES_URL,
        run_timeout_seconds=60,
    )


# ---------------------------------------------------------------------------
# Stage factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_stage() -> Callable[..., CallableStage]:
    """Factory fixture: a CallableStage publishing one artifact per output."""

    def _factory(
        stage_id: str,
        *,
        inputs: list[str] | None = None,
        optional_inputs: list[str] | None = None,
        outputs: list[str] | None = None,
        policy: FailurePolicy = FailurePolicy.FAIL_TO_START_DOWNSTREAM,
        handler: Callable[[StageContext], Any] | None = None,
        **overrides: Any,
    ) -> CallableStage:
        outputs = outputs if outputs is not None else [stage_id]
        definition = StageDefinition(
            stage_id=stage_id,
            display_name=stage_id.replace("_", " ").title(),
            inputs=inputs or [],
            optional_inputs=optional_inputs or [],
            outputs=outputs,
            failure_policy=policy,
            **overrides,
        )

        def _default(context: StageContext) -> StageResult:
            return StageResult(
                outputs={
                    ref: [Artifact(path=f"{ref}.txt", content=f"{stage_id}:{ref}".encode())]
                    for ref in outputs
                }
            )

        return CallableStage(definition, handler or _default)

    return _factory
