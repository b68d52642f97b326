"""Artifact models (immutable once published)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from reprodocs.core.hasher import sha256_hex


class Artifact(BaseModel):
    """A named byte blob with a logical path inside the final archive.

    ``path`` is the logical POSIX path; ``producer`` is the stage_id that
    published it.  Artifacts are frozen: a stage cannot mutate what another
    stage published.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    content: bytes
    producer: str = ""

    @property
    def sha256(self) -> str:
        """SHA-256 hex digest of the content."""
        return sha256_hex(self.content)

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    def ref(self) -> ArtifactRef:
        """Lightweight reference suitable for reports and logs."""
        return ArtifactRef(
            name=self.path,
            content_address=f"sha256:{self.sha256}",
            producer=self.producer,
            size_bytes=self.size_bytes,
        )


class ArtifactRef(BaseModel):
    """A reference to a published artifact.

    The content_address is the SHA-256 hex digest of the artifact bytes.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    content_address: str  # "sha256:<hex>"
    producer: str = ""
    size_bytes: int = 0
