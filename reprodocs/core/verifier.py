"""Reproducibility verification.

Compares an archive against a second, independently produced archive or a
previously recorded hash.  On mismatch it names the first entry that
differs, to point at the regression; it never tries to repair anything.
"""

from __future__ import annotations

import gzip
import io
import logging
import tarfile
import zlib
from collections.abc import Iterable

from reprodocs.core.archive import ArchiveAssembler
from reprodocs.core.hasher import sha256_hex, strip_digest_prefix
from reprodocs.models.artifacts import Artifact
from reprodocs.models.reports import EntryDigest, VerificationReport

logger = logging.getLogger(__name__)


class UnreadableArchiveError(ValueError):
    """Raised when archive internals cannot be listed."""


def list_entries(archive: bytes) -> list[EntryDigest]:
    """Return normalized header fields and content digests, in archive order."""
    try:
        raw = gzip.decompress(archive)
        entries: list[EntryDigest] = []
        with tarfile.open(fileobj=io.BytesIO(raw), mode="r:") as tar:
            for member in tar:
                digest = ""
                if member.isfile():
                    handle = tar.extractfile(member)
                    digest = sha256_hex(handle.read() if handle else b"")
                entries.append(
                    EntryDigest(
                        name=member.name,
                        kind="dir" if member.isdir() else "file" if member.isfile() else "other",
                        mode=member.mode,
                        uid=member.uid,
                        gid=member.gid,
                        uname=member.uname,
                        gname=member.gname,
                        mtime=int(member.mtime),
                        size=member.size,
                        sha256=digest,
                    )
                )
        return entries
    except (OSError, EOFError, zlib.error, tarfile.TarError) as exc:
        raise UnreadableArchiveError(f"Cannot read archive: {exc}") from exc


def first_difference(left: list[EntryDigest], right: list[EntryDigest]) -> tuple[str | None, str]:
    """Locate the first differing entry of two entry listings.

    Returns ``(entry_name, description)``; ``entry_name`` is ``None`` when
    the listings are identical.
    """
    for a, b in zip(left, right):
        if a.name != b.name:
            return a.name, f"entry order differs: {a.name!r} vs {b.name!r}"
        if a != b:
            fields = [
                field
                for field in EntryDigest.model_fields
                if getattr(a, field) != getattr(b, field)
            ]
            return a.name, f"{a.name!r} differs in {', '.join(fields)}"
    if len(left) != len(right):
        longer = left if len(left) > len(right) else right
        extra = longer[min(len(left), len(right))]
        return extra.name, f"{extra.name!r} present in only one archive"
    return None, "entries identical"


class ReproducibilityVerifier:
    """Asserts two builds of one revision produced identical bytes."""

    def compare(self, actual: bytes, expected: bytes) -> VerificationReport:
        """Compare two archives byte-for-byte."""
        actual_hash = sha256_hex(actual)
        expected_hash = sha256_hex(expected)
        if actual_hash == expected_hash:
            logger.info("Reproducibility verified: sha256=%s", actual_hash)
            return VerificationReport(
                passed=True,
                actual_sha256=actual_hash,
                expected_sha256=expected_hash,
            )

        difference: str | None = None
        try:
            difference, detail = first_difference(list_entries(actual), list_entries(expected))
            if difference is None:
                detail = "entries identical; compression or padding bytes differ"
        except UnreadableArchiveError as exc:
            detail = f"archive unreadable: {exc}"

        logger.error(
            "Reproducibility mismatch: %s != %s (%s)", actual_hash, expected_hash, detail
        )
        return VerificationReport(
            passed=False,
            actual_sha256=actual_hash,
            expected_sha256=expected_hash,
            first_difference=difference,
            detail=detail,
        )

    def check_hash(self, archive: bytes, expected_sha256: str) -> VerificationReport:
        """Compare an archive against a recorded digest (``sha256:<hex>`` or hex)."""
        actual_hash = sha256_hex(archive)
        expected_hash = strip_digest_prefix(expected_sha256)
        passed = actual_hash == expected_hash
        if passed:
            logger.info("Archive matches recorded hash %s", expected_hash)
        else:
            logger.error("Archive hash %s does not match recorded %s", actual_hash, expected_hash)
        return VerificationReport(
            passed=passed,
            actual_sha256=actual_hash,
            expected_sha256=expected_hash,
            detail=None if passed else "archive differs from recorded hash",
        )

    def rebuild_and_compare(
        self,
        assembler: ArchiveAssembler,
        revision: str,
        timestamp: str,
        artifacts: Iterable[Artifact | tuple[str, bytes]],
        archive: bytes,
    ) -> VerificationReport:
        """Re-derive the archive from its inputs and compare with *archive*.

        The inputs are reversed before reassembly so a hidden dependence on
        input order shows up as a mismatch.
        """
        rebuilt = assembler.assemble(revision, timestamp, list(artifacts)[::-1])
        return self.compare(archive, rebuilt)
