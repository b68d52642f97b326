"""Canonical hashing helpers for content addressing and archive digests."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(data: bytes) -> str:
    """Content-address raw bytes in the ``sha256:<hex>`` form."""
    return f"sha256:{sha256_hex(data)}"


def strip_digest_prefix(digest: str) -> str:
    """Strip the ``sha256:`` prefix from a content address, if present."""
    return digest.strip().lower().removeprefix("sha256:")


def revision_key(revision: str) -> str:
    """Filesystem-safe key for a revision identifier.

    Commit hashes are already safe; anything else (branch names, tags) is
    hashed so it can never escape the store directory.
    """
    if revision and all(c in "0123456789abcdef" for c in revision.lower()):
        return revision.lower()
    return sha256_hex(revision.encode("utf-8"))


def compute_input_hash(stage_id: str, inputs: dict[str, list[str]]) -> str:
    """SHA-256 of canonical(stage_id + input reference digests).

    If inputs haven't changed, a deterministic stage should produce the
    same output hash.
    """
    payload = {"stage_id": stage_id, "inputs": inputs}
    return sha256_hex(canonical_json_bytes(payload))


def compute_output_hash(stage_id: str, outputs: dict[str, list[str]]) -> str:
    """SHA-256 of canonical(stage_id + output reference digests)."""
    payload = {"stage_id": stage_id, "outputs": outputs}
    return sha256_hex(canonical_json_bytes(payload))
