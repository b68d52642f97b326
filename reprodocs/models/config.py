"""Per-run configuration model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def new_run_id() -> str:
    """Return a fresh run identifier (``rd-<12 hex>``)."""
    return f"rd-{uuid.uuid4().hex[:12]}"


class RunConfig(BaseModel):
    """Per-run configuration, fixed when the run starts.

    ``revision`` is the only input that may influence archive bytes;
    ``run_id`` and ``created_at`` are bookkeeping for logs and reports.
    """

    model_config = ConfigDict(frozen=True)

    revision: str
    run_id: str = Field(default_factory=new_run_id)
    run_timeout_seconds: float | None = Field(default=1800.0, gt=0)
    max_workers: int = Field(default=4, ge=1)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
