"""reprodocs: reproducible documentation build pipeline.

Runs a small DAG of build stages (commit timestamp, release notes, API
docs, archive, verification) and guarantees the packaged ``docs.tar.gz`` is
byte-for-byte identical for every run of the same revision, while an
unreliable release-notes endpoint can only ever degrade a run, never fail it.
"""

__version__ = "0.1.0"
__description__ = "Reproducible documentation build pipeline"

from reprodocs.core.scheduler import Scheduler
from reprodocs.pipeline import build_default_pipeline

__all__ = ["Scheduler", "build_default_pipeline", "__version__"]
