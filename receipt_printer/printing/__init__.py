"""
Printing subsystem for the receipt printer.

This package groups printing-related functionality:

- receipt/layout: the receipt model and the line layout every renderer shares
- codepages/protocol: legacy codepage transcoding and the ESC/POS command encoder
- render/raster: shaped text rasterization and monochrome raster packing
- transport/host: printer channels, per-target locks and OS print surfaces
- strategies/pipeline: strategy fallback from direct text down to the print dialog
- discovery/worker: printer lookup and the background job queue (worker loads on first use)

For convenience, common functions are re-exported for easy import.
"""

from .receipt import *
from .protocol import *
from .codepages import *
from .layout import *
from .raster import *
from .render import *
from .host import *
from .transport import *
from .strategies import *
from .pipeline import *
from .discovery import *

_WORKER_EXPORTS = frozenset(
    ("JOBS", "JOBS_MAX", "JOB_QUEUE", "WORKERS", "ensure_worker", "enqueue_receipt", "get_job", "list_jobs",
     "make_pipeline", "worker_status")
)


def __getattr__(name):
    # the job queue reads its environment on import; load it on first use
    if name in _WORKER_EXPORTS:
        from . import worker

        return getattr(worker, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
