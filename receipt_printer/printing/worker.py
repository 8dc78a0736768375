"""
Background worker and job state for the receipt printer.

This module owns:
- A thread-backed job queue served by a small pool of worker threads
- In-memory job registry with basic lifecycle (queued -> running -> success/error)
- Public helpers to enqueue receipts and query their status

It is Flask-agnostic so it can be used from both the HTTP API and the CLI. Several
workers may print at once; jobs aimed at the same printer are serialized by the
per-target locks inside the pipeline.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from receipt_printer.core.config import Settings, load_settings
from receipt_printer.core.errors import ExhaustedStrategies, PrintError
from receipt_printer.core.logging import bind_job_id

from .discovery import resolve_target
from .pipeline import PrintPipeline
from .receipt import Receipt
from .strategies import default_attempts
from .transport import TransportTarget

logger = logging.getLogger(__name__)

JOB_QUEUE: queue.Queue[Dict[str, Any]] = queue.Queue()
JOBS: Dict[str, Dict[str, Any]] = {}
JOBS_LOCK = threading.RLock()
JOBS_MAX = int(os.environ.get("RECEIPTPRINT_JOBS_MAX", "200"))
WORKERS = max(1, int(os.environ.get("RECEIPTPRINT_WORKERS", "2")))

WORKER_THREADS: List[threading.Thread] = []
WORKER_STARTED = False
_START_LOCK = threading.Lock()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _prune_jobs_if_needed() -> None:
    with JOBS_LOCK:
        while len(JOBS) > JOBS_MAX:
            oldest_id = min(JOBS.values(), key=lambda j: j.get("created_at", ""))["id"]
            JOBS.pop(oldest_id, None)


def _create_job(kind: str, meta: Optional[Dict[str, Any]] = None) -> str:
    job_id = uuid.uuid4().hex
    now = _utc_now_iso()
    job = {
        "id": job_id,
        "type": kind,
        "status": "queued",
        "created_at": now,
        "updated_at": now,
    }
    if meta:
        job.update(meta)
    with JOBS_LOCK:
        JOBS[job_id] = job
        _prune_jobs_if_needed()
    return job_id


def _update_job(job_id: Optional[str], **updates: Any) -> None:
    if not job_id:
        return
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        if not job:
            return
        job.update(updates)
        job["updated_at"] = _utc_now_iso()


def make_pipeline(settings: Settings) -> PrintPipeline:
    return PrintPipeline(settings)


def _run_job(job: Dict[str, Any]) -> None:
    job_id = job.get("job_id")
    settings: Settings = job.get("settings") or load_settings()
    target: Optional[TransportTarget] = job.get("target")
    receipt: Receipt = job["receipt"]
    with bind_job_id(job_id):
        _update_job(job_id, status="running")
        try:
            target = target or resolve_target(settings)
            attempts = default_attempts(target, settings, job.get("strategies"))
            result = make_pipeline(settings).run(receipt, attempts)
        except ExhaustedStrategies as e:
            logger.error("Receipt job failed: %s", e)
            _update_job(
                job_id,
                status="error",
                error=e.describe(),
                failures=[f.as_dict() for f in e.history],
                trace=[s.value for s in e.trace],
            )
            return
        except (PrintError, ValueError) as e:
            logger.error("Receipt job failed: %s", e)
            _update_job(job_id, status="error", error=str(e))
            return
        _update_job(job_id, status="success", result=result.as_dict())
        logger.info("Receipt job printed via %s", result.strategy.kind)


def _print_worker() -> None:
    """
    Worker loop that processes queued jobs. Never raises; logs and updates job status.
    """
    while True:
        job = JOB_QUEUE.get()
        try:
            if job.get("type") == "receipt":
                _run_job(job)
            else:
                logger.warning("Unknown job type: %s", job.get("type"))
                _update_job(job.get("job_id"), status="error", error="unknown_job_type")
        except Exception as e:
            logger.exception("Job failed: %s", e)
            _update_job(job.get("job_id"), status="error", error=str(e))
        finally:
            JOB_QUEUE.task_done()


def ensure_worker(count: Optional[int] = None) -> None:
    """
    Ensure the background worker threads are running (idempotent).
    """
    global WORKER_STARTED
    wanted = count or WORKERS
    with _START_LOCK:
        WORKER_THREADS[:] = [t for t in WORKER_THREADS if t.is_alive()]
        for i in range(len(WORKER_THREADS), wanted):
            t = threading.Thread(target=_print_worker, daemon=True, name=f"receipt-printer-worker-{i}")
            t.start()
            WORKER_THREADS.append(t)
        WORKER_STARTED = True
    logger.info("Background print workers running: %d", len(WORKER_THREADS))


def enqueue_receipt(
    receipt: Receipt,
    strategies: Optional[Sequence[str]] = None,
    target: Optional[TransportTarget] = None,
    settings: Optional[Settings] = None,
    origin: Optional[str] = None,
) -> str:
    """
    Enqueue a 'receipt' job. Returns the job id.
    """
    meta: Dict[str, Any] = {"items": receipt.item_count}
    if strategies:
        meta["strategies"] = list(strategies)
    if origin:
        meta["origin"] = origin
    job_id = _create_job("receipt", meta=meta)
    JOB_QUEUE.put(
        {
            "type": "receipt",
            "job_id": job_id,
            "receipt": receipt,
            "strategies": list(strategies) if strategies else None,
            "target": target,
            "settings": settings,
        }
    )
    logger.info("enqueue_receipt: job id=%s queue_size=%d", job_id, JOB_QUEUE.qsize())
    return job_id


def get_job(job_id: str) -> Optional[Dict[str, Any]]:
    """
    Retrieve a job by id.
    """
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        return dict(job) if job else None


def list_jobs() -> List[Dict[str, Any]]:
    """
    Return a list of jobs sorted by created_at descending.
    """
    with JOBS_LOCK:
        items = [dict(v) for v in JOBS.values()]
    items.sort(key=lambda j: j.get("created_at", ""), reverse=True)
    return items


def worker_status() -> Dict[str, Any]:
    """
    Return basic worker/queue status.
    """
    alive = sum(1 for t in WORKER_THREADS if t.is_alive())
    return {
        "worker_started": WORKER_STARTED,
        "worker_alive": alive > 0,
        "workers": alive,
        "queue_size": JOB_QUEUE.qsize(),
    }


__all__ = [
    "JOBS",
    "JOBS_MAX",
    "JOB_QUEUE",
    "WORKERS",
    "ensure_worker",
    "enqueue_receipt",
    "get_job",
    "list_jobs",
    "make_pipeline",
    "worker_status",
]
