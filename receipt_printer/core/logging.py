"""
Logging utilities for the receipt printer.

- RequestIdFilter attaches request_id (Flask request, or the print job running on the
  current worker thread) and path to every record
- JsonFormatter emits structured logs when RECEIPTPRINT_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console
"""

from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

_job_context = threading.local()


@contextmanager
def bind_job_id(job_id: Optional[str]) -> Iterator[None]:
    """Tag log records emitted on this thread with ``job_id`` for the duration of the block."""
    previous = getattr(_job_context, "job_id", None)
    _job_context.job_id = job_id
    try:
        yield
    finally:
        _job_context.job_id = previous


class RequestIdFilter(logging.Filter):
    """
    Attach request-scoped metadata (request_id, path) to log records.
    Outside a Flask request the worker job id is used, if any.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        record.request_id = getattr(_job_context, "job_id", None) or "-"
        record.path = "-"
        from flask import g, has_request_context, request  # lazy import

        if has_request_context():
            record.request_id = getattr(g, "request_id", record.request_id)
            record.path = request.path
        return True


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter that includes timestamp, level, logger, message, request_id, and path.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "path", None)
        if path is not None:
            base["path"] = path
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging.

    Behavior:
    - Sets root logger to RECEIPTPRINT_LOG_LEVEL (INFO by default)
    - Clears any existing handlers to avoid duplicates on reload
    - Chooses JSON or plain formatter based on RECEIPTPRINT_JSON_LOGS
    - Prefer systemd's JournalHandler, fallback to StreamHandler
    - Adds RequestIdFilter so formatters can reference %(request_id)s
    - Ensures Flask app logger propagates to root (no separate handlers)

    Returns the configured root logger.
    """
    root = logging.getLogger()
    root.setLevel((level or os.environ.get("RECEIPTPRINT_LOG_LEVEL", "INFO")).upper())

    root.handlers = []

    json_logs = os.environ.get("RECEIPTPRINT_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s %(request_id)s %(name)s: %(message)s")

    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler: logging.Handler = JournalHandler()
        handler.setFormatter(formatter)
    except Exception:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    flask_logger = logging.getLogger("flask.app")
    flask_logger.handlers = []
    flask_logger.propagate = True

    return root


__all__ = ["JsonFormatter", "RequestIdFilter", "bind_job_id", "configure_logging"]
