from __future__ import annotations

"""
Health endpoints for the receipt printer.

This blueprint exposes `/healthz`, reporting:
- Overall status ("ok" or "degraded")
- Background worker status and queue size (via receipt_printer.printing.worker.worker_status)
- Presence of saved config
- Whether a TrueType font was found for Arabic text
- Basic printer reachability (open + close on the configured target)
"""

from typing import Any, Dict, Optional

from flask import Blueprint
from PIL import ImageFont

from receipt_printer.core.config import Settings, load_config, load_settings
from receipt_printer.core.errors import TransportError
from receipt_printer.printing.discovery import resolve_target
from receipt_printer.printing.render import resolve_font
from receipt_printer.printing.transport import TARGET_LOCKS, channel_session, describe_target, open_channel
from receipt_printer.printing.worker import worker_status

health_bp = Blueprint("health", __name__)


def _check_printer(settings: Settings) -> tuple[bool, Optional[str], Optional[str]]:
    """
    Open the configured target and close it immediately, unless a print job holds it.

    Returns:
        (ok, reason, target)
    """
    try:
        target = resolve_target(settings)
    except ValueError as e:
        return False, f"no_target: {e}", None
    channel = open_channel(target, timeout=settings.connect_timeout)
    try:
        with channel_session(channel, TARGET_LOCKS.with_policy("reject")):
            pass
    except TransportError as e:
        return False, e.code, describe_target(target)
    return True, None, describe_target(target)


def _check_font(settings: Settings) -> bool:
    font = resolve_font({"font_path": settings.font_path}, settings.font_size, script="arabic")
    return isinstance(font, ImageFont.FreeTypeFont) and isinstance(getattr(font, "path", None), str)


@health_bp.get("/healthz")
def healthz():
    status: Dict[str, Any] = {"status": "ok"}
    status.update(worker_status())

    cfg = load_config()
    if not cfg:
        status["status"] = "degraded"
        status["reason"] = "no_config"
        return status, 200

    settings = load_settings(cfg)
    status["font_ok"] = _check_font(settings)

    ok, reason, target = _check_printer(settings)
    status["printer_ok"] = ok
    if target:
        status["target"] = target
    if not ok:
        status["status"] = "degraded"
        if reason:
            status["reason"] = reason
    elif not status["font_ok"]:
        status["status"] = "degraded"
        status["reason"] = "font_unavailable"

    return status, 200
