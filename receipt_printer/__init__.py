"""
Receipt printer package

This module provides an application factory with minimal wiring:
- Configures logging via receipt_printer.core.logging
- Creates a Flask app serving the JSON API and health endpoint
- Registers blueprints (non-failing optional imports)
- Optionally ensures the background workers are started
"""

from __future__ import annotations

import importlib
import logging
import os
import uuid
from collections.abc import Sequence
from typing import Optional

from flask import Flask, g

from receipt_printer.core.logging import configure_logging

logger = logging.getLogger(__name__)


def _maybe_register_blueprint(app: Flask, import_path: str, attr: str) -> None:
    """
    Try to import a blueprint from import_path and register it if found.
    Missing modules/attributes are logged at debug level and skipped.
    """
    try:
        mod = importlib.import_module(import_path)
    except ImportError as e:
        app.logger.debug(f"Blueprint not registered ({import_path}.{attr}): {e}")
        return
    bp = getattr(mod, attr, None)
    if bp is not None:
        app.register_blueprint(bp)
        app.logger.info(f"Registered blueprint: {import_path}.{attr}")


def _set_request_id() -> None:
    """
    Assign a request ID for logging if not set by a filter elsewhere.
    """
    g.request_id = getattr(g, "request_id", uuid.uuid4().hex)


def create_app(
    config_overrides: Optional[dict] = None,
    blueprints: Optional[Sequence[tuple[str, str]]] = None,
    register_worker: bool = True,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: values to inject into app.config after defaults
    - blueprints: optional list of (import_path, attribute) tuples to register
      If None, the API and health blueprints are registered.
    - register_worker: if True, starts the background print workers

    Returns:
    - Flask app instance
    """
    app = Flask("receipt_printer")
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("RECEIPTPRINT_MAX_CONTENT_LENGTH", 256 * 1024))
    app.json.ensure_ascii = False  # type: ignore[attr-defined]

    configure_logging()
    app.logger.info("Receipt printer app created")

    app.url_map.strict_slashes = False

    @app.before_request
    def _before_request():
        _set_request_id()

    default_blueprints = [
        ("receipt_printer.web.health", "health_bp"),
        ("receipt_printer.web.api", "api_bp"),
    ]
    for import_path, attr in blueprints or default_blueprints:
        _maybe_register_blueprint(app, import_path, attr)

    if register_worker:
        from receipt_printer.printing.worker import ensure_worker

        ensure_worker()
        app.logger.info("Background workers ensured")

    if config_overrides:
        app.config.update(config_overrides)

    return app


__all__ = ["create_app"]
