from __future__ import annotations

"""
JSON API (v1) for the receipt printer.

Endpoints:
- POST /api/v1/receipts          : Submit a receipt print job (async). Returns 202 + Location
- GET  /api/v1/jobs/<job_id>     : Fetch job status, including the per-strategy failure history
- GET  /api/v1/jobs              : Recent jobs, newest first
- GET  /api/v1/receipts/sample   : The demo receipt as JSON
- POST /api/v1/receipts/preview  : Render a receipt to PNG (nothing is printed)

Payload shape (POST /api/v1/receipts):
{
  "receipt": {"header": {...}, "items": [...], "totals": {...}, "footer": [...], "currency": str},
  "strategies": ["direct_text", "raster_bitmap", ...],
  "target": {"type": "serial|network|spooler|host", ...}
}
"""

import io

from flask import Blueprint, current_app, jsonify, request, send_file, url_for
from pydantic import ValidationError

from receipt_printer.core.config import load_settings
from receipt_printer.printing.layout import layout_receipt
from receipt_printer.printing.receipt import sample_receipt
from receipt_printer.printing.render import render_document
from receipt_printer.printing.strategies import render_config
from receipt_printer.printing.worker import ensure_worker, enqueue_receipt, get_job, list_jobs

from . import schemas

api_bp = Blueprint("api", __name__, url_prefix="/api/v1")


def _json_error(msg: str, code: int = 400):
    return jsonify({"error": msg}), code


def _validation_message(e: ValidationError) -> str:
    errors = e.errors()
    if not errors:
        return str(e)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    msg = first.get("msg") or str(e)
    return f"{loc}: {msg}" if loc else msg


def _settings():
    try:
        return load_settings()
    except ValueError as e:
        current_app.logger.warning("Invalid config, using defaults: %s", e)
        return load_settings(config={})


@api_bp.post("/receipts")
def submit_receipt():
    """
    Validate a receipt submission and enqueue it.
    Returns 202 Accepted with a Location header to the job status resource.
    """
    if not request.is_json:
        return _json_error("Expected application/json body", 415)

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("invalid JSON payload", 400)
    try:
        req = schemas.PrintRequest.model_validate(data)
    except ValidationError as e:
        return _json_error(_validation_message(e), 400)

    target = req.target.to_target() if req.target else None
    try:
        ensure_worker()
        job_id = enqueue_receipt(req.receipt, strategies=req.strategies, target=target, origin="api")
    except Exception as e:
        current_app.logger.exception("Failed to enqueue job: %s", e)
        return _json_error(f"Failed to enqueue job: {e!s}", 500)

    api_href = url_for("api.job_status", job_id=job_id)
    resp_model = schemas.JobAcceptedResponse(id=job_id, status="queued", links=schemas.Links(self=api_href))
    resp = jsonify(resp_model.model_dump())
    resp.status_code = 202
    resp.headers["Location"] = api_href
    return resp


@api_bp.get("/jobs/<job_id>")
def job_status(job_id: str):
    """
    Return job status JSON, 404 if not found.
    """
    job = get_job(job_id)
    if job:
        return job
    return _json_error("not_found", 404)


@api_bp.get("/jobs")
def jobs_index():
    return {"jobs": list_jobs()}


@api_bp.get("/receipts/sample")
def sample():
    return jsonify(sample_receipt().model_dump(mode="json"))


@api_bp.post("/receipts/preview")
def preview():
    """
    Render the receipt exactly as the raster strategy would and return it as PNG.
    """
    if not request.is_json:
        return _json_error("Expected application/json body", 415)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("invalid JSON payload", 400)
    try:
        req = schemas.PreviewRequest.model_validate(data)
    except ValidationError as e:
        return _json_error(_validation_message(e), 400)

    settings = _settings()
    lines = layout_receipt(req.receipt, settings.receipt_columns)
    bitmap = render_document(
        lines,
        req.width or settings.receipt_width,
        req.font_size or settings.font_size,
        render_config(settings),
    )
    buf = io.BytesIO()
    bitmap.to_image().save(buf, format="PNG")
    buf.seek(0)
    resp = send_file(buf, mimetype="image/png", download_name="receipt.png")
    resp.headers["X-Receipt-Height"] = str(bitmap.height)
    return resp
