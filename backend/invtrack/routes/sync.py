# Overview: Flask API routes for sync runs; trigger, status and history.

"""
Sync Routes

One response schema for every trigger: {"run": SyncRun}
- 200: run completed
- 502: run failed (fetch or storage); body also carries "message"
- 409: another run is in progress (no run created)

Source selection per request:
- multipart "file" upload (csv / json / xlsx) -> TabularFileSource
- JSON body {"rows": [...]}                    -> StaticSource
- otherwise                                    -> Google Sheets from config
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import activity_service
from ..services.outbound_service import run_outbound_sync
from ..services.sync_run_service import (
    RUN_STATUS_COMPLETED,
    RUN_TYPES,
    SyncInProgressError,
    get_latest_sync_status,
    list_sync_runs,
)
from ..services.sync_service import run_sheet_sync
from ..sources import GoogleSheetsSource, StaticSource, TabularFileSource
from invtrack.validation import ValidationError, parse_pagination


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _source_from_request():
    if "file" in request.files:
        upload = request.files["file"]
        return TabularFileSource(upload.stream, upload.filename or "")

    data = request.get_json(silent=True)
    if isinstance(data, dict) and "rows" in data:
        rows = data["rows"]
        if not isinstance(rows, list):
            raise ValidationError("rows must be a list")
        return StaticSource(rows)

    return GoogleSheetsSource.from_config(current_app.config)


def _run_response(run):
    body = {"run": run.to_dict()}
    if run.status == RUN_STATUS_COMPLETED:
        return jsonify(body), 200
    body["error"] = "Sync failed"
    body["message"] = run.error_message
    return jsonify(body), 502


def _trigger(runner):
    try:
        source = _source_from_request()
        run = runner(source, triggered_by=g.current_user.email)
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    except SyncInProgressError as e:
        return jsonify({
            "error": "Sync in progress",
            "message": str(e),
            "activeRunId": e.active_run_id,
        }), 409
    except Exception:
        current_app.logger.exception("Failed to run sync")
        return jsonify({"error": "Sync failed", "message": "Unexpected server error"}), 500

    activity_service.log_sync_triggered(g.current_user, run, **activity_service.request_metadata())
    return _run_response(run)


@sync_bp.post("/sheets")
@require_auth
def sync_sheets_route():
    return _trigger(run_sheet_sync)


@sync_bp.post("/outbound")
@require_auth
def sync_outbound_route():
    return _trigger(run_outbound_sync)


@sync_bp.get("/status")
@require_auth
def sync_status_route():
    run_type = request.args.get("runType")
    if run_type and run_type not in RUN_TYPES:
        return jsonify({"error": "Invalid request", "message": f"runType must be one of: {', '.join(RUN_TYPES)}"}), 400
    run = get_latest_sync_status(run_type)
    return jsonify({"run": run.to_dict() if run else None}), 200


@sync_bp.get("/runs")
@require_auth
def list_runs_route():
    try:
        limit, _ = parse_pagination(request.args, default_limit=20, max_limit=200)
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    run_type = request.args.get("runType") or None
    runs = list_sync_runs(run_type=run_type, limit=limit)
    return jsonify({"runs": [r.to_dict() for r in runs]}), 200
