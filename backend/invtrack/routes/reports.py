# Overview: Flask API routes for daily snapshots and range summaries.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..services import report_service
from invtrack.validation import ValidationError, parse_date_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _range_args():
    start = parse_date_arg(request.args.get("startDate"), "startDate")
    end = parse_date_arg(request.args.get("endDate"), "endDate")
    if start is None or end is None:
        default_start, default_end = report_service.default_range()
        start, end = start or default_start, end or default_end
    return start, end


@reports_bp.post("/generate-snapshot")
@require_auth
def generate_snapshot_route():
    data = request.get_json(silent=True) or {}
    try:
        day = parse_date_arg(data.get("date"), "date")
        snapshot = report_service.generate_daily_snapshot(day, data.get("location"))
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to generate daily snapshot")
        return jsonify({"error": "Failed to generate daily snapshot"}), 500
    return jsonify({"snapshot": snapshot.to_dict()}), 200


@reports_bp.get("/daily/<day>")
@require_auth
def get_daily_snapshot_route(day: str):
    try:
        parsed = parse_date_arg(day, "date")
        snapshot = report_service.get_snapshot_by_date(parsed, request.args.get("location"))
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    if snapshot is None:
        return jsonify({"error": "Not found", "message": f"No snapshot for {day}"}), 404
    return jsonify({"snapshot": snapshot.to_dict()}), 200


@reports_bp.get("/daily")
@require_auth
def list_daily_snapshots_route():
    try:
        start, end = _range_args()
        snapshots = report_service.get_snapshots_by_range(start, end, request.args.get("location"))
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    return jsonify({"snapshots": [s.to_dict() for s in snapshots]}), 200


@reports_bp.get("/summary")
@require_auth
def range_summary_route():
    try:
        start, end = _range_args()
        summary = report_service.get_date_range_summary(start, end, request.args.get("location"))
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    return jsonify(summary), 200
