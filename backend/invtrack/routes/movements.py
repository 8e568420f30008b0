# Overview: Flask API routes for the movement ledger and manual movements.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import ledger_service, movement_service
from ..services.movement_service import ItemNotFoundError, MovementError
from invtrack.validation import (
    MAX_PAGE_LIMIT,
    ValidationError,
    parse_datetime_arg,
    parse_pagination,
    require_string_list,
)

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- startDate / endDate / asOf are inclusive bounds on performedAt.
- Pass the first page's newest performedAt as asOf to page over a fixed view.
"""

movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


def _bad_request(e: Exception):
    return jsonify({"error": "Invalid request", "message": str(e)}), 400


@movements_bp.get("")
@require_auth
def list_movements_route():
    try:
        limit, offset = parse_pagination(request.args)
        result = ledger_service.query_movements(
            movement_type=request.args.get("movementType") or None,
            imei=(request.args.get("imei") or "").strip() or None,
            source=request.args.get("source") or None,
            start=parse_datetime_arg(request.args.get("startDate"), "startDate"),
            end=parse_datetime_arg(request.args.get("endDate"), "endDate"),
            as_of=parse_datetime_arg(request.args.get("asOf"), "asOf"),
            limit=limit,
            offset=offset,
        )
    except ValidationError as e:
        return _bad_request(e)
    return jsonify(result), 200


@movements_bp.get("/<imei>/history")
@require_auth
def imei_history_route(imei: str):
    try:
        limit, _ = parse_pagination(request.args, max_limit=MAX_PAGE_LIMIT)
    except ValidationError as e:
        return _bad_request(e)
    return jsonify(ledger_service.get_imei_history(imei.strip(), limit=limit)), 200


@movements_bp.post("/ship")
@require_auth
def ship_route():
    data = request.get_json(silent=True) or {}
    try:
        imeis = require_string_list(data)
        result = movement_service.ship_items(
            imeis,
            notes=data.get("notes"),
            performed_by=g.current_user.email,
        )
    except ValidationError as e:
        return _bad_request(e)
    except Exception:
        current_app.logger.exception("Failed to ship items")
        return jsonify({"error": "Failed to ship items"}), 500
    return jsonify(result), 200


@movements_bp.post("/transfer")
@require_auth
def transfer_route():
    data = request.get_json(silent=True) or {}
    to_location = data.get("toLocation")
    if not to_location:
        return _bad_request(ValidationError("toLocation is required"))
    try:
        imeis = require_string_list(data)
        result = movement_service.transfer_items(
            imeis,
            to_location,
            notes=data.get("notes"),
            performed_by=g.current_user.email,
        )
    except (ValidationError, MovementError) as e:
        return _bad_request(e)
    except Exception:
        current_app.logger.exception("Failed to transfer items")
        return jsonify({"error": "Failed to transfer items"}), 500
    return jsonify(result), 200


@movements_bp.post("/update-status")
@require_auth
def update_status_route():
    data = request.get_json(silent=True) or {}
    imei = (data.get("imei") or "").strip()
    if not imei:
        return _bad_request(ValidationError("imei is required"))
    try:
        result = movement_service.update_item_status(
            imei,
            grade=data.get("grade"),
            lock_status=data.get("lockStatus"),
            notes=data.get("notes"),
            performed_by=g.current_user.email,
        )
    except ItemNotFoundError as e:
        return jsonify({"error": "Not found", "message": str(e)}), 404
    except MovementError as e:
        return _bad_request(e)
    except Exception:
        current_app.logger.exception("Failed to update item status")
        return jsonify({"error": "Failed to update item status"}), 500
    return jsonify(result), 200
