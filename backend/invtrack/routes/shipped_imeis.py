# Overview: Flask API routes for the manual shipped-IMEI dump list.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import activity_service, shipped_imei_service
from invtrack.validation import ValidationError, require_string_list


shipped_imeis_bp = Blueprint("shipped_imeis", __name__, url_prefix="/api/shipped-imeis")


@shipped_imeis_bp.get("")
@require_auth
def list_shipped_imeis_route():
    rows = shipped_imei_service.list_shipped_imeis()
    return jsonify({"imeis": [r.imei for r in rows], "items": [r.to_dict() for r in rows]}), 200


@shipped_imeis_bp.post("")
@require_auth
def add_shipped_imeis_route():
    data = request.get_json(silent=True) or {}
    try:
        imeis = require_string_list(data)
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    result = shipped_imei_service.add_shipped_imeis(
        imeis, g.current_user, meta=activity_service.request_metadata(),
    )
    return jsonify(result), 201


@shipped_imeis_bp.delete("")
@require_auth
def clear_shipped_imeis_route():
    count = shipped_imei_service.clear_shipped_imeis(g.current_user, meta=activity_service.request_metadata())
    return jsonify({"deleted": count}), 200


@shipped_imeis_bp.delete("/<imei>")
@require_auth
def delete_shipped_imei_route(imei: str):
    deleted = shipped_imei_service.delete_shipped_imei(
        imei, g.current_user, meta=activity_service.request_metadata(),
    )
    if not deleted:
        return jsonify({"error": "Not found", "message": f"{imei} is not on the list"}), 404
    return jsonify({"deleted": 1}), 200
