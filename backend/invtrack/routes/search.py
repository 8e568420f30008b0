# Overview: Flask API routes for IMEI search; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..services import search_service
from invtrack.validation import ValidationError, require_string_list


search_bp = Blueprint("search", __name__, url_prefix="/api/search")


@search_bp.get("/imei/<imei>")
@require_auth
def search_imei_route(imei: str):
    if not imei.strip():
        return jsonify({"error": "Invalid request", "message": "imei is required"}), 400
    return jsonify(search_service.search_by_imei(imei)), 200


@search_bp.post("/imei/batch")
@require_auth
def batch_search_route():
    data = request.get_json(silent=True) or {}
    try:
        imeis = require_string_list(data)
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    return jsonify(search_service.batch_search_imeis(imeis)), 200
