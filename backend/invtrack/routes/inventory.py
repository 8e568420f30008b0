# Overview: Flask API routes for current inventory views; stats and the grouped stock tree.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..extensions import db
from ..models import InventoryLocation
from ..services import report_service
from invtrack.validation import ValidationError


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/stats")
@require_auth
def inventory_stats_route():
    return jsonify(report_service.inventory_stats()), 200


@inventory_bp.get("/grouped")
@require_auth
def grouped_inventory_route():
    try:
        result = report_service.group_inventory(request.args.get("location") or None)
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    return jsonify(result), 200


@inventory_bp.get("/locations")
@require_auth
def list_locations_route():
    locations = db.session.query(InventoryLocation).order_by(InventoryLocation.code).all()
    return jsonify({"locations": [loc.to_dict() for loc in locations]}), 200
