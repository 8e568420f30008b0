# Overview: Flask API routes for admin user management and activity auditing.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import activity_service, auth_service, user_service
from ..services.auth_service import ROLE_ADMIN
from ..services.user_service import UserNotFoundError
from invtrack.time_utils import day_bounds, utcnow
from invtrack.validation import ConflictError, ValidationError, parse_date_arg, parse_pagination


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    return jsonify({"users": [u.to_dict() for u in user_service.list_users()]}), 200


@admin_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            data.get("email"),
            data.get("password"),
            name=data.get("name"),
            role=data.get("role") or auth_service.ROLE_POWER_USER,
        )
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": "Conflict", "message": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Failed to create user"}), 500
    return jsonify({"user": user.to_dict()}), 201


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    is_active = data.get("isActive")
    if is_active is not None and not isinstance(is_active, bool):
        return jsonify({"error": "Invalid request", "message": "isActive must be a boolean"}), 400
    try:
        user = user_service.update_user(
            g.current_user,
            user_id,
            role=data.get("role"),
            is_active=is_active,
            name=data.get("name"),
            meta=activity_service.request_metadata(),
        )
    except UserNotFoundError as e:
        return jsonify({"error": "Not found", "message": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": "Conflict", "message": str(e)}), 409
    return jsonify({"user": user.to_dict()}), 200


@admin_bp.get("/users/<int:user_id>/activity")
@require_auth
@require_role(ROLE_ADMIN)
def user_activity_route(user_id: int):
    try:
        limit, _ = parse_pagination(request.args)
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    entries = activity_service.get_user_recent_activity(user_id, limit=limit)
    stats = activity_service.get_user_activity_stats(user_id)
    return jsonify({
        "activity": [e.to_dict() for e in entries],
        "stats": stats.to_dict() if stats else None,
    }), 200


@admin_bp.get("/activity")
@require_auth
@require_role(ROLE_ADMIN)
def recent_activity_route():
    try:
        limit, _ = parse_pagination(request.args, default_limit=100)
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400
    entries = activity_service.get_recent_activity(limit=limit, activity_type=request.args.get("activityType") or None)
    return jsonify({"activity": [e.to_dict() for e in entries]}), 200


@admin_bp.get("/activity/stats")
@require_auth
@require_role(ROLE_ADMIN)
def activity_stats_route():
    try:
        start = parse_date_arg(request.args.get("startDate"), "startDate")
        end = parse_date_arg(request.args.get("endDate"), "endDate")
    except ValidationError as e:
        return jsonify({"error": "Invalid request", "message": str(e)}), 400

    today = utcnow().date()
    range_start, _ = day_bounds(start or today)
    _, range_end = day_bounds(end or today)
    return jsonify({
        "users": [s.to_dict() for s in activity_service.get_all_user_activity_stats()],
        "range": activity_service.get_activity_stats_for_range(range_start, range_end),
    }), 200
