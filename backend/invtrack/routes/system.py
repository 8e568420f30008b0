# backend/invtrack/routes/system.py
"""
System health endpoint.

Reports database reachability and the sync pipeline's state so a stuck or
failing run is visible without reading logs.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import InventoryItem, InventoryMovement, SyncRun
from ..services.sync_run_service import RUN_STATUS_FAILED, RUN_STATUS_IN_PROGRESS
from invtrack.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        item_count = db.session.query(InventoryItem).count()
        movement_count = db.session.query(InventoryMovement).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "items": item_count,
                "movements": movement_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_sync_health() -> dict:
    """
    degraded when the latest run failed; an in-progress run is healthy.
    """
    start_time = time.time()
    try:
        latest = db.session.query(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).first()
        active = db.session.query(SyncRun).filter_by(status=RUN_STATUS_IN_PROGRESS).first()
        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "latest_run_id": latest.id if latest else None,
            "latest_run_status": latest.status if latest else None,
            "latest_run_started_at": to_utc_z(latest.started_at) if latest else None,
            "active_run_id": active.id if active else None,
        }
        if latest is not None and latest.status == RUN_STATUS_FAILED:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": latest.error_message,
                "details": details,
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Sync health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Sync status unavailable",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    sync_health = check_sync_health()

    all_checks = [database_health, sync_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sync": sync_health,
        },
    }, http_status
