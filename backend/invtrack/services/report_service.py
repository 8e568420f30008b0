# Overview: Reporting; daily snapshots, range summaries, stock statistics and the grouped stock view.

from __future__ import annotations

from collections import Counter
from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import DailyInventorySnapshot, InventoryItem, InventoryLocation
from invtrack.time_utils import day_bounds, utcnow
from invtrack.validation import ValidationError
from .diff_service import (
    ITEM_STATUS_IN_STOCK,
    MOVEMENT_ADDED,
    MOVEMENT_GRADE_CHANGED,
    MOVEMENT_SHIPPED,
    MOVEMENT_STATUS_CHANGED,
    MOVEMENT_TRANSFERRED,
)
from .ledger_service import count_movements_by_type

UNKNOWN = "Unknown"
MAX_RANGE_DAYS = 366


def _resolve_location(location_code: str | None) -> InventoryLocation | None:
    if not location_code:
        return None
    location = db.session.query(InventoryLocation).filter_by(code=location_code.strip().upper()).first()
    if location is None:
        raise ValidationError(f"Location {location_code!r} not found")
    return location


def _in_stock_query(location: InventoryLocation | None = None):
    q = db.session.query(InventoryItem).filter(InventoryItem.current_status == ITEM_STATUS_IN_STOCK)
    if location is not None:
        q = q.filter(InventoryItem.current_location_id == location.id)
    return q


def _breakdown(items, attr: str) -> dict[str, int]:
    counts = Counter((getattr(item, attr) or UNKNOWN) for item in items)
    return dict(sorted(counts.items()))


def generate_daily_snapshot(day: date | None = None, location_code: str | None = None) -> DailyInventorySnapshot:
    """
    Capture in-stock totals and the day's movement counts.

    Regenerating a date replaces the stored numbers for (date, location).
    """
    day = day or utcnow().date()
    location = _resolve_location(location_code)
    items = _in_stock_query(location).all()
    start, end = day_bounds(day)
    moved = count_movements_by_type(start, end)

    location_id = location.id if location else None
    snapshot = (
        db.session.query(DailyInventorySnapshot)
        .filter_by(snapshot_date=day, location_id=location_id)
        .first()
    )
    if snapshot is None:
        snapshot = DailyInventorySnapshot(snapshot_date=day, location_id=location_id)
        db.session.add(snapshot)

    snapshot.total_devices = len(items)
    snapshot.grade_breakdown = _breakdown(items, "grade")
    snapshot.model_breakdown = _breakdown(items, "model")
    snapshot.lock_status_breakdown = _breakdown(items, "lock_status")
    snapshot.daily_added = moved[MOVEMENT_ADDED]
    snapshot.daily_shipped = moved[MOVEMENT_SHIPPED]
    snapshot.daily_transferred = moved[MOVEMENT_TRANSFERRED]
    snapshot.daily_status_changes = moved[MOVEMENT_STATUS_CHANGED] + moved[MOVEMENT_GRADE_CHANGED]
    snapshot.created_at = utcnow()
    db.session.commit()

    current_app.logger.info("Daily snapshot %s (%s): %d devices", day.isoformat(),
                            location.code if location else "all locations", len(items))
    return snapshot


def get_snapshot_by_date(day: date, location_code: str | None = None) -> DailyInventorySnapshot | None:
    location = _resolve_location(location_code)
    return (
        db.session.query(DailyInventorySnapshot)
        .filter_by(snapshot_date=day, location_id=location.id if location else None)
        .first()
    )


def get_snapshots_by_range(start: date, end: date, location_code: str | None = None) -> list[DailyInventorySnapshot]:
    if end < start:
        raise ValidationError("endDate must not be before startDate")
    if (end - start).days > MAX_RANGE_DAYS:
        raise ValidationError(f"Date range cannot exceed {MAX_RANGE_DAYS} days")
    location = _resolve_location(location_code)
    return (
        db.session.query(DailyInventorySnapshot)
        .filter(
            DailyInventorySnapshot.snapshot_date >= start,
            DailyInventorySnapshot.snapshot_date <= end,
        )
        .filter_by(location_id=location.id if location else None)
        .order_by(DailyInventorySnapshot.snapshot_date)
        .all()
    )


def get_date_range_summary(start: date, end: date, location_code: str | None = None) -> dict:
    """
    Totals over stored snapshots plus ledger movement counts for the range.

    Movement counts come straight from the ledger, so they are complete even
    for days without a snapshot.
    """
    snapshots = get_snapshots_by_range(start, end, location_code)
    range_start, _ = day_bounds(start)
    _, range_end = day_bounds(end)
    movements = count_movements_by_type(range_start, range_end)

    starting = snapshots[0].total_devices if snapshots else 0
    ending = snapshots[-1].total_devices if snapshots else 0
    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "totalSnapshots": len(snapshots),
        "dailySnapshots": [s.to_dict() for s in snapshots],
        "movementsByType": movements,
        "summary": {
            "totalAdded": sum(s.daily_added for s in snapshots),
            "totalShipped": sum(s.daily_shipped for s in snapshots),
            "totalTransferred": sum(s.daily_transferred for s in snapshots),
            "totalStatusChanges": sum(s.daily_status_changes for s in snapshots),
            "startingInventory": starting,
            "endingInventory": ending,
            "netChange": ending - starting,
        },
    }


def inventory_stats() -> dict:
    items = _in_stock_query().all()
    by_status = dict(
        db.session.query(InventoryItem.current_status, db.func.count(InventoryItem.id))
        .group_by(InventoryItem.current_status)
        .all()
    )
    return {
        "totalInStock": len(items),
        "byStatus": by_status,
        "byGrade": _breakdown(items, "grade"),
        "byModel": _breakdown(items, "model"),
        "byLockStatus": _breakdown(items, "lock_status"),
    }


def group_inventory(location_code: str | None = None) -> dict:
    """
    In-stock devices grouped grade -> model -> gb -> color with counts.

    Recomputed from current state on every call; nothing is stored.
    """
    location = _resolve_location(location_code)
    tree: dict = {}
    total = 0
    for grade, model, gb, color in _in_stock_query(location).with_entities(
        InventoryItem.grade, InventoryItem.model, InventoryItem.gb, InventoryItem.color,
    ):
        node = tree.setdefault(grade or UNKNOWN, {})
        node = node.setdefault(model or UNKNOWN, {})
        node = node.setdefault(gb or UNKNOWN, Counter())
        node[color or UNKNOWN] += 1
        total += 1

    grades = []
    for grade, models in sorted(tree.items()):
        model_rows = []
        for model, capacities in sorted(models.items()):
            capacity_rows = []
            for gb, colors in sorted(capacities.items()):
                color_rows = [{"color": c, "count": n} for c, n in sorted(colors.items())]
                capacity_rows.append({"gb": gb, "count": sum(colors.values()), "colors": color_rows})
            model_rows.append({
                "model": model,
                "count": sum(row["count"] for row in capacity_rows),
                "capacities": capacity_rows,
            })
        grades.append({
            "grade": grade,
            "count": sum(row["count"] for row in model_rows),
            "models": model_rows,
        })

    return {"total": total, "grades": grades}


def default_range(days: int = 30) -> tuple[date, date]:
    end = utcnow().date()
    return end - timedelta(days=days - 1), end
