# Overview: Manual movements (ship, transfer, grade/lock update) recorded in the same ledger as the syncs.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import InventoryItem, InventoryLocation, InventoryMovement
from invtrack.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .diff_service import (
    ITEM_STATUS_SHIPPED,
    MOVEMENT_GRADE_CHANGED,
    MOVEMENT_SHIPPED,
    MOVEMENT_STATUS_CHANGED,
    MOVEMENT_TRANSFERRED,
    imei_error,
    normalize_imei,
)
from .ledger_service import SOURCE_MANUAL, append_movement

"""
Manual Movements

- Each IMEI is its own transaction: one failure never undoes the others.
- Rows are locked and re-read before mutation; a racing sync surfaces as
  StaleDataError and the IMEI is retried on fresh state.
- Results are {"success", <count>, "movements", "errors"}; per-IMEI problems
  land in errors, never raise.
"""


class MovementError(Exception):
    """A manual movement that cannot be applied to one IMEI."""
    pass


class ItemNotFoundError(MovementError):
    pass


def _load_locked(imei: str) -> InventoryItem:
    item = lock_for_update(db.session.query(InventoryItem).filter_by(imei=imei)).first()
    if item is None:
        raise ItemNotFoundError(f"Item with IMEI {imei} not found")
    return item


def _normalized(imeis: list[str]) -> tuple[list[str], list[dict]]:
    valid, errors, seen = [], [], set()
    for raw in imeis:
        imei = normalize_imei(raw)
        reason = imei_error(imei)
        if reason:
            errors.append({"imei": raw, "error": reason})
        elif imei not in seen:
            seen.add(imei)
            valid.append(imei)
    return valid, errors


def _each(imeis: list[str], apply_one) -> tuple[list[InventoryMovement], list[dict]]:
    valid, errors = _normalized(imeis)
    movements = []
    for imei in valid:
        try:
            movements.append(run_with_retry(lambda: apply_one(imei)))
        except MovementError as exc:
            db.session.rollback()
            errors.append({"imei": imei, "error": str(exc)})
    return movements, errors


def ship_items(imeis: list[str], *, notes: str | None = None, performed_by: str | None = None) -> dict:
    def _ship(imei: str) -> InventoryMovement:
        item = _load_locked(imei)
        if item.current_status == ITEM_STATUS_SHIPPED:
            raise MovementError(f"Item {imei} is already shipped")

        before = item.state_dict()
        from_status = item.current_status
        item.current_status = ITEM_STATUS_SHIPPED
        db.session.flush()

        mv = append_movement(
            movement_type=MOVEMENT_SHIPPED,
            imei=imei,
            item_id=item.id,
            source=SOURCE_MANUAL,
            from_status=from_status,
            to_status=ITEM_STATUS_SHIPPED,
            from_grade=item.grade,
            to_grade=item.grade,
            from_lock_status=item.lock_status,
            to_lock_status=item.lock_status,
            from_location_id=item.current_location_id,
            to_location_id=item.current_location_id,
            performed_by=performed_by,
            notes=notes,
            snapshot={"before": before, "after": item.state_dict()},
        )
        db.session.commit()
        return mv

    movements, errors = _each(imeis, _ship)
    current_app.logger.info("Manual ship by %s: %d shipped, %d errors", performed_by, len(movements), len(errors))
    return {
        "success": not errors,
        "shipped": len(movements),
        "movements": [m.to_dict() for m in movements],
        "errors": errors,
    }


def transfer_items(
    imeis: list[str],
    to_location_code: str,
    *,
    notes: str | None = None,
    performed_by: str | None = None,
) -> dict:
    code = (to_location_code or "").strip().upper()
    location = db.session.query(InventoryLocation).filter_by(code=code).first() if code else None
    if location is None:
        raise MovementError(f"Location {to_location_code!r} not found")
    if not location.is_active:
        raise MovementError(f"Location {location.code} is not active")
    location_id = location.id

    def _transfer(imei: str) -> InventoryMovement:
        item = _load_locked(imei)
        if item.current_location_id == location_id:
            raise MovementError(f"Item {imei} is already at {code}")

        before = item.state_dict()
        from_location_id = item.current_location_id
        item.current_location_id = location_id
        db.session.flush()
        db.session.refresh(item)

        mv = append_movement(
            movement_type=MOVEMENT_TRANSFERRED,
            imei=imei,
            item_id=item.id,
            source=SOURCE_MANUAL,
            from_status=item.current_status,
            to_status=item.current_status,
            from_location_id=from_location_id,
            to_location_id=location_id,
            performed_by=performed_by,
            notes=notes,
            snapshot={"before": before, "after": item.state_dict()},
        )
        db.session.commit()
        return mv

    movements, errors = _each(imeis, _transfer)
    current_app.logger.info("Manual transfer to %s by %s: %d moved, %d errors",
                            code, performed_by, len(movements), len(errors))
    return {
        "success": not errors,
        "transferred": len(movements),
        "movements": [m.to_dict() for m in movements],
        "errors": errors,
    }


def update_item_status(
    imei: str,
    *,
    grade: str | None = None,
    lock_status: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
) -> dict:
    """
    Manual grade and/or lock status change.

    One movement per call carrying every changed pair: grade_changed when the
    grade moved, status_changed for a lock-only change.
    """
    normalized = normalize_imei(imei)
    reason = imei_error(normalized)
    if reason:
        raise MovementError(reason)

    grade = (grade or "").strip() or None
    lock_status = (lock_status or "").strip() or None
    if grade is None and lock_status is None:
        raise MovementError("grade or lockStatus is required")

    def _update() -> InventoryMovement | None:
        item = _load_locked(normalized)
        grade_changed = grade is not None and grade != item.grade
        lock_changed = lock_status is not None and lock_status != item.lock_status
        if not (grade_changed or lock_changed):
            db.session.rollback()
            return None

        before = item.state_dict()
        from_grade, from_lock = item.grade, item.lock_status
        if grade_changed:
            item.grade = grade
        if lock_changed:
            item.lock_status = lock_status
        db.session.flush()

        mv = append_movement(
            movement_type=MOVEMENT_GRADE_CHANGED if grade_changed else MOVEMENT_STATUS_CHANGED,
            imei=normalized,
            item_id=item.id,
            source=SOURCE_MANUAL,
            from_status=item.current_status,
            to_status=item.current_status,
            from_grade=from_grade,
            to_grade=item.grade,
            from_lock_status=from_lock,
            to_lock_status=item.lock_status,
            from_location_id=item.current_location_id,
            to_location_id=item.current_location_id,
            performed_by=performed_by,
            performed_at=utcnow(),
            notes=notes,
            snapshot={"before": before, "after": item.state_dict()},
        )
        db.session.commit()
        return mv

    mv = run_with_retry(_update)
    return {
        "success": True,
        "changed": mv is not None,
        "movement": mv.to_dict() if mv else None,
    }
