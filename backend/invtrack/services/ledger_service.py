# Overview: Movement ledger; append-only writes and filtered, paginated reads.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import InventoryMovement
from invtrack.time_utils import utcnow
from invtrack.validation import DEFAULT_PAGE_LIMIT, ValidationError
from .diff_service import MOVEMENT_TYPES

"""
Movement Ledger Invariants (authoritative)

- Append-only. Nothing in this module updates or deletes a movement, and the
  model rejects UPDATE/DELETE flushes outright.
- A movement is written inside the same transaction as the item mutation it
  records; the caller commits.
- performed_at is set here (microsecond precision) so insertion order and
  time order agree; id breaks ties.
- Reads are ordered performed_at DESC, id DESC. as_of filtering is inclusive:
  performed_at <= as_of.
"""

SOURCE_SHEET_SYNC = "sheet_sync"
SOURCE_OUTBOUND_SYNC = "outbound_sync"
SOURCE_MANUAL = "manual"
MOVEMENT_SOURCES = (SOURCE_SHEET_SYNC, SOURCE_OUTBOUND_SYNC, SOURCE_MANUAL)


def append_movement(
    *,
    movement_type: str,
    imei: str,
    source: str,
    item_id: int | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    from_grade: str | None = None,
    to_grade: str | None = None,
    from_lock_status: str | None = None,
    to_lock_status: str | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    sync_run_id: int | None = None,
    performed_by: str | None = None,
    performed_at: Optional[datetime] = None,
    notes: Optional[str] = None,
    snapshot: Optional[dict] = None,
) -> InventoryMovement:
    """
    Append one movement and flush so its id/uid are assigned.

    Storage errors propagate; the caller owns the transaction.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown movement type: {movement_type}")
    if source not in MOVEMENT_SOURCES:
        raise ValueError(f"Unknown movement source: {source}")

    mv = InventoryMovement(
        movement_type=movement_type,
        imei=imei,
        item_id=item_id,
        from_status=from_status,
        to_status=to_status,
        from_grade=from_grade,
        to_grade=to_grade,
        from_lock_status=from_lock_status,
        to_lock_status=to_lock_status,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        source=source,
        sync_run_id=sync_run_id,
        performed_by=performed_by,
        performed_at=performed_at or utcnow(),
        notes=notes,
        snapshot_data=snapshot,
    )
    db.session.add(mv)
    db.session.flush()
    return mv


def query_movements(
    *,
    movement_type: str | None = None,
    imei: str | None = None,
    source: str | None = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    as_of: Optional[datetime] = None,
    limit: int = DEFAULT_PAGE_LIMIT,
    offset: int = 0,
) -> dict:
    """
    Filtered page of the ledger, newest first.

    hasMore is offset + limit < total. Pass as_of (e.g. the first page's
    newest performedAt) to page over a fixed view while syncs keep appending.
    """
    if movement_type and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"movementType must be one of: {', '.join(MOVEMENT_TYPES)}")
    if source and source not in MOVEMENT_SOURCES:
        raise ValidationError(f"source must be one of: {', '.join(MOVEMENT_SOURCES)}")

    q = db.session.query(InventoryMovement)
    if movement_type:
        q = q.filter(InventoryMovement.movement_type == movement_type)
    if imei:
        q = q.filter(InventoryMovement.imei == imei)
    if source:
        q = q.filter(InventoryMovement.source == source)
    if start is not None:
        q = q.filter(InventoryMovement.performed_at >= start)
    if end is not None:
        q = q.filter(InventoryMovement.performed_at <= end)
    if as_of is not None:
        q = q.filter(InventoryMovement.performed_at <= as_of)

    total = q.count()
    rows = (
        q.order_by(InventoryMovement.performed_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )

    return {
        "movements": [r.to_dict() for r in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    }


def get_imei_history(imei: str, *, limit: int = DEFAULT_PAGE_LIMIT) -> dict:
    rows = (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.imei == imei)
        .order_by(InventoryMovement.performed_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "found": bool(rows),
        "imei": imei,
        "movements": [r.to_dict() for r in rows],
    }


def get_last_movement(imei: str) -> InventoryMovement | None:
    return (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.imei == imei)
        .order_by(InventoryMovement.performed_at.desc(), InventoryMovement.id.desc())
        .first()
    )


def count_movements_by_type(start: datetime, end: datetime) -> dict[str, int]:
    """Movement counts per type with start <= performed_at < end."""
    rows = (
        db.session.query(InventoryMovement.movement_type, db.func.count(InventoryMovement.id))
        .filter(InventoryMovement.performed_at >= start, InventoryMovement.performed_at < end)
        .group_by(InventoryMovement.movement_type)
        .all()
    )
    counts = {t: 0 for t in MOVEMENT_TYPES}
    for movement_type, n in rows:
        counts[movement_type] = n
    return counts
