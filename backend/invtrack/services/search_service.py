# Overview: IMEI lookups joining current state, location and last movement.

from __future__ import annotations

from ..extensions import db
from ..models import InventoryItem, InventoryMovement
from invtrack.time_utils import to_utc_z, utcnow
from .diff_service import ITEM_STATUS_IN_STOCK, normalize_imei


def _last_movements(imeis: list[str]) -> dict[str, InventoryMovement]:
    """Newest movement per IMEI (performed_at DESC, id DESC)."""
    if not imeis:
        return {}
    rows = (
        db.session.query(InventoryMovement)
        .filter(InventoryMovement.imei.in_(imeis))
        .order_by(InventoryMovement.performed_at.desc(), InventoryMovement.id.desc())
        .all()
    )
    latest: dict[str, InventoryMovement] = {}
    for mv in rows:
        latest.setdefault(mv.imei, mv)
    return latest


def _result(item: InventoryItem, last: InventoryMovement | None, now) -> dict:
    in_stock = item.current_status == ITEM_STATUS_IN_STOCK
    return {
        "found": True,
        "imei": item.imei,
        "currentStatus": item.current_status,
        "currentLocation": item.location.to_dict() if item.location else None,
        "grade": item.grade,
        "lockStatus": item.lock_status,
        "model": item.model,
        "gb": item.gb,
        "color": item.color,
        "sku": item.sku,
        "supplier": item.supplier,
        "masterCarton": item.master_carton,
        "lastMovement": {
            "type": last.movement_type,
            "date": to_utc_z(last.performed_at),
            "source": last.source,
            "notes": last.notes,
        } if last else None,
        "daysInInventory": (now - item.first_seen_at).days if in_stock else None,
        "firstSeenAt": to_utc_z(item.first_seen_at),
        "lastSeenAt": to_utc_z(item.last_seen_at),
    }


def search_by_imei(imei: str) -> dict:
    """Unknown IMEIs are a normal result (found: false), never an error."""
    normalized = normalize_imei(imei) or ""
    item = db.session.query(InventoryItem).filter_by(imei=normalized).first()
    if item is None:
        return {"found": False, "imei": normalized}
    return _result(item, _last_movements([normalized]).get(normalized), utcnow())


def batch_search_imeis(imeis: list[str]) -> dict:
    normalized: list[str] = []
    for raw in imeis:
        imei = normalize_imei(raw)
        if imei and imei not in normalized:
            normalized.append(imei)

    items = {
        item.imei: item
        for item in db.session.query(InventoryItem).filter(InventoryItem.imei.in_(normalized))
    } if normalized else {}
    last = _last_movements(list(items))
    now = utcnow()

    results = [
        _result(items[imei], last.get(imei), now) if imei in items else {"found": False, "imei": imei}
        for imei in normalized
    ]
    return {
        "results": results,
        "summary": {
            "total": len(normalized),
            "found": len(items),
            "notFound": len(normalized) - len(items),
        },
    }
