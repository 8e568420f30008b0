# Overview: Manually maintained "IMEI dump" list of devices known to have shipped.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import ShippedImei, User
from . import activity_service
from .diff_service import imei_error, normalize_imei


def list_shipped_imeis() -> list[ShippedImei]:
    return db.session.query(ShippedImei).order_by(ShippedImei.created_at.desc(), ShippedImei.id.desc()).all()


def add_shipped_imeis(imeis: list[str], user: User, *, meta: dict | None = None) -> dict:
    """
    Add IMEIs to the dump list.

    Idempotent: IMEIs already on the list are skipped. Invalid IMEIs are
    reported, not stored. Inserts are committed in chunks of
    SHIPPED_IMEI_CHUNK_SIZE.
    """
    chunk_size = current_app.config["SHIPPED_IMEI_CHUNK_SIZE"]

    valid: list[str] = []
    invalid: list[dict] = []
    seen: set[str] = set()
    for raw in imeis:
        imei = normalize_imei(raw)
        reason = imei_error(imei)
        if reason:
            invalid.append({"imei": raw, "reason": reason})
            continue
        if imei not in seen:
            seen.add(imei)
            valid.append(imei)

    added: list[str] = []
    for start in range(0, len(valid), chunk_size):
        chunk = valid[start:start + chunk_size]
        existing = {
            imei for (imei,) in
            db.session.query(ShippedImei.imei).filter(ShippedImei.imei.in_(chunk))
        }
        new = [imei for imei in chunk if imei not in existing]
        db.session.add_all([ShippedImei(imei=imei, created_by_user_id=user.id) for imei in new])
        db.session.commit()
        added.extend(new)

    if added:
        activity_service.log_imei_dump_add(user, added, **(meta or {}))
    current_app.logger.info("IMEI dump: %s added %d (skipped %d existing, %d invalid)",
                            user.email, len(added), len(valid) - len(added), len(invalid))

    return {
        "added": len(added),
        "skipped": len(valid) - len(added),
        "invalid": invalid,
        "total": db.session.query(ShippedImei).count(),
    }


def delete_shipped_imei(imei: str, user: User, *, meta: dict | None = None) -> bool:
    imei = normalize_imei(imei) or ""
    row = db.session.query(ShippedImei).filter_by(imei=imei).first()
    if not row:
        return False
    db.session.delete(row)
    db.session.commit()
    activity_service.log_imei_dump_delete(user, [imei], **(meta or {}))
    return True


def clear_shipped_imeis(user: User, *, meta: dict | None = None) -> int:
    count = db.session.query(ShippedImei).delete(synchronize_session=False)
    db.session.commit()
    if count:
        activity_service.log_imei_dump_clear(user, count, **(meta or {}))
    return count
