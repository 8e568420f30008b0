from __future__ import annotations

import uuid

from sqlalchemy import event

from ..extensions import db
from invtrack.time_utils import to_utc_z, utcnow


class InventoryLocation(db.Model):
    """
    Physical site holding devices (warehouse, storage facility).

    A default MAIN location is created on demand by the sync; sheet rows
    without a location column land there.
    """
    __tablename__ = "inventory_locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<InventoryLocation id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "isActive": self.is_active,
        }


class InventoryItem(db.Model):
    """
    Current state of one physical device, keyed by IMEI.

    Mutated in place by reconciliation, the outbound matcher and manual
    movements. Rows are never deleted: a device that leaves the sheet is
    moved to status shipped or removed so its ledger history stays reachable.

    CONCURRENCY:
    version_id is SQLAlchemy's optimistic lock. Two writers that loaded the
    same version cannot both flush; the loser gets StaleDataError and is
    retried by run_with_retry on fresh state.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.Index("ix_items_status_grade", "current_status", "grade"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    imei = db.Column(db.String(15), nullable=False, unique=True, index=True)

    # Descriptive attributes (refreshed from the sheet)
    model = db.Column(db.String(120), nullable=True, index=True)
    gb = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    supplier = db.Column(db.String(120), nullable=True)
    master_carton = db.Column(db.String(120), nullable=True)

    # Tracked state (changes produce movements)
    grade = db.Column(db.String(16), nullable=True, index=True)
    lock_status = db.Column(db.String(32), nullable=True)
    current_status = db.Column(db.String(16), nullable=False, default="in_stock", index=True)
    current_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=True, index=True)

    first_seen_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("InventoryLocation", lazy="joined")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem imei={self.imei!r} status={self.current_status!r} grade={self.grade!r}>"

    def state_dict(self) -> dict:
        """Full record as captured in a movement snapshot."""
        return {
            "imei": self.imei,
            "model": self.model,
            "gb": self.gb,
            "color": self.color,
            "sku": self.sku,
            "supplier": self.supplier,
            "masterCarton": self.master_carton,
            "grade": self.grade,
            "lockStatus": self.lock_status,
            "status": self.current_status,
            "location": self.location.code if self.location else None,
        }

    def to_dict(self) -> dict:
        data = self.state_dict()
        data.update({
            "id": self.id,
            "location": self.location.to_dict() if self.location else None,
            "firstSeenAt": to_utc_z(self.first_seen_at),
            "lastSeenAt": to_utc_z(self.last_seen_at),
            "updatedAt": to_utc_z(self.updated_at),
        })
        return data


class InventoryMovement(db.Model):
    """
    Immutable ledger entry: one detected state transition for one device.

    INVARIANTS:
    - Append-only. UPDATE and DELETE flushes are rejected (see listeners below).
    - One row per IMEI per run: simultaneous grade/lock/status changes share
      a row with every from/to pair populated.
    - imei is a plain column, not a foreign key; history survives item changes.
    - id is the insertion sequence and the tie-break for equal performed_at.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_movements_imei_performed", "imei", "performed_at"),
        db.Index("ix_movements_performed_id", "performed_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    imei = db.Column(db.String(15), nullable=False, index=True)
    item_id = db.Column(db.Integer, nullable=True)

    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)
    from_grade = db.Column(db.String(16), nullable=True)
    to_grade = db.Column(db.String(16), nullable=True)
    from_lock_status = db.Column(db.String(32), nullable=True)
    to_lock_status = db.Column(db.String(32), nullable=True)
    from_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=True)
    to_location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=True)

    source = db.Column(db.String(32), nullable=False, index=True)  # sheet_sync, outbound_sync, manual
    sync_run_id = db.Column(db.Integer, db.ForeignKey("sync_runs.id"), nullable=True, index=True)
    performed_by = db.Column(db.String(255), nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    notes = db.Column(db.Text, nullable=True)
    snapshot_data = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    from_location = db.relationship("InventoryLocation", foreign_keys=[from_location_id])
    to_location = db.relationship("InventoryLocation", foreign_keys=[to_location_id])

    def __repr__(self) -> str:
        return f"<InventoryMovement id={self.id} type={self.movement_type!r} imei={self.imei!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.uid,
            "sequence": self.id,
            "movementType": self.movement_type,
            "imei": self.imei,
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "fromGrade": self.from_grade,
            "toGrade": self.to_grade,
            "fromLockStatus": self.from_lock_status,
            "toLockStatus": self.to_lock_status,
            "fromLocation": self.from_location.code if self.from_location else None,
            "toLocation": self.to_location.code if self.to_location else None,
            "source": self.source,
            "syncRunId": self.sync_run_id,
            "performedBy": self.performed_by,
            "performedAt": to_utc_z(self.performed_at),
            "notes": self.notes,
            "snapshot": self.snapshot_data,
        }


@event.listens_for(InventoryMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise RuntimeError(f"inventory_movements is append-only (update of id={target.id})")


@event.listens_for(InventoryMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise RuntimeError(f"inventory_movements is append-only (delete of id={target.id})")
