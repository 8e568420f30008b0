from __future__ import annotations

from ..extensions import db
from invtrack.time_utils import to_utc_z, utcnow


class SyncRun(db.Model):
    """
    One execution of a reconciliation (sheet_sync) or matching (outbound_sync) pass.

    LIFECYCLE:
    in_progress -> completed | failed. Terminal once status leaves in_progress.
    Mutated only by the run that created it, except for stale-run expiry.

    SINGLE ACTIVE RUN:
    active_slot is "global" while the run is in_progress and NULL afterwards.
    The unique constraint lets the database reject a second concurrent run
    (NULLs never collide), across threads and processes alike.
    """
    __tablename__ = "sync_runs"
    __table_args__ = (
        db.Index("ix_sync_runs_type_started", "run_type", "started_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    run_type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="in_progress", index=True)
    active_slot = db.Column(db.String(16), nullable=True, unique=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_progress_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items_processed = db.Column(db.Integer, nullable=False, default=0)
    items_added = db.Column(db.Integer, nullable=False, default=0)
    items_updated = db.Column(db.Integer, nullable=False, default=0)
    items_unchanged = db.Column(db.Integer, nullable=False, default=0)
    items_removed = db.Column(db.Integer, nullable=False, default=0)
    items_shipped = db.Column(db.Integer, nullable=False, default=0)
    items_already_shipped = db.Column(db.Integer, nullable=False, default=0)
    items_not_found = db.Column(db.Integer, nullable=False, default=0)
    parse_errors = db.Column(db.Integer, nullable=False, default=0)
    duplicates = db.Column(db.Integer, nullable=False, default=0)
    movements_created = db.Column(db.Integer, nullable=False, default=0)

    # Drift visibility: rows fetched vs in-stock items after the run
    source_row_count = db.Column(db.Integer, nullable=True)
    destination_row_count = db.Column(db.Integer, nullable=True)

    error_message = db.Column(db.Text, nullable=True)
    error_details = db.Column(db.JSON, nullable=True)

    triggered_by = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<SyncRun id={self.id} type={self.run_type!r} status={self.status!r}>"

    @property
    def is_terminal(self) -> bool:
        return self.status != "in_progress"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "runType": self.run_type,
            "status": self.status,
            "startedAt": to_utc_z(self.started_at),
            "completedAt": to_utc_z(self.completed_at) if self.completed_at else None,
            "lastProgressAt": to_utc_z(self.last_progress_at),
            "itemsProcessed": self.items_processed,
            "itemsAdded": self.items_added,
            "itemsUpdated": self.items_updated,
            "itemsUnchanged": self.items_unchanged,
            "itemsRemoved": self.items_removed,
            "itemsShipped": self.items_shipped,
            "itemsAlreadyShipped": self.items_already_shipped,
            "itemsNotFound": self.items_not_found,
            "parseErrors": self.parse_errors,
            "duplicates": self.duplicates,
            "movementsCreated": self.movements_created,
            "sourceRowCount": self.source_row_count,
            "destinationRowCount": self.destination_row_count,
            "errorMessage": self.error_message,
            "errorDetails": self.error_details,
            "triggeredBy": self.triggered_by,
        }


class OutboundImei(db.Model):
    """
    Cache of the outbound sheet, refreshed truncate-and-repopulate by every
    outbound run. The sheet reconciliation reads it to decide whether a device
    that disappeared from inventory was shipped or removed.
    """
    __tablename__ = "outbound_imeis"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    imei = db.Column(db.String(15), nullable=False, index=True)
    model = db.Column(db.String(120), nullable=True)
    capacity = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    lock_status = db.Column(db.String(32), nullable=True)
    graded = db.Column(db.String(16), nullable=True)
    price = db.Column(db.String(32), nullable=True)
    invno = db.Column(db.String(64), nullable=True, index=True)
    invtype = db.Column(db.String(64), nullable=True)
    source_updated_at = db.Column(db.String(64), nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "imei": self.imei,
            "model": self.model,
            "capacity": self.capacity,
            "color": self.color,
            "lockStatus": self.lock_status,
            "graded": self.graded,
            "price": self.price,
            "invno": self.invno,
            "invtype": self.invtype,
            "updatedAt": self.source_updated_at,
            "syncedAt": to_utc_z(self.synced_at),
        }
