from __future__ import annotations

from ..extensions import db
from invtrack.time_utils import to_utc_z, utcnow


class DailyInventorySnapshot(db.Model):
    """
    End-of-day inventory state for reporting.

    Regenerating a date overwrites the existing row for (snapshot_date, location_id).
    """
    __tablename__ = "daily_inventory_snapshots"
    __table_args__ = (
        db.UniqueConstraint("snapshot_date", "location_id", name="uq_snapshots_date_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    snapshot_date = db.Column(db.Date, nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("inventory_locations.id"), nullable=True)

    total_devices = db.Column(db.Integer, nullable=False)
    grade_breakdown = db.Column(db.JSON, nullable=False)
    model_breakdown = db.Column(db.JSON, nullable=False)
    lock_status_breakdown = db.Column(db.JSON, nullable=False)

    daily_added = db.Column(db.Integer, nullable=False, default=0)
    daily_shipped = db.Column(db.Integer, nullable=False, default=0)
    daily_transferred = db.Column(db.Integer, nullable=False, default=0)
    daily_status_changes = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    location = db.relationship("InventoryLocation")

    def to_dict(self) -> dict:
        return {
            "date": self.snapshot_date.isoformat(),
            "locationId": self.location_id,
            "locationName": self.location.name if self.location else None,
            "totalDevices": self.total_devices,
            "byGrade": self.grade_breakdown,
            "byModel": self.model_breakdown,
            "byLockStatus": self.lock_status_breakdown,
            "dailyActivity": {
                "added": self.daily_added,
                "shipped": self.daily_shipped,
                "transferred": self.daily_transferred,
                "statusChanges": self.daily_status_changes,
            },
            "createdAt": to_utc_z(self.created_at),
        }
