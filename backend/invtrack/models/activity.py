from __future__ import annotations

from ..extensions import db
from invtrack.time_utils import to_utc_z, utcnow


class ActivityLogEntry(db.Model):
    """
    User-initiated operation (IMEI dump add/delete/clear, login, sync trigger,
    admin changes). Separate from device movements. Append-only.
    """
    __tablename__ = "user_activity_log"
    __table_args__ = (
        db.Index("ix_activity_user_performed", "user_id", "performed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_email = db.Column(db.String(255), nullable=False)

    activity_type = db.Column(db.String(32), nullable=False, index=True)
    resource_type = db.Column(db.String(32), nullable=True)
    resource_id = db.Column(db.String(64), nullable=True)
    item_count = db.Column(db.Integer, nullable=True)
    details = db.Column("metadata", db.JSON, nullable=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userEmail": self.user_email,
            "activityType": self.activity_type,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "itemCount": self.item_count,
            "metadata": self.details,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "performedAt": to_utc_z(self.performed_at),
        }


class UserActivityStats(db.Model):
    """Per-user aggregates maintained alongside every activity entry."""
    __tablename__ = "user_activity_stats"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    user_email = db.Column(db.String(255), nullable=False)

    total_imeis_dumped = db.Column(db.Integer, nullable=False, default=0)
    total_imeis_deleted = db.Column(db.Integer, nullable=False, default=0)
    total_logins = db.Column(db.Integer, nullable=False, default=0)
    total_syncs_triggered = db.Column(db.Integer, nullable=False, default=0)

    first_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "userEmail": self.user_email,
            "totalImeisDumped": self.total_imeis_dumped,
            "totalImeisDeleted": self.total_imeis_deleted,
            "totalLogins": self.total_logins,
            "totalSyncsTriggered": self.total_syncs_triggered,
            "firstActivityAt": to_utc_z(self.first_activity_at) if self.first_activity_at else None,
            "lastActivityAt": to_utc_z(self.last_activity_at) if self.last_activity_at else None,
        }


class ShippedImei(db.Model):
    """Manually maintained "IMEI dump" list of devices known to have shipped."""
    __tablename__ = "shipped_imeis"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    imei = db.Column(db.String(15), nullable=False, unique=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "imei": self.imei,
            "createdByUserId": self.created_by_user_id,
            "createdAt": to_utc_z(self.created_at),
        }
