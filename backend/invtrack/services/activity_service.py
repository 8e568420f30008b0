# Overview: User activity log and per-user aggregates.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import has_request_context, request

from ..extensions import db
from ..models import ActivityLogEntry, User, UserActivityStats
from invtrack.time_utils import utcnow

"""
Activity Log Invariants

- Entries are append-only; nothing here updates or deletes one.
- UserActivityStats is updated in the same transaction as the entry it
  counts, so totals always equal what the log holds.
- IMEI samples in metadata are capped at SAMPLE_SIZE.
"""

ACTIVITY_IMEI_DUMP_ADD = "imei_dump_add"
ACTIVITY_IMEI_DUMP_DELETE = "imei_dump_delete"
ACTIVITY_IMEI_DUMP_CLEAR = "imei_dump_clear"
ACTIVITY_LOGIN = "login"
ACTIVITY_SYNC_TRIGGERED = "sync_triggered"
ACTIVITY_OUTBOUND_SYNC_TRIGGERED = "outbound_sync_triggered"
ACTIVITY_ROLE_CHANGED = "role_changed"
ACTIVITY_STATUS_CHANGED = "status_changed"

SAMPLE_SIZE = 10


def request_metadata() -> dict:
    """ip_address / user_agent of the current request, if any."""
    if not has_request_context():
        return {}
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() if forwarded else request.remote_addr
    return {"ip_address": ip, "user_agent": request.headers.get("User-Agent")}


def _bump_stats(user: User, activity_type: str, item_count: int | None, now: datetime) -> None:
    stats = db.session.query(UserActivityStats).filter_by(user_id=user.id).first()
    if stats is None:
        stats = UserActivityStats(
            user_id=user.id,
            user_email=user.email,
            total_imeis_dumped=0,
            total_imeis_deleted=0,
            total_logins=0,
            total_syncs_triggered=0,
            first_activity_at=now,
        )
        db.session.add(stats)

    count = item_count or 0
    if activity_type == ACTIVITY_IMEI_DUMP_ADD:
        stats.total_imeis_dumped += count
    elif activity_type in (ACTIVITY_IMEI_DUMP_DELETE, ACTIVITY_IMEI_DUMP_CLEAR):
        stats.total_imeis_deleted += count
    elif activity_type == ACTIVITY_LOGIN:
        stats.total_logins += 1
    elif activity_type in (ACTIVITY_SYNC_TRIGGERED, ACTIVITY_OUTBOUND_SYNC_TRIGGERED):
        stats.total_syncs_triggered += 1
    stats.user_email = user.email
    stats.last_activity_at = now


def log_activity(
    user: User,
    activity_type: str,
    *,
    resource_type: str | None = None,
    resource_id: str | None = None,
    item_count: int | None = None,
    details: Optional[dict] = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ActivityLogEntry:
    """Append one entry, update the user's aggregates and commit both."""
    now = utcnow()
    entry = ActivityLogEntry(
        user_id=user.id,
        user_email=user.email,
        activity_type=activity_type,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        item_count=item_count,
        details=details,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:255] or None,
        performed_at=now,
    )
    db.session.add(entry)
    _bump_stats(user, activity_type, item_count, now)
    db.session.commit()
    return entry


def log_imei_dump_add(user: User, imeis: list[str], **meta) -> ActivityLogEntry:
    return log_activity(
        user, ACTIVITY_IMEI_DUMP_ADD,
        resource_type="shipped_imeis",
        item_count=len(imeis),
        details={"imeis": imeis[:SAMPLE_SIZE], "totalCount": len(imeis)},
        **meta,
    )


def log_imei_dump_delete(user: User, imeis: list[str], **meta) -> ActivityLogEntry:
    return log_activity(
        user, ACTIVITY_IMEI_DUMP_DELETE,
        resource_type="shipped_imeis",
        resource_id=imeis[0] if len(imeis) == 1 else None,
        item_count=len(imeis),
        details={"imeis": imeis[:SAMPLE_SIZE], "totalCount": len(imeis)},
        **meta,
    )


def log_imei_dump_clear(user: User, count: int, **meta) -> ActivityLogEntry:
    return log_activity(
        user, ACTIVITY_IMEI_DUMP_CLEAR,
        resource_type="shipped_imeis",
        item_count=count,
        details={"action": "clear_all", "totalCount": count},
        **meta,
    )


def log_login(user: User, **meta) -> ActivityLogEntry:
    return log_activity(user, ACTIVITY_LOGIN, resource_type="session", **meta)


def log_sync_triggered(user: User, run, **meta) -> ActivityLogEntry:
    activity_type = ACTIVITY_OUTBOUND_SYNC_TRIGGERED if run.run_type == "outbound_sync" else ACTIVITY_SYNC_TRIGGERED
    return log_activity(
        user, activity_type,
        resource_type="sync_run",
        resource_id=run.id,
        item_count=run.movements_created,
        details={"status": run.status, "runType": run.run_type},
        **meta,
    )


def get_user_recent_activity(user_id: int, *, limit: int = 50) -> list[ActivityLogEntry]:
    return (
        db.session.query(ActivityLogEntry)
        .filter(ActivityLogEntry.user_id == user_id)
        .order_by(ActivityLogEntry.performed_at.desc(), ActivityLogEntry.id.desc())
        .limit(limit)
        .all()
    )


def get_recent_activity(*, limit: int = 100, activity_type: str | None = None) -> list[ActivityLogEntry]:
    q = db.session.query(ActivityLogEntry)
    if activity_type:
        q = q.filter(ActivityLogEntry.activity_type == activity_type)
    return q.order_by(ActivityLogEntry.performed_at.desc(), ActivityLogEntry.id.desc()).limit(limit).all()


def get_user_activity_stats(user_id: int) -> UserActivityStats | None:
    return db.session.query(UserActivityStats).filter_by(user_id=user_id).first()


def get_all_user_activity_stats() -> list[UserActivityStats]:
    return (
        db.session.query(UserActivityStats)
        .order_by(UserActivityStats.total_imeis_dumped.desc(), UserActivityStats.user_id)
        .all()
    )


def get_activity_stats_for_range(start: datetime, end: datetime) -> dict:
    """Totals over start <= performed_at < end."""
    entries = (
        db.session.query(ActivityLogEntry)
        .filter(ActivityLogEntry.performed_at >= start, ActivityLogEntry.performed_at < end)
        .all()
    )

    by_type: dict[str, int] = {}
    users = set()
    dumped = deleted = 0
    for entry in entries:
        by_type[entry.activity_type] = by_type.get(entry.activity_type, 0) + 1
        users.add(entry.user_id)
        if entry.activity_type == ACTIVITY_IMEI_DUMP_ADD:
            dumped += entry.item_count or 0
        elif entry.activity_type in (ACTIVITY_IMEI_DUMP_DELETE, ACTIVITY_IMEI_DUMP_CLEAR):
            deleted += entry.item_count or 0

    return {
        "totalActivities": len(entries),
        "uniqueUsers": len(users),
        "totalImeisDumped": dumped,
        "totalImeisDeleted": deleted,
        "activityByType": by_type,
    }
