# Overview: SyncRun lifecycle shared by the sheet and outbound runs; slot, heartbeat, expiry, fetch retry.

"""
Sync Run Lifecycle

RUN SLOT:
- At most one run (of either type) is in_progress at any time.
- acquire_run() inserts the SyncRun with active_slot="global"; the unique
  index makes a second insert fail, which surfaces as SyncInProgressError.
  Callers reject, they never queue.
- Terminal runs release the slot (active_slot=NULL).

COUNTERS:
- Runs keep a local tally (collections.Counter) and copy it onto the
  SyncRun inside every per-item transaction, so the persisted counters only
  ever describe committed work, even when the run later fails.
- Every write to a run is an UPDATE ... WHERE status='in_progress'. A run
  expired while still working gets RunExpiredError at its next commit point
  and stops; it stays failed.

STALE RUNS:
- An in_progress run with no heartbeat for SYNC_STALE_AFTER_MINUTES is failed
  and its slot released. Checked before every acquisition, by the status
  endpoint, and by `flask sync expire-stale`.
"""

from __future__ import annotations

import time
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import SyncRun
from ..sources import TransientFetchError
from invtrack.time_utils import utcnow


RUN_TYPE_SHEET_SYNC = "sheet_sync"
RUN_TYPE_OUTBOUND_SYNC = "outbound_sync"
RUN_TYPES = (RUN_TYPE_SHEET_SYNC, RUN_TYPE_OUTBOUND_SYNC)

RUN_STATUS_IN_PROGRESS = "in_progress"
RUN_STATUS_COMPLETED = "completed"
RUN_STATUS_FAILED = "failed"

ACTIVE_SLOT = "global"

COUNTER_FIELDS = (
    "items_processed",
    "items_added",
    "items_updated",
    "items_unchanged",
    "items_removed",
    "items_shipped",
    "items_already_shipped",
    "items_not_found",
    "parse_errors",
    "duplicates",
    "movements_created",
)


class SyncInProgressError(Exception):
    def __init__(self, message: str, active_run_id: int | None = None):
        super().__init__(message)
        self.active_run_id = active_run_id


class RunExpiredError(Exception):
    """The run was failed by stale expiry while it was still working."""

    def __init__(self, run_id: int):
        super().__init__(f"Run {run_id} is no longer in progress")
        self.run_id = run_id


def expire_stale_runs(*, now: Optional[datetime] = None, stale_after_minutes: int | None = None) -> int:
    """Fail in_progress runs whose last heartbeat is older than the stale window."""
    now = now or utcnow()
    if stale_after_minutes is None:
        stale_after_minutes = current_app.config["SYNC_STALE_AFTER_MINUTES"]
    cutoff = now - timedelta(minutes=stale_after_minutes)

    stale = (
        db.session.query(SyncRun)
        .filter(SyncRun.status == RUN_STATUS_IN_PROGRESS, SyncRun.last_progress_at < cutoff)
        .all()
    )
    for run in stale:
        run.status = RUN_STATUS_FAILED
        run.active_slot = None
        run.completed_at = now
        run.error_message = f"Run expired: no progress for {stale_after_minutes} minutes"
        current_app.logger.warning("Expired stale %s run id=%s (last progress %s)",
                                   run.run_type, run.id, run.last_progress_at)
    if stale:
        db.session.commit()
    return len(stale)


def acquire_run(run_type: str, *, triggered_by: str | None = None) -> SyncRun:
    """Start a run or raise SyncInProgressError if another run holds the slot."""
    if run_type not in RUN_TYPES:
        raise ValueError(f"Unknown run type: {run_type}")

    expire_stale_runs()

    now = utcnow()
    run = SyncRun(
        run_type=run_type,
        status=RUN_STATUS_IN_PROGRESS,
        active_slot=ACTIVE_SLOT,
        started_at=now,
        last_progress_at=now,
        triggered_by=triggered_by,
    )
    db.session.add(run)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        active = db.session.query(SyncRun).filter_by(active_slot=ACTIVE_SLOT).first()
        active_id = active.id if active else None
        current_app.logger.info("Rejected %s run: run id=%s is in progress", run_type, active_id)
        raise SyncInProgressError(
            f"A {active.run_type if active else 'sync'} run is already in progress",
            active_run_id=active_id,
        )

    current_app.logger.info("Started %s run id=%s (triggered by %s)", run_type, run.id, triggered_by or "system")
    return run


def _update_if_active(run_id: int, values: dict) -> None:
    """
    Write values onto the run only while it is still in_progress.

    Raises RunExpiredError when stale expiry got there first; the caller's
    transaction must then be rolled back.
    """
    updated = (
        db.session.query(SyncRun)
        .filter(SyncRun.id == run_id, SyncRun.status == RUN_STATUS_IN_PROGRESS)
        .update(values, synchronize_session=False)
    )
    if not updated:
        raise RunExpiredError(run_id)


def _counter_values(tally: Counter, delta: Mapping[str, int] | None = None) -> dict:
    merged = Counter(tally)
    merged.update(delta or {})
    return {name: merged.get(name, 0) for name in COUNTER_FIELDS}


def write_progress(run: SyncRun, tally: Counter, delta: Mapping[str, int] | None = None, **fields) -> None:
    """
    Stage tally (plus this transaction's delta) and any extra columns on the
    run and heartbeat it. Caller commits.

    Raises RunExpiredError if the run is no longer in_progress.
    """
    values = _counter_values(tally, delta)
    values.update(fields)
    values["last_progress_at"] = utcnow()
    _update_if_active(run.id, values)


def complete_run(run: SyncRun, tally: Counter, **fields) -> SyncRun:
    """Mark the run completed. Raises RunExpiredError if it was expired meanwhile."""
    now = utcnow()
    values = _counter_values(tally)
    values.update(fields)
    values.update(
        status=RUN_STATUS_COMPLETED,
        completed_at=now,
        last_progress_at=now,
        active_slot=None,
    )
    _update_if_active(run.id, values)
    db.session.commit()

    current_app.logger.info(
        "Completed %s run id=%s: %s",
        run.run_type, run.id,
        ", ".join(f"{name}={getattr(run, name)}" for name in COUNTER_FIELDS if getattr(run, name)),
    )
    return run


def fail_run(run_id: int, message: str, *, tally: Counter | None = None, details: dict | None = None) -> SyncRun:
    """
    Mark a run failed in a fresh transaction.

    Whatever the current transaction held is rolled back first; committed
    per-item work stays.
    """
    db.session.rollback()
    run = db.session.get(SyncRun, run_id)
    if run is None or run.is_terminal:
        return run

    now = utcnow()
    values = _counter_values(tally) if tally is not None else {}
    values.update(
        status=RUN_STATUS_FAILED,
        completed_at=now,
        last_progress_at=now,
        active_slot=None,
        error_message=message,
    )
    if details:
        values["error_details"] = {**(run.error_details or {}), **details}
    try:
        _update_if_active(run_id, values)
    except RunExpiredError:
        db.session.rollback()
        return db.session.get(SyncRun, run_id)
    db.session.commit()

    current_app.logger.error("Failed %s run id=%s: %s", run.run_type, run.id, message)
    return run


def stop_expired_run(run_id: int) -> SyncRun:
    """Abandon the current transaction of a run that was expired under it; the run stays failed."""
    db.session.rollback()
    run = db.session.get(SyncRun, run_id)
    current_app.logger.warning("%s run id=%s was expired while running; stopped (%s)",
                               run.run_type, run.id, run.error_message)
    return run


def fetch_with_retry(fetch: Callable[[], list], *, label: str) -> list:
    """
    Call fetch(), retrying TransientFetchError with exponential backoff.

    Runs with no transaction open. FatalFetchError and the last transient
    error propagate.
    """
    attempts = max(1, current_app.config["SYNC_FETCH_ATTEMPTS"])
    backoff = current_app.config["SYNC_FETCH_BACKOFF_SECONDS"]
    for attempt in range(attempts):
        try:
            rows = fetch()
            current_app.logger.info("Fetched %s: %d rows", label, len(rows))
            return rows
        except TransientFetchError as exc:
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Fetching %s failed (attempt %d/%d): %s", label, attempt + 1, attempts, exc)
            time.sleep(backoff * (2 ** attempt))


def get_latest_sync_status(run_type: str | None = None) -> SyncRun | None:
    """Most recent run, optionally of one type. Expires stale runs first."""
    expire_stale_runs()
    q = db.session.query(SyncRun)
    if run_type:
        q = q.filter(SyncRun.run_type == run_type)
    return q.order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).first()


def list_sync_runs(*, run_type: str | None = None, limit: int = 20) -> list[SyncRun]:
    q = db.session.query(SyncRun)
    if run_type:
        q = q.filter(SyncRun.run_type == run_type)
    return q.order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit).all()
