# Overview: Per-IMEI row locking and retry for the item-by-item transactions of sync and manual movements.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Lock the InventoryItem row(s) selected by query for this transaction.

    Two writers touching the same IMEI (a sync run and a manual ship, say)
    are serialized on the row. SQLite has no SELECT ... FOR UPDATE; there
    InventoryItem.version_id turns the second writer's flush into a
    StaleDataError instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one IMEI's read-mutate-append-commit unit, re-running it from the
    re-read when the row was busy or changed underneath.

    Retried: OperationalError (lock wait / "database is locked") and
    StaleDataError (lost version race). Anything else propagates to the run,
    which fails. func must re-read the item itself; the session is rolled
    back between attempts.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
