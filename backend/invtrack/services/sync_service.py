# Overview: Reconciliation orchestrator; mirrors the inventory sheet into current state plus ledger.

from __future__ import annotations

from collections import Counter

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryItem, InventoryLocation, OutboundImei, SyncRun
from ..sources import FetchError, SnapshotSource, TransientFetchError
from invtrack.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .diff_service import (
    DeviceRecord,
    ItemChange,
    ITEM_STATUS_IN_STOCK,
    MOVEMENT_ADDED,
    MOVEMENT_REMOVED,
    MOVEMENT_SHIPPED,
    classify,
    diff_snapshots,
    parse_snapshot,
)
from .ledger_service import SOURCE_SHEET_SYNC, append_movement
from .sync_run_service import (
    RUN_TYPE_SHEET_SYNC,
    RunExpiredError,
    acquire_run,
    complete_run,
    fail_run,
    fetch_with_retry,
    stop_expired_run,
    write_progress,
)

"""
Sheet Reconciliation

ORDER OF WORK:
1. acquire the run slot (stale runs expired first)
2. fetch the snapshot with no transaction open (transient errors retried)
3. parse; record row count, parse errors and duplicates on the run
4. diff against every persisted item (outbound cache decides shipped vs removed)
5. apply each change in its own transaction: lock row, re-read, mutate,
   append movement, copy counters onto the run, commit
6. refresh last_seen_at and descriptive attributes of unchanged items
7. complete the run

Any error after 1 fails the run and releases the slot; items already
committed stay applied and the run's counters describe exactly those. A
run expired by stale expiry meanwhile stops at its next commit point.
"""

DEFAULT_LOCATION_CODE = "MAIN"
DEFAULT_LOCATION_NAME = "Main Warehouse"

# Details kept on the run for operators; counts are always complete
MAX_REPORTED_PARSE_ERRORS = 100

DESCRIPTIVE_FIELDS = ("model", "gb", "color", "sku", "supplier", "master_carton")

REFRESH_CHUNK_SIZE = 500


def get_or_create_location(code: str, name: str | None = None) -> InventoryLocation:
    """Location by code, created if missing. Flushes; caller commits."""
    code = code.strip().upper()
    location = db.session.query(InventoryLocation).filter_by(code=code).first()
    if location:
        return location
    location = InventoryLocation(code=code, name=name or code)
    db.session.add(location)
    db.session.flush()
    return location


def get_or_create_main_location() -> InventoryLocation:
    return get_or_create_location(DEFAULT_LOCATION_CODE, DEFAULT_LOCATION_NAME)


def _ensure_locations(changes: list[ItemChange]) -> dict[str, int]:
    """Create every location the changes reference up front; returns code -> id."""
    codes = {DEFAULT_LOCATION_CODE}
    for change in changes:
        if change.record is not None and change.record.location:
            codes.add(change.record.location)
    ids = {}
    for code in sorted(codes):
        name = DEFAULT_LOCATION_NAME if code == DEFAULT_LOCATION_CODE else None
        ids[code] = get_or_create_location(code, name).id
    db.session.commit()
    return ids


def load_previous_state() -> dict[str, DeviceRecord]:
    items = db.session.query(InventoryItem).all()
    return {item.imei: DeviceRecord.from_item(item) for item in items}


def load_outbound_imeis() -> set[str]:
    return {imei for (imei,) in db.session.query(OutboundImei.imei).distinct()}


def _apply_attributes(item: InventoryItem, record: DeviceRecord) -> None:
    for name in DESCRIPTIVE_FIELDS:
        value = getattr(record, name)
        if value is not None:
            setattr(item, name, value)


def _counter_for(classification: str) -> str:
    if classification == MOVEMENT_ADDED:
        return "items_added"
    if classification == MOVEMENT_SHIPPED:
        return "items_shipped"
    if classification == MOVEMENT_REMOVED:
        return "items_removed"
    return "items_updated"


def _apply_change(run: SyncRun, change: ItemChange, location_ids: dict[str, int], tally: Counter) -> Counter:
    """
    Apply one change in its own transaction.

    The item is re-read under lock, so from-values and movement type follow
    the values actually replaced. If a concurrent writer already made the
    same change, nothing is written and the item counts as unchanged.
    """
    def _finish(delta: Counter) -> Counter:
        write_progress(run, tally, delta)
        db.session.commit()
        return delta

    def _op() -> Counter:
        now = utcnow()
        item = lock_for_update(db.session.query(InventoryItem).filter_by(imei=change.imei)).first()
        record = change.record

        before = item.state_dict() if item is not None else None
        from_status = item.current_status if item is not None else None
        from_grade = item.grade if item is not None else None
        from_lock = item.lock_status if item is not None else None
        from_location_id = item.current_location_id if item is not None else None

        if item is None:
            if record is None:
                return _finish(Counter(items_processed=1, items_unchanged=1))
            item = InventoryItem(imei=change.imei, first_seen_at=now, last_seen_at=now)
            db.session.add(item)
        elif record is None and item.current_status != ITEM_STATUS_IN_STOCK:
            return _finish(Counter(items_processed=1, items_unchanged=1))

        after = change.after
        if "status" in after:
            item.current_status = after["status"]
        if "grade" in after:
            item.grade = after["grade"]
        if "lock_status" in after:
            item.lock_status = after["lock_status"]
        if record is not None:
            code = record.location or (None if item.current_location_id else DEFAULT_LOCATION_CODE)
            if code:
                item.current_location_id = location_ids[code]
            _apply_attributes(item, record)
            item.last_seen_at = now

        changed = [
            name for name, old, new in (
                ("status", from_status, item.current_status),
                ("location", from_location_id, item.current_location_id),
                ("grade", from_grade, item.grade),
                ("lock_status", from_lock, item.lock_status),
            )
            if old != new
        ]
        if before is not None and not changed:
            return _finish(Counter(items_processed=1, items_unchanged=1))

        # Typed from what this transaction changed, not from the diff.
        if before is None:
            movement_type = MOVEMENT_ADDED
        elif record is None:
            movement_type = change.classification
        else:
            movement_type = classify(changed)

        db.session.flush()
        db.session.refresh(item)

        mv = append_movement(
            movement_type=movement_type,
            imei=change.imei,
            item_id=item.id,
            source=SOURCE_SHEET_SYNC,
            from_status=from_status,
            to_status=item.current_status,
            from_grade=from_grade,
            to_grade=item.grade,
            from_lock_status=from_lock,
            to_lock_status=item.lock_status,
            from_location_id=from_location_id,
            to_location_id=item.current_location_id,
            sync_run_id=run.id,
            performed_by=run.triggered_by,
            performed_at=now,
            notes=_notes_for(change),
            snapshot={"before": before, "after": item.state_dict()},
        )

        delta = Counter(items_processed=1, movements_created=1)
        delta[_counter_for(mv.movement_type)] += 1
        return _finish(delta)

    return run_with_retry(_op)


def _notes_for(change: ItemChange) -> str | None:
    if change.classification == MOVEMENT_SHIPPED:
        return "No longer in inventory sheet; IMEI found in outbound list"
    if change.classification == MOVEMENT_REMOVED:
        return "No longer in inventory sheet; IMEI not in outbound list"
    return None


def _refresh_unchanged(run: SyncRun, imeis: list[str], records: dict[str, DeviceRecord], tally: Counter) -> None:
    """Bump last_seen_at and refresh descriptive attributes, one transaction per chunk."""
    for start in range(0, len(imeis), REFRESH_CHUNK_SIZE):
        chunk = imeis[start:start + REFRESH_CHUNK_SIZE]

        def _op(chunk=chunk) -> None:
            now = utcnow()
            items = db.session.query(InventoryItem).filter(InventoryItem.imei.in_(chunk)).all()
            for item in items:
                _apply_attributes(item, records[item.imei])
                item.last_seen_at = now
            write_progress(run, tally, {"items_processed": len(chunk), "items_unchanged": len(chunk)})
            db.session.commit()

        run_with_retry(_op)
        tally.update(items_processed=len(chunk), items_unchanged=len(chunk))


def run_sheet_sync(source: SnapshotSource, *, triggered_by: str | None = None) -> SyncRun:
    """
    One reconciliation pass of the inventory sheet.

    Raises SyncInProgressError when another run holds the slot. Any failure
    after that, at any stage, does not raise: the returned run is failed
    with a message and the slot is released.
    """
    logger = current_app.logger
    run = acquire_run(RUN_TYPE_SHEET_SYNC, triggered_by=triggered_by)
    run_id = run.id
    tally: Counter = Counter()
    stage = "fetch"

    try:
        try:
            rows = fetch_with_retry(source.fetch_current_snapshot, label="inventory snapshot")
        except FetchError as exc:
            return fail_run(
                run_id,
                f"Snapshot fetch failed: {exc}",
                details={"stage": "fetch", "transient": isinstance(exc, TransientFetchError)},
            )

        stage = "apply"
        parsed = parse_snapshot(rows)
        tally.update(parse_errors=len(parsed.parse_errors), duplicates=parsed.duplicates)
        report = {}
        if parsed.parse_errors or parsed.duplicate_imeis:
            report["error_details"] = {
                "parseErrors": [e.to_dict() for e in parsed.parse_errors[:MAX_REPORTED_PARSE_ERRORS]],
                "duplicateImeis": sorted(set(parsed.duplicate_imeis))[:MAX_REPORTED_PARSE_ERRORS],
            }
            logger.warning("Sheet sync run id=%s: %d parse errors, %d duplicate rows",
                           run_id, len(parsed.parse_errors), parsed.duplicates)
        write_progress(run, tally, source_row_count=parsed.row_count, **report)
        db.session.commit()

        diff = diff_snapshots(load_previous_state(), parsed.records, outbound_imeis=load_outbound_imeis())
        logger.info("Sheet sync run id=%s: %d records, %d changes, %d unchanged",
                    run_id, len(parsed.records), len(diff.changes), diff.unchanged)

        location_ids = _ensure_locations(diff.changes)
        interval = current_app.config["SYNC_PROGRESS_INTERVAL"]
        for index, change in enumerate(diff.changes, start=1):
            tally.update(_apply_change(run, change, location_ids, tally))
            if interval and index % interval == 0:
                logger.info("Sheet sync run id=%s: applied %d/%d changes", run_id, index, len(diff.changes))

        _refresh_unchanged(run, diff.unchanged_imeis, parsed.records, tally)

        in_stock = db.session.query(InventoryItem).filter_by(current_status=ITEM_STATUS_IN_STOCK).count()
        return complete_run(run, tally, destination_row_count=in_stock)
    except RunExpiredError:
        return stop_expired_run(run_id)
    except SQLAlchemyError as exc:
        logger.exception("Sheet sync run id=%s failed while applying changes", run_id)
        return fail_run(run_id, f"Storage error: {exc.__class__.__name__}: {exc}", tally=tally,
                        details={"stage": stage})
    except Exception as exc:
        logger.exception("Sheet sync run id=%s failed unexpectedly", run_id)
        return fail_run(run_id, f"Unexpected error: {exc.__class__.__name__}: {exc}", tally=tally,
                        details={"stage": stage})
