# Overview: Outbound/shipment matcher; marks known IMEIs shipped from the outbound list.

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryItem, OutboundImei, SyncRun
from ..sources import FetchError, OutboundSource, TransientFetchError
from invtrack.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .diff_service import ITEM_STATUS_SHIPPED, MOVEMENT_SHIPPED, imei_error, normalize_imei
from .ledger_service import SOURCE_OUTBOUND_SYNC, append_movement
from .sync_run_service import (
    RUN_TYPE_OUTBOUND_SYNC,
    RunExpiredError,
    acquire_run,
    complete_run,
    fail_run,
    fetch_with_retry,
    stop_expired_run,
    write_progress,
)

"""
Outbound Matching

For every unique valid IMEI on the outbound list:
- not in inventory        -> items_not_found, no movement
- already shipped         -> items_already_shipped, no movement (suppressed)
- otherwise               -> status shipped + one shipped movement

Running the same list twice therefore creates no new movements the second
time. The OutboundImei cache is replaced wholesale on every run that fetched
successfully; the sheet reconciliation reads it.
"""

_HEADER_STRIP = re.compile(r"[^A-Za-z0-9]")

OUTBOUND_HEADER_ALIASES = {
    "IMEI": "imei",
    "MODEL": "model",
    "CAPACITY": "capacity",
    "GB": "capacity",
    "COLOR": "color",
    "COLOUR": "color",
    "LOCKSTATUS": "lock_status",
    "GRADED": "graded",
    "GRADE": "graded",
    "PRICE": "price",
    "UPDATEDAT": "source_updated_at",
    "UPDATED": "source_updated_at",
    "INVNO": "invno",
    "INVOICENO": "invno",
    "INVTYPE": "invtype",
    "INVOICETYPE": "invtype",
}

CACHE_INSERT_CHUNK_SIZE = 1000

MAX_REPORTED_PARSE_ERRORS = 100


@dataclass(frozen=True)
class OutboundEntry:
    imei: str
    model: str | None = None
    capacity: str | None = None
    color: str | None = None
    lock_status: str | None = None
    graded: str | None = None
    price: str | None = None
    source_updated_at: str | None = None
    invno: str | None = None
    invtype: str | None = None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = str(value).strip()
    return s or None


def parse_outbound(rows: Iterable[Mapping[str, Any]]) -> tuple[list[OutboundEntry], list[dict], int]:
    """
    Normalize outbound rows.

    Returns (entries with a valid IMEI in list order, parse error dicts,
    number of repeated IMEIs).
    """
    entries: list[OutboundEntry] = []
    errors: list[dict] = []
    seen: set[str] = set()
    duplicates = 0

    for index, row in enumerate(rows, start=1):
        if not isinstance(row, Mapping):
            errors.append({"row": index, "value": None, "reason": "row is not an object"})
            continue
        fields: dict[str, Any] = {}
        for header, value in row.items():
            key = OUTBOUND_HEADER_ALIASES.get(_HEADER_STRIP.sub("", str(header)).upper())
            if key and key not in fields:
                fields[key] = value

        imei = normalize_imei(fields.pop("imei", None))
        reason = imei_error(imei)
        if reason:
            errors.append({"row": index, "value": imei, "reason": reason})
            continue
        if imei in seen:
            duplicates += 1
        seen.add(imei)
        entries.append(OutboundEntry(imei=imei, **{k: _text(v) for k, v in fields.items()}))

    return entries, errors, duplicates


def refresh_outbound_cache(entries: list[OutboundEntry]) -> int:
    """Truncate and repopulate the outbound cache in one transaction."""
    now = utcnow()
    db.session.query(OutboundImei).delete(synchronize_session=False)
    for start in range(0, len(entries), CACHE_INSERT_CHUNK_SIZE):
        chunk = entries[start:start + CACHE_INSERT_CHUNK_SIZE]
        db.session.add_all([
            OutboundImei(
                imei=e.imei,
                model=e.model,
                capacity=e.capacity,
                color=e.color,
                lock_status=e.lock_status,
                graded=e.graded,
                price=e.price,
                invno=e.invno,
                invtype=e.invtype,
                source_updated_at=e.source_updated_at,
                synced_at=now,
            )
            for e in chunk
        ])
        db.session.flush()
    db.session.commit()
    return len(entries)


def _ship_entry(run: SyncRun, entry: OutboundEntry, tally: Counter) -> Counter:
    """Match one unique IMEI in its own transaction."""
    def _op() -> Counter:
        item = lock_for_update(db.session.query(InventoryItem).filter_by(imei=entry.imei)).first()
        if item is None:
            db.session.rollback()
            return Counter(items_processed=1, items_not_found=1)
        if item.current_status == ITEM_STATUS_SHIPPED:
            db.session.rollback()
            return Counter(items_processed=1, items_already_shipped=1)

        now = utcnow()
        before = item.state_dict()
        from_status = item.current_status
        item.current_status = ITEM_STATUS_SHIPPED
        db.session.flush()

        append_movement(
            movement_type=MOVEMENT_SHIPPED,
            imei=item.imei,
            item_id=item.id,
            source=SOURCE_OUTBOUND_SYNC,
            from_status=from_status,
            to_status=ITEM_STATUS_SHIPPED,
            from_grade=item.grade,
            to_grade=item.grade,
            from_lock_status=item.lock_status,
            to_lock_status=item.lock_status,
            from_location_id=item.current_location_id,
            to_location_id=item.current_location_id,
            sync_run_id=run.id,
            performed_by=run.triggered_by,
            performed_at=now,
            notes=f"Matched outbound list (invno: {entry.invno or '-'}, invtype: {entry.invtype or '-'})",
            snapshot={"before": before, "after": item.state_dict()},
        )

        delta = Counter(items_processed=1, items_shipped=1, movements_created=1)
        write_progress(run, tally, delta)
        db.session.commit()
        return delta

    return run_with_retry(_op)


def run_outbound_sync(source: OutboundSource, *, triggered_by: str | None = None) -> SyncRun:
    """
    One matching pass of the outbound list.

    Raises SyncInProgressError when another run holds the slot. Any failure
    after that, fetch included, comes back as a failed run with the slot
    released.
    """
    logger = current_app.logger
    run = acquire_run(RUN_TYPE_OUTBOUND_SYNC, triggered_by=triggered_by)
    run_id = run.id
    tally: Counter = Counter()
    stage = "fetch"

    try:
        try:
            rows = fetch_with_retry(source.fetch_outbound_list, label="outbound list")
        except FetchError as exc:
            return fail_run(
                run_id,
                f"Outbound fetch failed: {exc}",
                details={"stage": "fetch", "transient": isinstance(exc, TransientFetchError)},
            )

        stage = "apply"
        entries, errors, duplicates = parse_outbound(rows)
        tally.update(parse_errors=len(errors), duplicates=duplicates)
        report = {}
        if errors:
            report["error_details"] = {"parseErrors": errors[:MAX_REPORTED_PARSE_ERRORS]}
            logger.warning("Outbound sync run id=%s: %d rows with invalid IMEIs", run_id, len(errors))
        write_progress(run, tally, source_row_count=len(rows), **report)
        db.session.commit()

        cached = refresh_outbound_cache(entries)
        logger.info("Outbound sync run id=%s: cached %d outbound rows", run_id, cached)

        # Last row per IMEI carries the invoice reference used in notes
        unique: dict[str, OutboundEntry] = {}
        for entry in entries:
            unique[entry.imei] = entry

        interval = current_app.config["SYNC_PROGRESS_INTERVAL"]
        for index, entry in enumerate(unique.values(), start=1):
            tally.update(_ship_entry(run, entry, tally))
            if interval and index % interval == 0:
                write_progress(run, tally)
                db.session.commit()
                logger.info("Outbound sync run id=%s: matched %d/%d IMEIs", run_id, index, len(unique))

        return complete_run(run, tally, destination_row_count=tally["items_shipped"] + tally["items_already_shipped"])
    except RunExpiredError:
        return stop_expired_run(run_id)
    except SQLAlchemyError as exc:
        logger.exception("Outbound sync run id=%s failed while matching", run_id)
        return fail_run(run_id, f"Storage error: {exc.__class__.__name__}: {exc}", tally=tally,
                        details={"stage": stage})
    except Exception as exc:
        logger.exception("Outbound sync run id=%s failed unexpectedly", run_id)
        return fail_run(run_id, f"Unexpected error: {exc.__class__.__name__}: {exc}", tally=tally,
                        details={"stage": stage})
