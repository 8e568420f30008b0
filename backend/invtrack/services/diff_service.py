# Overview: Identity and diff engine; pure, in-memory comparison of device snapshots.

"""
Identity & Diff Engine

Given the persisted device state and a freshly fetched snapshot, compute one
ItemChange per IMEI that moved and classify the transition.

RULES (per IMEI in the incoming snapshot):
- absent from previous                      -> added
- status differs                            -> status_changed
- location differs                          -> transferred
- grade differs                             -> grade_changed
- only lock status differs                  -> status_changed (lock pair only)
- several fields differ                     -> ONE change carrying every pair;
  the type follows the precedence status > location > grade > lock
- nothing differs                           -> unchanged (counted, not logged)

A blank incoming value means "the sheet says nothing", never "cleared".
The one exception is status: a shipped or removed device that is listed
again with a blank status comes back as in_stock, unless its IMEI is on
the outbound list.

DISAPPEARED IMEIs (in previous with status in_stock, absent from incoming):
- confirmed by the outbound list            -> shipped
- otherwise                                 -> removed
Items already shipped/removed are not flagged again.

No database access here: callers build the maps, this module only compares.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping


IMEI_LENGTH = 15

ITEM_STATUS_IN_STOCK = "in_stock"
ITEM_STATUS_SHIPPED = "shipped"
ITEM_STATUS_REMOVED = "removed"
ITEM_STATUSES = (ITEM_STATUS_IN_STOCK, ITEM_STATUS_SHIPPED, ITEM_STATUS_REMOVED)

MOVEMENT_ADDED = "added"
MOVEMENT_SHIPPED = "shipped"
MOVEMENT_TRANSFERRED = "transferred"
MOVEMENT_GRADE_CHANGED = "grade_changed"
MOVEMENT_STATUS_CHANGED = "status_changed"
MOVEMENT_REMOVED = "removed"
MOVEMENT_TYPES = (
    MOVEMENT_ADDED,
    MOVEMENT_SHIPPED,
    MOVEMENT_TRANSFERRED,
    MOVEMENT_GRADE_CHANGED,
    MOVEMENT_STATUS_CHANGED,
    MOVEMENT_REMOVED,
)

# Tracked fields in classification precedence order
TRACKED_FIELDS = ("status", "location", "grade", "lock_status")

_FIELD_CLASSIFICATION = {
    "status": MOVEMENT_STATUS_CHANGED,
    "location": MOVEMENT_TRANSFERRED,
    "grade": MOVEMENT_GRADE_CHANGED,
    "lock_status": MOVEMENT_STATUS_CHANGED,
}

# Normalized header (alphanumerics only, upper-cased) -> DeviceRecord field
HEADER_ALIASES = {
    "IMEI": "imei",
    "MODEL": "model",
    "GB": "gb",
    "CAPACITY": "gb",
    "STORAGE": "gb",
    "COLOR": "color",
    "COLOUR": "color",
    "SKU": "sku",
    "GRADE": "grade",
    "GRADED": "grade",
    "LOCKSTATUS": "lock_status",
    "LOCK": "lock_status",
    "SUPPLIER": "supplier",
    "BATCH": "supplier",
    "MASTERCARTON": "master_carton",
    "CARTON": "master_carton",
    "LOCATION": "location",
    "SITE": "location",
    "STATUS": "status",
}

_HEADER_STRIP = re.compile(r"[^A-Za-z0-9]")


def normalize_imei(value: Any) -> str | None:
    """
    Canonical string form of an IMEI cell.

    Spreadsheet exports turn long numbers into floats ("356938035643809.0");
    those are folded back to their digits. Everything else is stripped text.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return str(value)
        value = int(value)
    s = str(value).strip()
    if s.endswith(".0") and s[:-2].isdigit():
        s = s[:-2]
    return s or None


def is_valid_imei(value: str | None) -> bool:
    return (
        value is not None
        and len(value) == IMEI_LENGTH
        and value.isascii()
        and value.isdigit()
    )


def imei_error(value: str | None) -> str | None:
    """Reason an IMEI is rejected, or None when it is valid."""
    if value is None:
        return "missing IMEI"
    if not (value.isascii() and value.isdigit()):
        return "IMEI must be numeric"
    if len(value) != IMEI_LENGTH:
        return f"IMEI must be {IMEI_LENGTH} digits (got {len(value)})"
    return None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = str(value).strip()
    return s or None


def _normalize_status(value: Any) -> str | None:
    s = _clean(value)
    if s is None:
        return None
    s = s.lower().replace(" ", "_").replace("-", "_")
    return s if s in ITEM_STATUSES else None


def _normalize_location(value: Any) -> str | None:
    s = _clean(value)
    return s.upper() if s else None


@dataclass(frozen=True)
class DeviceRecord:
    """One device as seen by a snapshot (either side of the diff)."""
    imei: str
    model: str | None = None
    gb: str | None = None
    color: str | None = None
    sku: str | None = None
    supplier: str | None = None
    master_carton: str | None = None
    grade: str | None = None
    lock_status: str | None = None
    status: str | None = None
    location: str | None = None

    @classmethod
    def from_item(cls, item) -> "DeviceRecord":
        """Build from a persisted InventoryItem."""
        return cls(
            imei=item.imei,
            model=item.model,
            gb=item.gb,
            color=item.color,
            sku=item.sku,
            supplier=item.supplier,
            master_carton=item.master_carton,
            grade=item.grade,
            lock_status=item.lock_status,
            status=item.current_status,
            location=item.location.code if item.location else None,
        )

    def tracked(self) -> dict:
        return {name: getattr(self, name) for name in TRACKED_FIELDS}

    def as_dict(self) -> dict:
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
            "status": self.status,
            "location": self.location,
        }


@dataclass(frozen=True)
class ParseError:
    row: int
    value: str | None
    reason: str

    def to_dict(self) -> dict:
        return {"row": self.row, "value": self.value, "reason": self.reason}


@dataclass
class ParsedSnapshot:
    records: dict[str, DeviceRecord] = field(default_factory=dict)
    row_count: int = 0
    parse_errors: list[ParseError] = field(default_factory=list)
    duplicate_imeis: list[str] = field(default_factory=list)

    @property
    def duplicates(self) -> int:
        return len(self.duplicate_imeis)


@dataclass(frozen=True)
class ItemChange:
    imei: str
    classification: str
    before: dict
    after: dict
    record: DeviceRecord | None = None

    @property
    def changed_fields(self) -> tuple[str, ...]:
        return tuple(name for name in TRACKED_FIELDS if name in self.after)


@dataclass
class DiffResult:
    changes: list[ItemChange] = field(default_factory=list)
    unchanged_imeis: list[str] = field(default_factory=list)

    @property
    def unchanged(self) -> int:
        return len(self.unchanged_imeis)

    def count(self, classification: str) -> int:
        return sum(1 for c in self.changes if c.classification == classification)


def _canonical_key(header: Any) -> str | None:
    if header is None:
        return None
    return HEADER_ALIASES.get(_HEADER_STRIP.sub("", str(header)).upper())


def record_from_row(row: Mapping[str, Any]) -> tuple[str | None, dict]:
    """Map a raw sheet row onto DeviceRecord fields. Returns (imei, fields)."""
    fields: dict[str, Any] = {}
    raw_imei = None
    for header, value in row.items():
        key = _canonical_key(header)
        if key is None or key in fields:
            continue
        if key == "imei":
            raw_imei = value
            fields["imei"] = None
        elif key == "status":
            fields["status"] = _normalize_status(value)
        elif key == "location":
            fields["location"] = _normalize_location(value)
        else:
            fields[key] = _clean(value)
    fields.pop("imei", None)
    return normalize_imei(raw_imei), fields


def parse_snapshot(rows: Iterable[Mapping[str, Any]]) -> ParsedSnapshot:
    """
    Turn raw snapshot rows into DeviceRecords keyed by IMEI.

    - Rows with a missing, non-numeric or non-15-digit IMEI are excluded and
      recorded as parse errors (row numbers are 1-based data rows).
    - A repeated IMEI replaces the earlier row (last-seen-wins); every repeat
      is recorded in duplicate_imeis.
    """
    parsed = ParsedSnapshot()
    for index, row in enumerate(rows, start=1):
        parsed.row_count += 1
        if not isinstance(row, Mapping):
            parsed.parse_errors.append(ParseError(index, None, "row is not an object"))
            continue

        imei, fields = record_from_row(row)
        reason = imei_error(imei)
        if reason:
            parsed.parse_errors.append(ParseError(index, imei, reason))
            continue

        if imei in parsed.records:
            parsed.duplicate_imeis.append(imei)
        parsed.records[imei] = DeviceRecord(imei=imei, **fields)
    return parsed


def _tracked_changes(previous: DeviceRecord, incoming: DeviceRecord) -> tuple[dict, dict]:
    before: dict = {}
    after: dict = {}
    for name in TRACKED_FIELDS:
        new_value = getattr(incoming, name)
        if new_value is None:
            continue
        old_value = getattr(previous, name)
        if new_value != old_value:
            before[name] = old_value
            after[name] = new_value
    return before, after


def classify(changed: Iterable[str]) -> str:
    """Movement type for a set of changed tracked fields."""
    changed = set(changed)
    for name in TRACKED_FIELDS:
        if name in changed:
            return _FIELD_CLASSIFICATION[name]
    raise ValueError("classify() needs at least one changed field")


def diff_snapshots(
    previous: Mapping[str, DeviceRecord],
    incoming: Mapping[str, DeviceRecord],
    *,
    outbound_imeis: Iterable[str] = frozenset(),
) -> DiffResult:
    """
    Compare persisted state with a fresh snapshot.

    Changes come out in incoming order, followed by disappeared IMEIs in
    sorted order, so repeated runs over the same inputs are deterministic.
    """
    outbound = frozenset(outbound_imeis)
    result = DiffResult()

    for imei, new in incoming.items():
        old = previous.get(imei)
        if old is None:
            added = replace(new, status=new.status or ITEM_STATUS_IN_STOCK)
            result.changes.append(ItemChange(
                imei=imei,
                classification=MOVEMENT_ADDED,
                before={},
                after={k: v for k, v in added.tracked().items() if v is not None},
                record=added,
            ))
            continue

        if new.status is None and old.status != ITEM_STATUS_IN_STOCK and imei not in outbound:
            # Back on the physical sheet means back in stock, unless still outbound.
            new = replace(new, status=ITEM_STATUS_IN_STOCK)
        before, after = _tracked_changes(old, new)
        if not after:
            result.unchanged_imeis.append(imei)
            continue
        result.changes.append(ItemChange(
            imei=imei,
            classification=classify(after),
            before=before,
            after=after,
            record=new,
        ))

    for imei in sorted(set(previous) - set(incoming)):
        old = previous[imei]
        if old.status != ITEM_STATUS_IN_STOCK:
            continue
        shipped = imei in outbound
        result.changes.append(ItemChange(
            imei=imei,
            classification=MOVEMENT_SHIPPED if shipped else MOVEMENT_REMOVED,
            before={"status": old.status},
            after={"status": ITEM_STATUS_SHIPPED if shipped else ITEM_STATUS_REMOVED},
            record=None,
        ))

    return result
