from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping

from invtrack.time_utils import parse_iso_date, parse_iso_datetime


DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 500
MAX_BATCH_IMEIS = 5000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""


def _parse_int(raw: Any, field: str) -> int:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        stripped = raw.strip()
        # Reject decimals and scientific notation ("10.5", "1e3")
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def parse_pagination(
    args: Mapping[str, Any],
    *,
    default_limit: int = DEFAULT_PAGE_LIMIT,
    max_limit: int = MAX_PAGE_LIMIT,
) -> tuple[int, int]:
    """
    Read limit/offset query args.

    limit is clamped to [1, max_limit]; a negative offset is an error.
    """
    raw_limit = args.get("limit")
    raw_offset = args.get("offset")

    limit = default_limit if raw_limit in (None, "") else _parse_int(raw_limit, "limit")
    offset = 0 if raw_offset in (None, "") else _parse_int(raw_offset, "offset")

    if offset < 0:
        raise ValidationError("offset must be >= 0")
    limit = max(1, min(limit, max_limit))
    return limit, offset


def parse_datetime_arg(value: str | None, field: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def require_string_list(payload: Mapping[str, Any], key: str = "imeis", *, max_items: int = MAX_BATCH_IMEIS) -> list[str]:
    """
    Extract a non-empty list of non-blank strings from a JSON body.

    Values are stripped; blanks are dropped. Format checks (15 digits) are
    left to the services so they can report per-IMEI results.
    """
    values = payload.get(key)
    if not isinstance(values, list) or not values:
        raise ValidationError(f"{key} must be a non-empty array")
    if len(values) > max_items:
        raise ValidationError(f"{key} accepts at most {max_items} entries")

    cleaned = [str(v).strip() for v in values if v is not None and str(v).strip()]
    if not cleaned:
        raise ValidationError(f"No valid {key} provided")
    return cleaned


def parse_date_arg(value: str | None, field: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date")
