# Overview: Snapshot and outbound-list providers consumed by the sync runs.

"""
Sources

A source hands the sync runs a list of raw row dicts. Headers are passed
through untouched; mapping them onto device fields is the diff engine's job.
Entries that are not objects are passed through as-is and become per-row
parse errors in the run.

Errors:
- TransientFetchError: worth retrying (timeouts, 5xx, 429, transport failures)
- FatalFetchError: retrying will not help (missing config, 4xx, bad payload)
"""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Iterable, Mapping
from urllib.parse import quote

import httpx
from openpyxl import load_workbook


class FetchError(Exception):
    pass


class TransientFetchError(FetchError):
    pass


class FatalFetchError(FetchError):
    pass


def _copy_rows(rows: list) -> list:
    return [dict(r) if isinstance(r, Mapping) else r for r in rows]


class SnapshotSource:
    def fetch_current_snapshot(self) -> list[dict]:
        raise NotImplementedError


class OutboundSource:
    def fetch_outbound_list(self) -> list[dict]:
        raise NotImplementedError


def rows_from_values(values: list[list[Any]]) -> list[dict]:
    """
    Turn a header row plus data rows into dicts.

    Short rows are padded with None (the Sheets API drops trailing empty
    cells). Rows with no non-blank cell are skipped.
    """
    if not values:
        return []
    headers = [str(h).strip() if h is not None else "" for h in values[0]]
    rows = []
    for raw in values[1:]:
        cells = list(raw) + [None] * (len(headers) - len(raw))
        if all(c is None or str(c).strip() == "" for c in cells):
            continue
        rows.append({headers[i]: cells[i] for i in range(len(headers)) if headers[i]})
    return rows


class GoogleSheetsSource(SnapshotSource, OutboundSource):
    """
    Google Sheets v4 values API, API-key auth.

    Reads the whole named tab; row 1 is the header row. Values are requested
    unformatted so IMEI cells come back as numbers instead of "3.57E+14".
    """
    BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"

    def __init__(
        self,
        *,
        api_key: str | None,
        spreadsheet_id: str | None,
        inventory_sheet: str = "PHYSICAL INVENTORY",
        outbound_sheet: str = "OUTBOUND",
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.spreadsheet_id = spreadsheet_id
        self.inventory_sheet = inventory_sheet
        self.outbound_sheet = outbound_sheet
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config) -> "GoogleSheetsSource":
        return cls(
            api_key=config.get("GOOGLE_API_KEY"),
            spreadsheet_id=config.get("SPREADSHEET_ID"),
            inventory_sheet=config.get("INVENTORY_SHEET_NAME", "PHYSICAL INVENTORY"),
            outbound_sheet=config.get("OUTBOUND_SHEET_NAME", "OUTBOUND"),
            timeout=config.get("SHEETS_FETCH_TIMEOUT_SECONDS", 60.0),
        )

    def fetch_current_snapshot(self) -> list[dict]:
        return self.fetch_sheet(self.inventory_sheet)

    def fetch_outbound_list(self) -> list[dict]:
        return self.fetch_sheet(self.outbound_sheet)

    def fetch_sheet(self, sheet_name: str) -> list[dict]:
        if not self.api_key:
            raise FatalFetchError("GOOGLE_API_KEY is not configured")
        if not self.spreadsheet_id:
            raise FatalFetchError("SPREADSHEET_ID is not configured")

        url = f"{self.BASE_URL}/{self.spreadsheet_id}/values/{quote(sheet_name, safe='')}"
        params = {"key": self.api_key, "valueRenderOption": "UNFORMATTED_VALUE"}

        try:
            if self._client is not None:
                resp = self._client.get(url, params=params, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    resp = client.get(url, params=params)
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Fetching {sheet_name!r} failed: {exc}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientFetchError(f"Fetching {sheet_name!r} failed with HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise FatalFetchError(f"Fetching {sheet_name!r} failed with HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise FatalFetchError(f"Sheet {sheet_name!r} returned a non-JSON body") from exc

        return rows_from_values(payload.get("values") or [])


class StaticSource(SnapshotSource, OutboundSource):
    """
    In-memory rows (tests, CLI replays).

    failures is consumed one entry per fetch before rows are returned, so
    StaticSource(rows, failures=[TransientFetchError("x")]) fails once then
    succeeds.
    """

    def __init__(self, rows: Iterable[dict] | None = None, *, outbound: Iterable[dict] | None = None,
                 failures: Iterable[Exception] | None = None):
        self.rows = list(rows or [])
        self.outbound = list(outbound if outbound is not None else self.rows)
        self.failures = list(failures or [])
        self.calls = 0

    def _next(self, rows: list[dict]) -> list[dict]:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return _copy_rows(rows)

    def fetch_current_snapshot(self) -> list[dict]:
        return self._next(self.rows)

    def fetch_outbound_list(self) -> list[dict]:
        return self._next(self.outbound)


class TabularFileSource(SnapshotSource, OutboundSource):
    """
    Uploaded CSV, JSON or Excel (.xlsx) file.

    JSON may be a list of row objects or {"rows": [...]}.
    Excel reads the active sheet; row 1 is the header row.
    """
    EXCEL_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}

    def __init__(self, stream, filename: str):
        self.stream = stream
        self.filename = filename or ""
        self._rows: list[dict] | None = None

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""

    def fetch_current_snapshot(self) -> list[dict]:
        return self.read_rows()

    def fetch_outbound_list(self) -> list[dict]:
        return self.read_rows()

    def read_rows(self) -> list[dict]:
        if self._rows is None:
            self._rows = self._parse()
        return _copy_rows(self._rows)

    def _parse(self) -> list[dict]:
        ext = self.extension
        try:
            if ext == "csv":
                raw = self.stream.read()
                text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
                return list(csv.DictReader(io.StringIO(text)))
            if ext == "json":
                rows = json.load(self.stream)
                if isinstance(rows, dict):
                    rows = rows.get("rows", [])
                if not isinstance(rows, list):
                    raise FatalFetchError("JSON upload must be a list of rows")
                return rows
            if ext in self.EXCEL_EXTENSIONS:
                wb = load_workbook(self.stream, read_only=True, data_only=True)
                try:
                    return rows_from_values([list(r) for r in wb.active.values])
                finally:
                    wb.close()
        except FatalFetchError:
            raise
        except Exception as exc:
            raise FatalFetchError(f"Failed to parse {self.filename or 'upload'}: {exc}") from exc
        raise FatalFetchError(f"Unsupported file format: {ext or 'unknown'}")
