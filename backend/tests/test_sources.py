# Overview: Pytest coverage for snapshot sources (Sheets API client, uploads, static rows).

import io
import json

import httpx
import pytest
from openpyxl import Workbook

from invtrack.sources import (
    FatalFetchError,
    GoogleSheetsSource,
    StaticSource,
    TabularFileSource,
    TransientFetchError,
    rows_from_values,
)


def _sheets_source(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    params = {"api_key": "test-key", "spreadsheet_id": "sheet-123", "client": client}
    params.update(kwargs)
    return GoogleSheetsSource(**params)


class TestRowsFromValues:

    def test_pads_short_rows_and_skips_blank_ones(self):
        rows = rows_from_values([
            ["IMEI", "Model", "Grade"],
            [356938035643809, "iPhone 13"],
            ["", None, "  "],
            [356938035643810, "iPhone 14", "B"],
        ])
        assert rows == [
            {"IMEI": 356938035643809, "Model": "iPhone 13", "Grade": None},
            {"IMEI": 356938035643810, "Model": "iPhone 14", "Grade": "B"},
        ]

    def test_empty_sheet(self):
        assert rows_from_values([]) == []
        assert rows_from_values([["IMEI"]]) == []


class TestGoogleSheetsSource:

    def test_reads_the_named_tab_unformatted(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"values": [["IMEI", "Grade"], [356938035643809, "A"]]})

        rows = _sheets_source(handler).fetch_current_snapshot()

        assert rows == [{"IMEI": 356938035643809, "Grade": "A"}]
        assert seen["url"].path == "/v4/spreadsheets/sheet-123/values/PHYSICAL INVENTORY"
        assert seen["url"].params["key"] == "test-key"
        assert seen["url"].params["valueRenderOption"] == "UNFORMATTED_VALUE"

    def test_outbound_tab(self):
        def handler(request):
            assert request.url.path.endswith("/values/OUTBOUND")
            return httpx.Response(200, json={"values": [["IMEI"], ["356938035643809"]]})

        assert _sheets_source(handler).fetch_outbound_list() == [{"IMEI": "356938035643809"}]

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_server_errors_are_transient(self, status):
        source = _sheets_source(lambda request: httpx.Response(status))
        with pytest.raises(TransientFetchError):
            source.fetch_current_snapshot()

    @pytest.mark.parametrize("status", [400, 403, 404])
    def test_client_errors_are_fatal(self, status):
        source = _sheets_source(lambda request: httpx.Response(status))
        with pytest.raises(FatalFetchError):
            source.fetch_current_snapshot()

    def test_transport_errors_are_transient(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(TransientFetchError):
            _sheets_source(handler).fetch_current_snapshot()

    def test_non_json_body_is_fatal(self):
        source = _sheets_source(lambda request: httpx.Response(200, text="<html>login</html>"))
        with pytest.raises(FatalFetchError):
            source.fetch_current_snapshot()

    def test_missing_configuration_is_fatal(self):
        source = GoogleSheetsSource(api_key=None, spreadsheet_id="sheet-123")
        with pytest.raises(FatalFetchError, match="GOOGLE_API_KEY"):
            source.fetch_current_snapshot()

    def test_from_config(self):
        source = GoogleSheetsSource.from_config({
            "GOOGLE_API_KEY": "k",
            "SPREADSHEET_ID": "s",
            "INVENTORY_SHEET_NAME": "STOCK",
            "SHEETS_FETCH_TIMEOUT_SECONDS": 5,
        })
        assert (source.api_key, source.spreadsheet_id, source.inventory_sheet) == ("k", "s", "STOCK")
        assert source.outbound_sheet == "OUTBOUND"
        assert source.timeout == 5


class TestTabularFileSource:

    def test_csv_with_bom(self):
        data = "\ufeffIMEI,Grade\n356938035643809,A\n".encode("utf-8")
        source = TabularFileSource(io.BytesIO(data), "inventory.csv")
        assert source.fetch_current_snapshot() == [{"IMEI": "356938035643809", "Grade": "A"}]

    def test_json_list_and_wrapped_rows(self):
        rows = [{"IMEI": "356938035643809"}]
        assert TabularFileSource(io.BytesIO(json.dumps(rows).encode()), "a.json").read_rows() == rows
        wrapped = json.dumps({"rows": rows}).encode()
        assert TabularFileSource(io.BytesIO(wrapped), "b.json").read_rows() == rows

    def test_xlsx(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["IMEI", "Model", "Grade"])
        ws.append([356938035643809, "iPhone 13", "A"])
        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        rows = TabularFileSource(buffer, "stock.xlsx").fetch_outbound_list()

        assert rows == [{"IMEI": 356938035643809, "Model": "iPhone 13", "Grade": "A"}]

    def test_rows_are_parsed_once(self):
        stream = io.BytesIO(b"IMEI\n356938035643809\n")
        source = TabularFileSource(stream, "inventory.csv")
        first = source.read_rows()
        first[0]["IMEI"] = "changed"
        assert source.read_rows() == [{"IMEI": "356938035643809"}]

    def test_unsupported_and_broken_files_are_fatal(self):
        with pytest.raises(FatalFetchError, match="Unsupported"):
            TabularFileSource(io.BytesIO(b"x"), "notes.txt").read_rows()
        with pytest.raises(FatalFetchError):
            TabularFileSource(io.BytesIO(b"{not json"), "broken.json").read_rows()
        with pytest.raises(FatalFetchError):
            TabularFileSource(io.BytesIO(b"42"), "scalar.json").read_rows()


class TestStaticSource:

    def test_failures_are_consumed_one_per_fetch(self):
        source = StaticSource([{"IMEI": "1"}], failures=[TransientFetchError("once")])
        with pytest.raises(TransientFetchError):
            source.fetch_current_snapshot()
        assert source.fetch_current_snapshot() == [{"IMEI": "1"}]
        assert source.calls == 2
