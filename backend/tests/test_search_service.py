# Overview: Pytest coverage for IMEI search.

from invtrack.services.movement_service import ship_items
from invtrack.services.search_service import batch_search_imeis, search_by_imei
from invtrack.services.sync_service import run_sheet_sync
from invtrack.sources import StaticSource
from conftest import imei, sheet_row


def test_known_imei_returns_state_location_and_last_movement(db_session):
    run_sheet_sync(StaticSource([sheet_row(1, Grade="B")]))

    result = search_by_imei(imei(1))

    assert result["found"] is True
    assert result["currentStatus"] == "in_stock"
    assert result["grade"] == "B"
    assert result["currentLocation"]["code"] == "MAIN"
    assert result["lastMovement"]["type"] == "added"
    assert result["lastMovement"]["source"] == "sheet_sync"
    assert result["daysInInventory"] == 0


def test_shipped_device_has_no_days_in_inventory(db_session):
    run_sheet_sync(StaticSource([sheet_row(1)]))
    ship_items([imei(1)])

    result = search_by_imei(imei(1))

    assert result["currentStatus"] == "shipped"
    assert result["lastMovement"]["type"] == "shipped"
    assert result["daysInInventory"] is None


def test_unknown_imei_is_not_an_error(db_session):
    assert search_by_imei(imei(42)) == {"found": False, "imei": imei(42)}


def test_float_formatted_imei_is_normalized(db_session):
    run_sheet_sync(StaticSource([sheet_row(1)]))
    assert search_by_imei(f"{imei(1)}.0")["found"] is True


def test_batch_search_keeps_request_order_and_summarizes(db_session):
    run_sheet_sync(StaticSource([sheet_row(1), sheet_row(2)]))

    result = batch_search_imeis([imei(2), imei(7), imei(1), imei(2)])

    assert [r["imei"] for r in result["results"]] == [imei(2), imei(7), imei(1)]
    assert [r["found"] for r in result["results"]] == [True, False, True]
    assert result["summary"] == {"total": 3, "found": 2, "notFound": 1}
