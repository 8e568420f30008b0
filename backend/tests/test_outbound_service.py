# Overview: Pytest coverage for the outbound/shipment matcher.

from invtrack.models import InventoryItem, InventoryMovement, OutboundImei
from invtrack.services.outbound_service import parse_outbound, run_outbound_sync
from invtrack.services.sync_service import run_sheet_sync
from invtrack.sources import FatalFetchError, StaticSource
from conftest import imei, sheet_row


def _outbound_row(n, **overrides):
    row = {"IMEI": imei(n), "Model": "iPhone 13", "Capacity": 128, "INVNO": f"INV-{n}", "INVTYPE": "wholesale"}
    row.update(overrides)
    return row


def _stock(*numbers):
    run = run_sheet_sync(StaticSource([sheet_row(n) for n in numbers]))
    assert run.status == "completed"


def _outbound(rows, **kwargs):
    return run_outbound_sync(StaticSource(outbound=rows, **kwargs), triggered_by="tester@example.com")


class TestParseOutbound:

    def test_aliases_and_invalid_rows(self):
        entries, errors, duplicates = parse_outbound([
            _outbound_row(1, **{"Lock Status": "Locked", "Updated At": "2026-03-01"}),
            _outbound_row(2, IMEI="not-an-imei"),
            _outbound_row(1),
        ])

        assert [e.imei for e in entries] == [imei(1), imei(1)]
        assert entries[0].capacity == "128"
        assert entries[0].lock_status == "Locked"
        assert entries[0].source_updated_at == "2026-03-01"
        assert errors == [{"row": 2, "value": "not-an-imei", "reason": "IMEI must be numeric"}]
        assert duplicates == 1


class TestOutboundSync:

    def test_known_devices_are_shipped(self, db_session):
        _stock(1, 2, 3)

        run = _outbound([_outbound_row(1), _outbound_row(2), _outbound_row(99)])

        assert run.status == "completed"
        assert run.items_shipped == 2
        assert run.items_not_found == 1
        assert run.items_already_shipped == 0
        assert run.destination_row_count == 2

        item = db_session.query(InventoryItem).filter_by(imei=imei(1)).one()
        assert item.current_status == "shipped"
        mv = db_session.query(InventoryMovement).filter_by(imei=imei(1), movement_type="shipped").one()
        assert mv.source == "outbound_sync"
        assert mv.sync_run_id == run.id
        assert mv.notes == "Matched outbound list (invno: INV-1, invtype: wholesale)"
        assert (mv.from_status, mv.to_status) == ("in_stock", "shipped")

    def test_second_run_is_idempotent(self, db_session):
        _stock(1, 2, 3)
        rows = [_outbound_row(1), _outbound_row(2)]

        first = _outbound(rows)
        movements_after_first = db_session.query(InventoryMovement).count()
        second = _outbound(rows)

        assert second.items_already_shipped == first.items_shipped == 2
        assert second.items_shipped == 0
        assert second.movements_created == 0
        assert db_session.query(InventoryMovement).count() == movements_after_first

    def test_cache_is_replaced_on_every_run(self, db_session):
        _outbound([_outbound_row(1), _outbound_row(2)])
        _outbound([_outbound_row(3)])

        cached = [row.imei for row in db_session.query(OutboundImei).all()]
        assert cached == [imei(3)]

    def test_cache_drives_the_next_sheet_sync(self, db_session):
        _stock(1, 2)
        _outbound([_outbound_row(7)])
        db_session.add(OutboundImei(imei=imei(2)))
        db_session.commit()

        run = run_sheet_sync(StaticSource([sheet_row(1)]))

        assert run.items_shipped == 1
        assert db_session.query(InventoryItem).filter_by(imei=imei(2)).one().current_status == "shipped"

    def test_removed_device_on_outbound_list_is_shipped(self, db_session):
        _stock(1)
        run_sheet_sync(StaticSource([]))

        run = _outbound([_outbound_row(1)])

        assert run.items_shipped == 1
        item = db_session.query(InventoryItem).filter_by(imei=imei(1)).one()
        assert item.current_status == "shipped"

    def test_invalid_rows_are_counted_not_matched(self, db_session):
        _stock(1)

        run = _outbound([_outbound_row(1), {"IMEI": "12"}, _outbound_row(1)])

        assert run.parse_errors == 1
        assert run.duplicates == 1
        assert run.items_processed == 1
        assert run.items_shipped == 1

    def test_shipped_device_still_on_the_sheet_does_not_bounce(self, db_session):
        _stock(1)

        for _ in range(2):
            _outbound([_outbound_row(1)])
            run = run_sheet_sync(StaticSource([sheet_row(1)]))
            assert run.movements_created == 0

        item = db_session.query(InventoryItem).filter_by(imei=imei(1)).one()
        assert item.current_status == "shipped"
        types = [m.movement_type for m in db_session.query(InventoryMovement).order_by(InventoryMovement.id)]
        assert types == ["added", "shipped"]

    def test_non_object_rows_are_parse_errors(self, db_session):
        _stock(2)

        run = _outbound([imei(1), _outbound_row(2)])

        assert run.status == "completed"
        assert run.active_slot is None
        assert run.parse_errors == 1
        assert run.items_shipped == 1
        assert run.error_details["parseErrors"] == [{"row": 1, "value": None, "reason": "row is not an object"}]

    def test_unexpected_fetch_error_fails_the_run_and_frees_the_slot(self, db_session):
        run = _outbound([], failures=[RuntimeError("socket closed")])

        assert run.status == "failed"
        assert run.active_slot is None
        assert run.error_details["stage"] == "fetch"
        assert "RuntimeError: socket closed" in run.error_message
        assert _outbound([_outbound_row(1)]).status == "completed"

    def test_fetch_failure_leaves_cache_untouched(self, db_session):
        _outbound([_outbound_row(1)])

        run = _outbound([], failures=[FatalFetchError("HTTP 404")])

        assert run.status == "failed"
        assert run.error_details["stage"] == "fetch"
        assert db_session.query(OutboundImei).count() == 1
