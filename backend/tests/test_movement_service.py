# Overview: Pytest coverage for manual ship / transfer / grade and lock updates.

import pytest

from invtrack.models import InventoryLocation, InventoryMovement
from invtrack.services.movement_service import (
    ItemNotFoundError,
    MovementError,
    ship_items,
    transfer_items,
    update_item_status,
)
from invtrack.services.sync_service import run_sheet_sync
from invtrack.sources import StaticSource
from conftest import imei, sheet_row


@pytest.fixture
def stocked(db_session):
    run_sheet_sync(StaticSource([sheet_row(n) for n in (1, 2, 3)]))
    db_session.add(InventoryLocation(code="WH2", name="Second Warehouse", is_active=True))
    db_session.add(InventoryLocation(code="OLD", name="Closed Site", is_active=False))
    db_session.commit()


class TestShipItems:

    def test_ships_and_reports_per_imei_errors(self, db_session, stocked):
        result = ship_items([imei(1), imei(2), imei(99), "123"], notes="picked up", performed_by="ops@example.com")

        assert result["shipped"] == 2
        assert result["success"] is False
        assert {e["imei"] for e in result["errors"]} == {imei(99), "123"}

        mv = db_session.query(InventoryMovement).filter_by(imei=imei(1), movement_type="shipped").one()
        assert mv.source == "manual"
        assert mv.performed_by == "ops@example.com"
        assert mv.notes == "picked up"
        assert mv.sync_run_id is None

    def test_already_shipped_is_an_error_not_a_second_movement(self, db_session, stocked):
        ship_items([imei(1)])

        result = ship_items([imei(1)])

        assert result["shipped"] == 0
        assert "already shipped" in result["errors"][0]["error"]
        assert db_session.query(InventoryMovement).filter_by(movement_type="shipped").count() == 1

    def test_duplicate_imeis_in_one_request_ship_once(self, db_session, stocked):
        result = ship_items([imei(1), imei(1)])
        assert result["shipped"] == 1
        assert result["success"] is True


class TestTransferItems:

    def test_transfer_to_another_location(self, db_session, stocked):
        result = transfer_items([imei(1)], "wh2", performed_by="ops@example.com")

        assert result["transferred"] == 1
        movement = result["movements"][0]
        assert (movement["fromLocation"], movement["toLocation"]) == ("MAIN", "WH2")
        assert movement["movementType"] == "transferred"

    def test_same_location_is_reported(self, db_session, stocked):
        result = transfer_items([imei(1)], "MAIN")
        assert result["transferred"] == 0
        assert "already at MAIN" in result["errors"][0]["error"]

    def test_unknown_or_inactive_location(self, db_session, stocked):
        with pytest.raises(MovementError, match="not found"):
            transfer_items([imei(1)], "NOWHERE")
        with pytest.raises(MovementError, match="not active"):
            transfer_items([imei(1)], "OLD")


class TestUpdateItemStatus:

    def test_grade_change(self, db_session, stocked):
        result = update_item_status(imei(1), grade="B+", performed_by="ops@example.com")

        assert result["changed"] is True
        movement = result["movement"]
        assert movement["movementType"] == "grade_changed"
        assert (movement["fromGrade"], movement["toGrade"]) == ("A", "B+")

    def test_grade_and_lock_in_one_movement(self, db_session, stocked):
        result = update_item_status(imei(1), grade="C", lock_status="Locked")

        movement = result["movement"]
        assert movement["movementType"] == "grade_changed"
        assert (movement["fromLockStatus"], movement["toLockStatus"]) == ("Unlocked", "Locked")
        assert db_session.query(InventoryMovement).filter_by(imei=imei(1), source="manual").count() == 1

    def test_lock_only_is_a_status_change(self, db_session, stocked):
        result = update_item_status(imei(2), lock_status="Locked")
        assert result["movement"]["movementType"] == "status_changed"

    def test_no_change_writes_nothing(self, db_session, stocked):
        result = update_item_status(imei(1), grade="A")
        assert result == {"success": True, "changed": False, "movement": None}

    def test_errors(self, db_session, stocked):
        with pytest.raises(ItemNotFoundError):
            update_item_status(imei(99), grade="A")
        with pytest.raises(MovementError, match="required"):
            update_item_status(imei(1))
        with pytest.raises(MovementError):
            update_item_status("42", grade="A")
