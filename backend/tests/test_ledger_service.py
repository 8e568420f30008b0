# Overview: Pytest coverage for the append-only movement ledger and its pagination.

from datetime import datetime, timedelta

import pytest

from invtrack.models import InventoryMovement
from invtrack.services.ledger_service import (
    SOURCE_MANUAL,
    SOURCE_SHEET_SYNC,
    append_movement,
    count_movements_by_type,
    get_imei_history,
    get_last_movement,
    query_movements,
)
from invtrack.validation import ValidationError
from conftest import imei


BASE_TIME = datetime(2026, 3, 1, 12, 0, 0)


def _seed(db_session, count, *, movement_type="added", imei_for=imei):
    for n in range(count):
        append_movement(
            movement_type=movement_type,
            imei=imei_for(n),
            source=SOURCE_SHEET_SYNC,
            to_status="in_stock",
            performed_at=BASE_TIME + timedelta(minutes=n),
        )
    db_session.commit()


class TestAppendMovement:

    def test_rejects_unknown_type_and_source(self, db_session):
        with pytest.raises(ValueError):
            append_movement(movement_type="teleported", imei=imei(1), source=SOURCE_MANUAL)
        with pytest.raises(ValueError):
            append_movement(movement_type="added", imei=imei(1), source="spreadsheet")

    def test_movements_cannot_be_updated(self, db_session):
        mv = append_movement(movement_type="added", imei=imei(1), source=SOURCE_MANUAL)
        db_session.commit()

        mv.notes = "rewritten"
        with pytest.raises(RuntimeError):
            db_session.flush()
        db_session.rollback()

    def test_movements_cannot_be_deleted(self, db_session):
        mv = append_movement(movement_type="added", imei=imei(1), source=SOURCE_MANUAL)
        db_session.commit()

        db_session.delete(mv)
        with pytest.raises(RuntimeError):
            db_session.flush()
        db_session.rollback()
        assert db_session.query(InventoryMovement).count() == 1


class TestQueryMovements:

    def test_pages_are_disjoint_and_has_more_flips_at_the_end(self, db_session):
        _seed(db_session, 25)

        first = query_movements(limit=10, offset=0)
        second = query_movements(limit=10, offset=10)
        third = query_movements(limit=10, offset=20)

        first_ids = {m["id"] for m in first["movements"]}
        second_ids = {m["id"] for m in second["movements"]}
        assert len(first_ids) == 10
        assert len(second_ids) == 10
        assert first_ids.isdisjoint(second_ids)

        assert first["pagination"] == {"total": 25, "limit": 10, "offset": 0, "hasMore": True}
        assert second["pagination"]["hasMore"] is True
        assert len(third["movements"]) == 5
        assert third["pagination"]["hasMore"] is False

    def test_newest_first_with_id_tiebreak(self, db_session):
        for n in range(3):
            append_movement(movement_type="added", imei=imei(n), source=SOURCE_SHEET_SYNC, performed_at=BASE_TIME)
        db_session.commit()

        sequences = [m["sequence"] for m in query_movements()["movements"]]
        assert sequences == sorted(sequences, reverse=True)

    def test_as_of_pins_the_view_while_new_rows_arrive(self, db_session):
        _seed(db_session, 12)
        first = query_movements(limit=10, offset=0)
        as_of = BASE_TIME + timedelta(minutes=11)

        # A later sync appends more movements
        append_movement(movement_type="shipped", imei=imei(99), source=SOURCE_SHEET_SYNC,
                        performed_at=BASE_TIME + timedelta(hours=1))
        db_session.commit()

        pinned_first = query_movements(limit=10, offset=0, as_of=as_of)
        pinned_second = query_movements(limit=10, offset=10, as_of=as_of)

        assert [m["id"] for m in pinned_first["movements"]] == [m["id"] for m in first["movements"]]
        assert pinned_second["pagination"]["total"] == 12
        assert len(pinned_second["movements"]) == 2

    def test_filters(self, db_session):
        _seed(db_session, 3)
        _seed(db_session, 2, movement_type="removed", imei_for=lambda n: imei(50 + n))

        assert query_movements(movement_type="removed")["pagination"]["total"] == 2
        assert query_movements(imei=imei(1))["pagination"]["total"] == 1
        assert query_movements(source=SOURCE_MANUAL)["pagination"]["total"] == 0
        window = query_movements(start=BASE_TIME + timedelta(minutes=1), end=BASE_TIME + timedelta(minutes=1))
        assert window["pagination"]["total"] == 2

    def test_invalid_filter_values(self, db_session):
        with pytest.raises(ValidationError):
            query_movements(movement_type="teleported")
        with pytest.raises(ValidationError):
            query_movements(source="spreadsheet")


class TestHistory:

    def test_imei_history_newest_first(self, db_session):
        append_movement(movement_type="added", imei=imei(1), source=SOURCE_SHEET_SYNC, performed_at=BASE_TIME)
        append_movement(movement_type="grade_changed", imei=imei(1), source=SOURCE_SHEET_SYNC,
                        from_grade="A", to_grade="B", performed_at=BASE_TIME + timedelta(days=1))
        db_session.commit()

        history = get_imei_history(imei(1))

        assert history["found"] is True
        assert [m["movementType"] for m in history["movements"]] == ["grade_changed", "added"]
        assert get_last_movement(imei(1)).movement_type == "grade_changed"

    def test_unknown_imei(self, db_session):
        history = get_imei_history(imei(1))
        assert history == {"found": False, "imei": imei(1), "movements": []}
        assert get_last_movement(imei(1)) is None

    def test_count_by_type_includes_every_type(self, db_session):
        _seed(db_session, 4)
        counts = count_movements_by_type(BASE_TIME, BASE_TIME + timedelta(days=1))
        assert counts["added"] == 4
        assert counts["shipped"] == 0
        assert set(counts) == {"added", "shipped", "transferred", "grade_changed", "status_changed", "removed"}
