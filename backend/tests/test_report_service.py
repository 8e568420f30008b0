# Overview: Pytest coverage for daily snapshots, range summaries, stats and the grouped stock view.

from datetime import timedelta

import pytest

from invtrack.models import DailyInventorySnapshot
from invtrack.services import report_service
from invtrack.services.movement_service import ship_items, update_item_status
from invtrack.services.sync_service import run_sheet_sync
from invtrack.sources import StaticSource
from invtrack.time_utils import utcnow
from invtrack.validation import ValidationError
from conftest import imei, sheet_row


@pytest.fixture
def stocked(db_session):
    run_sheet_sync(StaticSource([
        sheet_row(1, Grade="A", Model="iPhone 13", GB="128", Color="Blue"),
        sheet_row(2, Grade="A", Model="iPhone 13", GB="128", Color="Red"),
        sheet_row(3, Grade="A", Model="iPhone 13", GB="256", Color="Blue"),
        sheet_row(4, Grade="B", Model="iPhone 12", GB="64", Color="Black", **{"Lock Status": "Locked"}),
        sheet_row(5, Grade=None, Model="Pixel 7", GB=None, Color=None, Location="WH2"),
    ]))


class TestGroupInventory:

    def test_grade_model_capacity_color_tree(self, db_session, stocked):
        grouped = report_service.group_inventory()

        assert grouped["total"] == 5
        grades = {g["grade"]: g for g in grouped["grades"]}
        assert [g["grade"] for g in grouped["grades"]] == ["A", "B", "Unknown"]
        assert grades["A"]["count"] == 3

        iphone13 = grades["A"]["models"][0]
        assert iphone13["model"] == "iPhone 13"
        assert [(c["gb"], c["count"]) for c in iphone13["capacities"]] == [("128", 2), ("256", 1)]
        assert iphone13["capacities"][0]["colors"] == [{"color": "Blue", "count": 1}, {"color": "Red", "count": 1}]

    def test_only_in_stock_devices_are_grouped(self, db_session, stocked):
        ship_items([imei(1)])
        assert report_service.group_inventory()["total"] == 4

    def test_location_filter(self, db_session, stocked):
        grouped = report_service.group_inventory("wh2")
        assert grouped["total"] == 1
        assert grouped["grades"][0]["models"][0]["model"] == "Pixel 7"

        with pytest.raises(ValidationError):
            report_service.group_inventory("NOWHERE")


class TestInventoryStats:

    def test_breakdowns(self, db_session, stocked):
        ship_items([imei(4)])

        stats = report_service.inventory_stats()

        assert stats["totalInStock"] == 4
        assert stats["byStatus"] == {"in_stock": 4, "shipped": 1}
        assert stats["byGrade"] == {"A": 3, "Unknown": 1}
        assert stats["byLockStatus"] == {"Unlocked": 4}


class TestDailySnapshots:

    def test_generate_counts_todays_movements(self, db_session, stocked):
        ship_items([imei(1)])
        update_item_status(imei(2), grade="C")

        snapshot = report_service.generate_daily_snapshot()

        data = snapshot.to_dict()
        assert data["totalDevices"] == 4
        assert data["dailyActivity"] == {"added": 5, "shipped": 1, "transferred": 0, "statusChanges": 1}
        assert data["byModel"] == {"iPhone 12": 1, "iPhone 13": 2, "Pixel 7": 1}

    def test_regenerating_replaces_the_row(self, db_session, stocked):
        report_service.generate_daily_snapshot()
        ship_items([imei(1)])

        snapshot = report_service.generate_daily_snapshot()

        assert db_session.query(DailyInventorySnapshot).count() == 1
        assert snapshot.total_devices == 4

    def test_per_location_snapshot(self, db_session, stocked):
        today = utcnow().date()
        report_service.generate_daily_snapshot(today, "WH2")

        assert report_service.get_snapshot_by_date(today, "WH2").total_devices == 1
        assert report_service.get_snapshot_by_date(today) is None

    def test_range_summary(self, db_session, stocked):
        today = utcnow().date()
        yesterday = today - timedelta(days=1)
        db_session.add(DailyInventorySnapshot(
            snapshot_date=yesterday, location_id=None, total_devices=2,
            grade_breakdown={}, model_breakdown={}, lock_status_breakdown={},
            daily_added=2, daily_shipped=0, daily_transferred=0, daily_status_changes=0,
        ))
        db_session.commit()
        report_service.generate_daily_snapshot(today)

        summary = report_service.get_date_range_summary(yesterday, today)

        assert summary["totalSnapshots"] == 2
        assert summary["summary"]["startingInventory"] == 2
        assert summary["summary"]["endingInventory"] == 5
        assert summary["summary"]["netChange"] == 3
        assert summary["summary"]["totalAdded"] == 7
        assert summary["movementsByType"]["added"] == 5

    def test_range_validation(self, db_session):
        today = utcnow().date()
        with pytest.raises(ValidationError):
            report_service.get_snapshots_by_range(today, today - timedelta(days=1))
        with pytest.raises(ValidationError):
            report_service.get_snapshots_by_range(today - timedelta(days=400), today)
