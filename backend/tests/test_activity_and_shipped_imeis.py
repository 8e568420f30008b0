# Overview: Pytest coverage for the activity log and the shipped-IMEI dump list.

from invtrack.models import ActivityLogEntry, ShippedImei
from invtrack.services import activity_service, shipped_imei_service
from invtrack.time_utils import day_bounds, utcnow
from conftest import imei


class TestShippedImeiList:

    def test_add_is_idempotent_and_reports_invalid(self, db_session, user):
        first = shipped_imei_service.add_shipped_imeis([imei(1), imei(2), imei(2), "abc"], user)
        second = shipped_imei_service.add_shipped_imeis([imei(2), imei(3)], user)

        assert first == {"added": 2, "skipped": 0, "invalid": [{"imei": "abc", "reason": "IMEI must be numeric"}], "total": 2}
        assert second["added"] == 1
        assert second["skipped"] == 1
        assert second["total"] == 3

    def test_chunked_inserts(self, db_session, user, app, monkeypatch):
        monkeypatch.setitem(app.config, "SHIPPED_IMEI_CHUNK_SIZE", 2)

        result = shipped_imei_service.add_shipped_imeis([imei(n) for n in range(5)], user)

        assert result["added"] == 5
        assert db_session.query(ShippedImei).count() == 5

    def test_delete_and_clear(self, db_session, user):
        shipped_imei_service.add_shipped_imeis([imei(1), imei(2), imei(3)], user)

        assert shipped_imei_service.delete_shipped_imei(imei(1), user) is True
        assert shipped_imei_service.delete_shipped_imei(imei(1), user) is False
        assert shipped_imei_service.clear_shipped_imeis(user) == 2
        assert shipped_imei_service.list_shipped_imeis() == []

    def test_every_mutation_is_logged_with_stats(self, db_session, user):
        shipped_imei_service.add_shipped_imeis([imei(n) for n in range(12)], user)
        shipped_imei_service.delete_shipped_imei(imei(0), user)
        shipped_imei_service.clear_shipped_imeis(user)

        types = [e.activity_type for e in db_session.query(ActivityLogEntry).order_by(ActivityLogEntry.id)]
        assert types == ["imei_dump_add", "imei_dump_delete", "imei_dump_clear"]

        add_entry = db_session.query(ActivityLogEntry).filter_by(activity_type="imei_dump_add").one()
        assert add_entry.item_count == 12
        assert len(add_entry.details["imeis"]) == activity_service.SAMPLE_SIZE
        assert add_entry.details["totalCount"] == 12

        stats = activity_service.get_user_activity_stats(user.id)
        assert stats.total_imeis_dumped == 12
        assert stats.total_imeis_deleted == 12


class TestActivityLog:

    def test_login_and_sync_counters(self, db_session, user):
        activity_service.log_login(user, ip_address="10.0.0.1", user_agent="pytest")
        activity_service.log_login(user)

        class FakeRun:
            id = 7
            run_type = "outbound_sync"
            status = "completed"
            movements_created = 3

        entry = activity_service.log_sync_triggered(user, FakeRun())

        assert entry.activity_type == "outbound_sync_triggered"
        assert entry.resource_id == "7"
        stats = activity_service.get_user_activity_stats(user.id)
        assert stats.total_logins == 2
        assert stats.total_syncs_triggered == 1
        assert stats.first_activity_at <= stats.last_activity_at

    def test_recent_activity_and_range_stats(self, db_session, user, admin):
        activity_service.log_login(user)
        activity_service.log_login(admin)
        activity_service.log_imei_dump_add(admin, [imei(1), imei(2)])

        assert len(activity_service.get_recent_activity(activity_type="login")) == 2
        assert [e.activity_type for e in activity_service.get_user_recent_activity(admin.id)] == ["imei_dump_add", "login"]

        start, end = day_bounds(utcnow().date())
        stats = activity_service.get_activity_stats_for_range(start, end)
        assert stats["totalActivities"] == 3
        assert stats["uniqueUsers"] == 2
        assert stats["totalImeisDumped"] == 2
        assert stats["activityByType"] == {"login": 2, "imei_dump_add": 1}

    def test_request_metadata_prefers_forwarded_for(self, app):
        with app.test_request_context(headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "ua"}):
            assert activity_service.request_metadata() == {"ip_address": "203.0.113.9", "user_agent": "ua"}
        assert activity_service.request_metadata() == {}
