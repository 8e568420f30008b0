# Overview: Pytest coverage for the flask CLI command groups.

import json

import pytest

from invtrack.models import InventoryItem, User
from conftest import imei, sheet_row


@pytest.fixture
def runner(app, db_session):
    return app.test_cli_runner()


def test_users_create_and_list(runner, db_session):
    result = runner.invoke(args=[
        "users", "create", "--email", "cli@example.com", "--password", "Password1", "--role", "admin",
    ])
    assert result.exit_code == 0
    assert "PASS Created user cli@example.com" in result.output
    assert db_session.query(User).filter_by(email="cli@example.com").one().role == "admin"

    listed = runner.invoke(args=["users", "list"])
    assert "cli@example.com" in listed.output


def test_users_create_rejects_weak_password(runner):
    result = runner.invoke(args=["users", "create", "--email", "cli@example.com", "--password", "weak"])
    assert result.exit_code == 1
    assert result.output.startswith("FAIL")


def test_sync_sheets_from_file(runner, db_session, tmp_path):
    path = tmp_path / "inventory.json"
    path.write_text(json.dumps([sheet_row(1), sheet_row(2)]), encoding="utf-8")

    result = runner.invoke(args=["sync", "sheets", "--file", str(path)])

    assert result.exit_code == 0
    assert "PASS sheet_sync run" in result.output
    assert "itemsAdded: 2" in result.output
    assert db_session.query(InventoryItem).count() == 2

    status = runner.invoke(args=["sync", "status"])
    assert "sheet_sync: run" in status.output
    assert "outbound_sync: no runs yet" in status.output


def test_sync_without_configuration_fails(runner):
    result = runner.invoke(args=["sync", "outbound"])
    assert result.exit_code == 1
    assert "GOOGLE_API_KEY is not configured" in result.output


def test_reports_snapshot(runner, tmp_path):
    path = tmp_path / "inventory.csv"
    path.write_text(f"IMEI,Model\n{imei(1)},iPhone 13\n", encoding="utf-8")
    runner.invoke(args=["sync", "sheets", "--file", str(path)])

    result = runner.invoke(args=["reports", "snapshot"])
    assert result.exit_code == 0
    assert "1 devices" in result.output

    bad = runner.invoke(args=["reports", "snapshot", "--date", "31/01/2026"])
    assert bad.exit_code == 1


def test_expire_stale(runner):
    result = runner.invoke(args=["sync", "expire-stale", "--minutes", "5"])
    assert result.output.strip() == "PASS Expired 0 stale run(s)"
