# Overview: Flask CLI command groups for bootstrap, sync runs and reports.

# backend/invtrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to invtrack (PowerShell: $env:FLASK_APP="invtrack").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` for migrations).
#
# Users:
# - python -m flask users create --email admin@example.com --password "Password1" --role admin
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#   List all users with role and active status.
#
# Sync runs:
# - python -m flask sync sheets [--file inventory.xlsx]
#   Reconcile the inventory sheet (or a local csv/json/xlsx file) into the ledger.
# - python -m flask sync outbound [--file outbound.csv]
#   Match the outbound list and mark in-stock devices shipped.
# - python -m flask sync status
#   Show the latest run of each type.
# - python -m flask sync expire-stale [--minutes 60]
#   Fail in-progress runs that stopped reporting progress.
#
# Reports:
# - python -m flask reports snapshot [--date 2026-01-31] [--location MAIN]
#   Generate (or regenerate) the daily inventory snapshot.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.auth_service import ROLES, create_user
from .services.outbound_service import run_outbound_sync
from .services.report_service import generate_daily_snapshot
from .services.sync_run_service import (
    RUN_STATUS_COMPLETED,
    RUN_TYPE_OUTBOUND_SYNC,
    RUN_TYPE_SHEET_SYNC,
    SyncInProgressError,
    expire_stale_runs,
    get_latest_sync_status,
)
from .services.sync_service import run_sheet_sync
from .sources import GoogleSheetsSource, TabularFileSource
from .time_utils import to_utc_z
from .validation import ConflictError, ValidationError, parse_date_arg


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default=None, help='Display name')
@click.option('--role', type=click.Choice(ROLES), default=ROLES[0], show_default=True, help='Role')
@with_appcontext
def create_user_cli(email, password, name, role):
    """
    Create a new user.

    Password must be at least 8 characters with one letter and one digit.
    """
    try:
        user = create_user(email, password, name=name, role=role)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.email).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<12} {'Active':<8} {'Last login'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        last_login = to_utc_z(user.last_login_at) if user.last_login_at else "never"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<12} {active_str:<8} {last_login}")
    click.echo("="*80 + "\n")


@click.group('sync')
def sync_group():
    """Sync run commands."""


def _source(path):
    if path:
        # Parsed eagerly so the file can be closed before the run starts.
        with open(path, "rb") as fh:
            source = TabularFileSource(fh, path)
            source.read_rows()
        return source
    return GoogleSheetsSource.from_config(current_app.config)


def _echo_run(run):
    status = "PASS" if run.status == RUN_STATUS_COMPLETED else "FAIL"
    click.echo(f"{status} {run.run_type} run {run.id}: {run.status}")
    for key, value in run.to_dict().items():
        if key.startswith("items") or key in ("parseErrors", "duplicates", "movementsCreated",
                                              "sourceRowCount", "destinationRowCount"):
            click.echo(f"  {key}: {value}")
    if run.error_message:
        click.echo(f"  error: {run.error_message}")


def _run_sync(runner, path):
    try:
        run = runner(_source(path), triggered_by="cli")
    except SyncInProgressError as e:
        click.echo(f"FAIL {e} (active run {e.active_run_id})")
        raise SystemExit(1)
    _echo_run(run)
    if run.status != RUN_STATUS_COMPLETED:
        raise SystemExit(1)


@sync_group.command('sheets')
@click.option('--file', 'path', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Local csv/json/xlsx file instead of the configured spreadsheet')
@with_appcontext
def sync_sheets(path):
    """Reconcile the current inventory snapshot into the ledger."""
    _run_sync(run_sheet_sync, path)


@sync_group.command('outbound')
@click.option('--file', 'path', type=click.Path(exists=True, dir_okay=False), default=None,
              help='Local csv/json/xlsx file instead of the configured spreadsheet')
@with_appcontext
def sync_outbound(path):
    """Mark devices on the outbound list as shipped."""
    _run_sync(run_outbound_sync, path)


@sync_group.command('status')
@with_appcontext
def sync_status():
    """Show the latest run of each type."""
    for run_type in (RUN_TYPE_SHEET_SYNC, RUN_TYPE_OUTBOUND_SYNC):
        run = get_latest_sync_status(run_type)
        if run is None:
            click.echo(f"{run_type}: no runs yet")
            continue
        click.echo(f"{run_type}: run {run.id} {run.status} (started {to_utc_z(run.started_at)})")


@sync_group.command('expire-stale')
@click.option('--minutes', type=int, default=None, help='Stale window (defaults to SYNC_STALE_AFTER_MINUTES)')
@with_appcontext
def sync_expire_stale(minutes):
    """Fail in-progress runs with no recent progress."""
    expired = expire_stale_runs(stale_after_minutes=minutes)
    click.echo(f"PASS Expired {expired} stale run(s)")


@click.group('reports')
def reports_group():
    """Reporting commands."""


@reports_group.command('snapshot')
@click.option('--date', 'day', default=None, help='YYYY-MM-DD (defaults to today, UTC)')
@click.option('--location', default=None, help='Location code (defaults to all locations)')
@with_appcontext
def reports_snapshot(day, location):
    """Generate the daily inventory snapshot."""
    try:
        snapshot = generate_daily_snapshot(parse_date_arg(day, "date"), location)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    data = snapshot.to_dict()
    click.echo(f"PASS Snapshot for {data['date']}: {data['totalDevices']} devices")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(reports_group)
