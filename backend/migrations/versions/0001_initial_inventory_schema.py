"""initial inventory schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the device inventory tracker schema:
- inventory_locations / inventory_items: current device state
- inventory_movements: append-only ledger of device transitions
- sync_runs: one row per reconciliation or outbound matching pass
- outbound_imeis: last fetched outbound list
- users / session_tokens: accounts and bearer sessions
- user_activity_log / user_activity_stats: audit trail and per-user totals
- shipped_imeis: manually maintained shipped-IMEI dump list
- daily_inventory_snapshots: end-of-day reporting rows
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # inventory_locations
    # ============================================================================
    op.create_table(
        'inventory_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_locations_code', 'inventory_locations', ['code'], unique=True)

    # ============================================================================
    # users / session_tokens
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role_active', 'users', ['role', 'is_active'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    # ============================================================================
    # inventory_items: current state, version_id for optimistic locking
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('imei', sa.String(length=15), nullable=False),
        sa.Column('model', sa.String(length=120), nullable=True),
        sa.Column('gb', sa.String(length=32), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('supplier', sa.String(length=120), nullable=True),
        sa.Column('master_carton', sa.String(length=120), nullable=True),
        sa.Column('grade', sa.String(length=16), nullable=True),
        sa.Column('lock_status', sa.String(length=32), nullable=True),
        sa.Column('current_status', sa.String(length=16), nullable=False),
        sa.Column('current_location_id', sa.Integer(), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['current_location_id'], ['inventory_locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_imei', 'inventory_items', ['imei'], unique=True)
    op.create_index('ix_inventory_items_model', 'inventory_items', ['model'])
    op.create_index('ix_inventory_items_grade', 'inventory_items', ['grade'])
    op.create_index('ix_inventory_items_current_status', 'inventory_items', ['current_status'])
    op.create_index('ix_inventory_items_current_location_id', 'inventory_items', ['current_location_id'])
    op.create_index('ix_inventory_items_last_seen_at', 'inventory_items', ['last_seen_at'])
    op.create_index('ix_items_status_grade', 'inventory_items', ['current_status', 'grade'])

    # ============================================================================
    # sync_runs: active_slot is unique so only one run can be in progress
    # ============================================================================
    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('active_slot', sa.String(length=16), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_progress_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('items_processed', sa.Integer(), nullable=False),
        sa.Column('items_added', sa.Integer(), nullable=False),
        sa.Column('items_updated', sa.Integer(), nullable=False),
        sa.Column('items_unchanged', sa.Integer(), nullable=False),
        sa.Column('items_removed', sa.Integer(), nullable=False),
        sa.Column('items_shipped', sa.Integer(), nullable=False),
        sa.Column('items_already_shipped', sa.Integer(), nullable=False),
        sa.Column('items_not_found', sa.Integer(), nullable=False),
        sa.Column('parse_errors', sa.Integer(), nullable=False),
        sa.Column('duplicates', sa.Integer(), nullable=False),
        sa.Column('movements_created', sa.Integer(), nullable=False),
        sa.Column('source_row_count', sa.Integer(), nullable=True),
        sa.Column('destination_row_count', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_details', sa.JSON(), nullable=True),
        sa.Column('triggered_by', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('active_slot'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sync_runs_run_type', 'sync_runs', ['run_type'])
    op.create_index('ix_sync_runs_status', 'sync_runs', ['status'])
    op.create_index('ix_sync_runs_type_started', 'sync_runs', ['run_type', 'started_at'])

    # ============================================================================
    # inventory_movements: append-only ledger
    # ============================================================================
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uid', sa.String(length=36), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('imei', sa.String(length=15), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=True),
        sa.Column('from_status', sa.String(length=16), nullable=True),
        sa.Column('to_status', sa.String(length=16), nullable=True),
        sa.Column('from_grade', sa.String(length=16), nullable=True),
        sa.Column('to_grade', sa.String(length=16), nullable=True),
        sa.Column('from_lock_status', sa.String(length=32), nullable=True),
        sa.Column('to_lock_status', sa.String(length=32), nullable=True),
        sa.Column('from_location_id', sa.Integer(), nullable=True),
        sa.Column('to_location_id', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('sync_run_id', sa.Integer(), nullable=True),
        sa.Column('performed_by', sa.String(length=255), nullable=True),
        sa.Column('performed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('snapshot_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['from_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['to_location_id'], ['inventory_locations.id']),
        sa.ForeignKeyConstraint(['sync_run_id'], ['sync_runs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uid'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_movements_movement_type', 'inventory_movements', ['movement_type'])
    op.create_index('ix_inventory_movements_imei', 'inventory_movements', ['imei'])
    op.create_index('ix_inventory_movements_source', 'inventory_movements', ['source'])
    op.create_index('ix_inventory_movements_sync_run_id', 'inventory_movements', ['sync_run_id'])
    op.create_index('ix_inventory_movements_performed_at', 'inventory_movements', ['performed_at'])
    op.create_index('ix_movements_imei_performed', 'inventory_movements', ['imei', 'performed_at'])
    op.create_index('ix_movements_performed_id', 'inventory_movements', ['performed_at', 'id'])

    # ============================================================================
    # outbound_imeis: cache of the last fetched outbound list
    # ============================================================================
    op.create_table(
        'outbound_imeis',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('imei', sa.String(length=15), nullable=False),
        sa.Column('model', sa.String(length=120), nullable=True),
        sa.Column('capacity', sa.String(length=32), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('lock_status', sa.String(length=32), nullable=True),
        sa.Column('graded', sa.String(length=16), nullable=True),
        sa.Column('price', sa.String(length=32), nullable=True),
        sa.Column('invno', sa.String(length=64), nullable=True),
        sa.Column('invtype', sa.String(length=64), nullable=True),
        sa.Column('source_updated_at', sa.String(length=64), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_outbound_imeis_imei', 'outbound_imeis', ['imei'])
    op.create_index('ix_outbound_imeis_invno', 'outbound_imeis', ['invno'])

    # ============================================================================
    # Activity log, per-user stats, shipped-IMEI dump list
    # ============================================================================
    op.create_table(
        'user_activity_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('activity_type', sa.String(length=32), nullable=False),
        sa.Column('resource_type', sa.String(length=32), nullable=True),
        sa.Column('resource_id', sa.String(length=64), nullable=True),
        sa.Column('item_count', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('performed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_activity_log_user_id', 'user_activity_log', ['user_id'])
    op.create_index('ix_user_activity_log_activity_type', 'user_activity_log', ['activity_type'])
    op.create_index('ix_user_activity_log_performed_at', 'user_activity_log', ['performed_at'])
    op.create_index('ix_activity_user_performed', 'user_activity_log', ['user_id', 'performed_at'])

    op.create_table(
        'user_activity_stats',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('user_email', sa.String(length=255), nullable=False),
        sa.Column('total_imeis_dumped', sa.Integer(), nullable=False),
        sa.Column('total_imeis_deleted', sa.Integer(), nullable=False),
        sa.Column('total_logins', sa.Integer(), nullable=False),
        sa.Column('total_syncs_triggered', sa.Integer(), nullable=False),
        sa.Column('first_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'shipped_imeis',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('imei', sa.String(length=15), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('imei'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # daily_inventory_snapshots
    # ============================================================================
    op.create_table(
        'daily_inventory_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('total_devices', sa.Integer(), nullable=False),
        sa.Column('grade_breakdown', sa.JSON(), nullable=False),
        sa.Column('model_breakdown', sa.JSON(), nullable=False),
        sa.Column('lock_status_breakdown', sa.JSON(), nullable=False),
        sa.Column('daily_added', sa.Integer(), nullable=False),
        sa.Column('daily_shipped', sa.Integer(), nullable=False),
        sa.Column('daily_transferred', sa.Integer(), nullable=False),
        sa.Column('daily_status_changes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['inventory_locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('snapshot_date', 'location_id', name='uq_snapshots_date_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_daily_inventory_snapshots_snapshot_date', 'daily_inventory_snapshots', ['snapshot_date'])


def downgrade():
    op.drop_table('daily_inventory_snapshots')
    op.drop_table('shipped_imeis')
    op.drop_table('user_activity_stats')
    op.drop_table('user_activity_log')
    op.drop_table('outbound_imeis')
    op.drop_table('inventory_movements')
    op.drop_table('sync_runs')
    op.drop_table('inventory_items')
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('inventory_locations')
