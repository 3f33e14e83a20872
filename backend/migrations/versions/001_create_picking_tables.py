"""Create picking tables

picking_users, picking_sessions (with fulfillment outbox and version counter),
picking_items (quantity invariants as CHECK constraints) and audit_logs.

At most one in_progress session per order is enforced by a partial unique index.

Revision ID: 001_picking_tables
Revises:
Create Date: 2026-03-02
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_picking_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'picking_users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='picker'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_picking_users_id', 'picking_users', ['id'])
    op.create_index('ix_picking_users_active', 'picking_users', ['active'])

    op.create_table(
        'picking_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),

        # Order reference
        sa.Column('order_id', sa.String(64), nullable=False),
        sa.Column('order_display_id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_progress'),

        # Timing
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=True),

        # Cancellation
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),

        # Picker
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('user_name', sa.String(100), nullable=False),
        sa.Column('completed_by_name', sa.String(100), nullable=True),

        # Packing
        sa.Column('packed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('packed_at', sa.DateTime(), nullable=True),
        sa.Column('packed_by_name', sa.String(100), nullable=True),

        # Shortfall reconciliation
        sa.Column('faltante_resolution', sa.String(20), nullable=True),
        sa.Column('faltante_resolved_at', sa.DateTime(), nullable=True),
        sa.Column('faltante_notes', sa.Text(), nullable=True),

        # Fulfillment outbox
        sa.Column('fulfillment_status', sa.String(20), nullable=False, server_default='none'),
        sa.Column('fulfillment_kind', sa.String(20), nullable=True),
        sa.Column('fulfillment_lines', sa.JSON(), nullable=True),
        sa.Column('fulfillment_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('fulfillment_attempted_at', sa.DateTime(), nullable=True),
        sa.Column('fulfillment_submitted_at', sa.DateTime(), nullable=True),
        sa.Column('fulfillment_error', sa.Text(), nullable=True),
        sa.Column('fulfillment_remote_id', sa.String(64), nullable=True),

        # Timestamps / optimistic locking
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),

        sa.ForeignKeyConstraint(['user_id'], ['picking_users.id'],
                                name='fk_picking_sessions_user'),
    )
    op.create_index('ix_picking_sessions_id', 'picking_sessions', ['id'])
    op.create_index('ix_picking_sessions_order_id', 'picking_sessions', ['order_id'])
    op.create_index('ix_picking_sessions_status', 'picking_sessions', ['status'])
    op.create_index('ix_picking_sessions_completed_at', 'picking_sessions', ['completed_at'])
    op.create_index('ix_picking_sessions_user_id', 'picking_sessions', ['user_id'])
    op.create_index('ix_picking_sessions_faltante_resolution', 'picking_sessions', ['faltante_resolution'])
    op.create_index('ix_picking_sessions_fulfillment_status', 'picking_sessions', ['fulfillment_status'])

    # One active session per order
    op.create_index(
        'uq_picking_sessions_active_order',
        'picking_sessions',
        ['order_id'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        'picking_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),

        sa.Column('line_item_id', sa.String(64), nullable=False),
        sa.Column('variant_id', sa.String(64), nullable=True),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('barcode', sa.String(100), nullable=True),

        sa.Column('quantity_required', sa.Integer(), nullable=False),
        sa.Column('quantity_picked', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_missing', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_received', sa.Integer(), nullable=False, server_default='0'),

        sa.Column('picked_at', sa.DateTime(), nullable=True),
        sa.Column('scan_method', sa.String(20), nullable=True),

        sa.ForeignKeyConstraint(['session_id'], ['picking_sessions.id'],
                                name='fk_picking_items_session', ondelete='CASCADE'),
        sa.UniqueConstraint('session_id', 'line_item_id', name='uq_picking_items_session_line'),
        sa.CheckConstraint('quantity_required >= 0', name='ck_picking_items_required'),
        sa.CheckConstraint(
            'quantity_picked >= 0 AND quantity_picked <= quantity_required',
            name='ck_picking_items_picked',
        ),
        sa.CheckConstraint(
            'quantity_missing >= 0 AND quantity_missing <= quantity_required - quantity_picked',
            name='ck_picking_items_missing',
        ),
        sa.CheckConstraint(
            'quantity_received >= 0 AND quantity_received <= quantity_missing',
            name='ck_picking_items_received',
        ),
    )
    op.create_index('ix_picking_items_id', 'picking_items', ['id'])
    op.create_index('ix_picking_items_session_id', 'picking_items', ['session_id'])
    op.create_index('ix_picking_items_sku', 'picking_items', ['sku'])
    op.create_index('ix_picking_items_barcode', 'picking_items', ['barcode'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('user_name', sa.String(100), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('order_id', sa.String(64), nullable=True),
        sa.Column('order_display_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_order_id', 'audit_logs', ['order_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('picking_items')
    op.drop_index('uq_picking_sessions_active_order', table_name='picking_sessions')
    op.drop_table('picking_sessions')
    op.drop_table('picking_users')
