"""initial gearbook schema

Revision ID: gb001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the reservation schema from scratch:
- roles, role_permissions, users, session_tokens
- sections, sub_sections, section_closures, time_slots, products
- reservations, product_movements, movement_photos
- credit_transactions (append-only ledger)
- notifications, notification_preferences, audit_logs

On PostgreSQL an exclusion constraint additionally forbids two blocking
reservations (CONFIRMED, CHECKED_OUT) of the same product from
overlapping. Other backends rely on the product row version check.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'gb001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False, server_default=True):
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.text('CURRENT_TIMESTAMP') if server_default else None,
    )


def upgrade():
    # ============================================================================
    # Accounts and permissions
    # ============================================================================
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_roles_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'sections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('allowed_days_in', sa.JSON(), nullable=False),
        sa.Column('allowed_days_out', sa.JSON(), nullable=False),
        sa.Column('refund_deadline_hours', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_sections_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('role_id', sa.Integer(), nullable=True),
        sa.Column('credit_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('in_app_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_status', 'users', ['status'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('permission_key', sa.String(length=64), nullable=False),
        sa.Column('section_id', sa.Integer(), nullable=True),
        _timestamp('granted_at'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role_id', 'permission_key', 'section_id', name='uq_role_permission_scope'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])
    op.create_index('ix_role_permissions_permission_key', 'role_permissions', ['permission_key'])
    op.create_index('ix_role_permissions_section_id', 'role_permissions', ['section_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _timestamp('created_at'),
        _timestamp('last_used_at', nullable=True, server_default=False),
        _timestamp('expires_at', server_default=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # Catalog: sections, closures, time slots, products
    # ============================================================================
    op.create_table(
        'sub_sections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('section_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('section_id', 'name', name='uq_sub_sections_section_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sub_sections_section_id', 'sub_sections', ['section_id'])

    op.create_table(
        'section_closures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('section_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.CheckConstraint('end_date >= start_date', name='ck_section_closures_dates'),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_section_closures_section_id', 'section_closures', ['section_id'])
    op.create_index('ix_section_closures_section_dates', 'section_closures',
                    ['section_id', 'start_date', 'end_date'])

    op.create_table(
        'time_slots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('section_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_time_slots_section_id', 'time_slots', ['section_id'])
    op.create_index('ix_time_slots_section_type_day', 'time_slots', ['section_id', 'type', 'day_of_week'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_per_period', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_period', sa.String(length=8), nullable=False, server_default='DAY'),
        sa.Column('min_duration', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_duration', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='AVAILABLE'),
        sa.Column('last_condition', sa.String(length=16), nullable=True),
        _timestamp('last_movement_at', nullable=True, server_default=False),
        _timestamp('last_reserved_at', nullable=True, server_default=False),
        sa.Column('booking_seq', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('section_id', sa.Integer(), nullable=False),
        sa.Column('sub_section_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id']),
        sa.ForeignKeyConstraint(['sub_section_id'], ['sub_sections.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference', name='uq_products_reference'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_status', 'products', ['status'])
    op.create_index('ix_products_section_id', 'products', ['section_id'])
    op.create_index('ix_products_sub_section_id', 'products', ['sub_section_id'])
    op.create_index('ix_products_section_status', 'products', ['section_id', 'status'])

    # ============================================================================
    # Reservations and physical movements
    # ============================================================================
    op.create_table(
        'reservations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=True),
        sa.Column('end_time', sa.String(length=5), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='CONFIRMED'),
        sa.Column('credits_charged', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extension_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_extension_cost', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('refund_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('penalty_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        _timestamp('checked_out_at', nullable=True, server_default=False),
        sa.Column('checked_out_by_user_id', sa.Integer(), nullable=True),
        _timestamp('returned_at', nullable=True, server_default=False),
        sa.Column('returned_by_user_id', sa.Integer(), nullable=True),
        _timestamp('cancelled_at', nullable=True, server_default=False),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancel_reason', sa.String(length=500), nullable=True),
        _timestamp('refunded_at', nullable=True, server_default=False),
        sa.Column('refunded_by_user_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('end_date >= start_date', name='ck_reservations_dates'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['checked_out_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['returned_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['refunded_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_reservations_user_id', 'reservations', ['user_id'])
    op.create_index('ix_reservations_product_id', 'reservations', ['product_id'])
    op.create_index('ix_reservations_status', 'reservations', ['status'])
    op.create_index('ix_reservations_product_dates', 'reservations', ['product_id', 'start_date', 'end_date'])
    op.create_index('ix_reservations_user_status', 'reservations', ['user_id', 'status'])

    op.create_table(
        'product_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('reservation_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('condition', sa.String(length=16), nullable=False, server_default='OK'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=False),
        _timestamp('performed_at', server_default=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id']),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_movements_product_id', 'product_movements', ['product_id'])
    op.create_index('ix_product_movements_reservation_id', 'product_movements', ['reservation_id'])
    op.create_index('ix_product_movements_type', 'product_movements', ['type'])
    op.create_index('ix_product_movements_product_performed', 'product_movements',
                    ['product_id', 'performed_at'])

    op.create_table(
        'movement_photos',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('movement_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=512), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('mime_type', sa.String(length=128), nullable=False),
        sa.Column('size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['movement_id'], ['product_movements.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('movement_id', 'sort_order', name='uq_movement_photos_order'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_movement_photos_movement_id', 'movement_photos', ['movement_id'])

    # ============================================================================
    # Credit ledger
    # ============================================================================
    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('reservation_id', sa.Integer(), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        _timestamp('created_at', server_default=False),
        sa.CheckConstraint('amount != 0', name='ck_credit_txns_nonzero'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id']),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('ix_credit_transactions_type', 'credit_transactions', ['type'])
    op.create_index('ix_credit_transactions_reservation_id', 'credit_transactions', ['reservation_id'])
    op.create_index('ix_credit_transactions_created_at', 'credit_transactions', ['created_at'])
    op.create_index('ix_credit_txns_user_created', 'credit_transactions', ['user_id', 'created_at'])

    # ============================================================================
    # Notifications and audit
    # ============================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        _timestamp('read_at', nullable=True, server_default=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_user_created', 'notifications', ['user_id', 'created_at'])

    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('notification_type', sa.String(length=64), nullable=False),
        sa.Column('in_app_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'notification_type', name='uq_notification_prefs_user_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notification_preferences_user_id', 'notification_preferences', ['user_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('target_type', sa.String(length=64), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_performed_by_user_id', 'audit_logs', ['performed_by_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_target', 'audit_logs', ['target_type', 'target_id'])
    op.create_index('ix_audit_logs_created', 'audit_logs', ['created_at'])

    # ============================================================================
    # PostgreSQL: no two blocking reservations of a product may overlap
    # ============================================================================
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
        op.execute(
            """
            ALTER TABLE reservations
            ADD CONSTRAINT ex_reservations_no_overlap
            EXCLUDE USING gist (
                product_id WITH =,
                daterange(start_date, end_date, '[]') WITH &&
            )
            WHERE (status IN ('CONFIRMED', 'CHECKED_OUT'))
            """
        )


def downgrade():
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('ALTER TABLE reservations DROP CONSTRAINT IF EXISTS ex_reservations_no_overlap')

    for table in (
        'audit_logs',
        'notification_preferences',
        'notifications',
        'credit_transactions',
        'movement_photos',
        'product_movements',
        'reservations',
        'products',
        'time_slots',
        'section_closures',
        'sub_sections',
        'session_tokens',
        'role_permissions',
        'users',
        'sections',
        'roles',
    ):
        op.drop_table(table)
