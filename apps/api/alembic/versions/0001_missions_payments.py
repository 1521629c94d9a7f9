"""Missions, payments and status history.

Revision ID: 0001_missions_payments
Revises:
Create Date: 2026-10-19

Creates:
- users
- missions (money as integer minor units)
- mission_status_history
- payments (partial unique index: one pending payment per mission)
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_missions_payments'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ==========================================================================
    # users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('is_verified', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    # ==========================================================================
    # missions
    # ==========================================================================
    op.create_table(
        'missions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('assistant_id', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('priority', sa.String(20), nullable=False),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('requirements', sa.Text(), nullable=True),
        sa.Column('requires_car', sa.Boolean(), nullable=False),
        sa.Column('requires_tools', sa.Boolean(), nullable=False),
        sa.Column('pickup_address', sa.String(255), nullable=False),
        sa.Column('pickup_latitude', sa.Numeric(10, 8), nullable=True),
        sa.Column('pickup_longitude', sa.Numeric(11, 8), nullable=True),
        sa.Column('drop_address', sa.String(255), nullable=True),
        sa.Column('time_window_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('time_window_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('price_estimate_minor', sa.BigInteger(), nullable=False),
        sa.Column('final_price_minor', sa.BigInteger(), nullable=False),
        sa.Column('cash_advance_minor', sa.BigInteger(), nullable=False),
        sa.Column('commission_minor', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('disputed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('dispute_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['assistant_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('price_estimate_minor >= 0', name='ck_missions_price_estimate'),
        sa.CheckConstraint('final_price_minor >= 0', name='ck_missions_final_price'),
        sa.CheckConstraint('cash_advance_minor >= 0', name='ck_missions_cash_advance'),
        sa.CheckConstraint('commission_minor >= 0', name='ck_missions_commission'),
    )
    op.create_index('idx_missions_status_created', 'missions', ['status', 'created_at'])
    op.create_index('idx_missions_client', 'missions', ['client_id', 'created_at'])
    op.create_index('idx_missions_assistant', 'missions', ['assistant_id', 'created_at'])

    # ==========================================================================
    # mission_status_history
    # ==========================================================================
    op.create_table(
        'mission_status_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('from_status', sa.String(20), nullable=True),
        sa.Column('to_status', sa.String(20), nullable=False),
        sa.Column('changed_by_user_id', sa.Uuid(), nullable=True),
        sa.Column('changed_by_role', sa.String(20), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['changed_by_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_mission_history_mission', 'mission_status_history', ['mission_id', 'changed_at'])
    op.create_index('idx_mission_history_actor', 'mission_status_history', ['changed_by_user_id', 'changed_at'])

    # ==========================================================================
    # payments
    # ==========================================================================
    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('mission_id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('assistant_id', sa.Uuid(), nullable=False),
        sa.Column('amount_minor', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('provider_intent_id', sa.String(255), nullable=True),
        sa.Column('provider_refund_id', sa.String(255), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['mission_id'], ['missions.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['client_id'], ['users.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['assistant_id'], ['users.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_minor > 0', name='ck_payments_amount_positive'),
    )
    op.create_index('idx_payments_mission', 'payments', ['mission_id', 'created_at'])
    op.create_index('idx_payments_provider_intent', 'payments', ['provider_intent_id'])

    # One active escrow per mission
    op.create_index(
        'uq_payments_one_pending_per_mission',
        'payments',
        ['mission_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index('uq_payments_one_pending_per_mission', table_name='payments')
    op.drop_index('idx_payments_provider_intent', table_name='payments')
    op.drop_index('idx_payments_mission', table_name='payments')
    op.drop_table('payments')

    op.drop_index('idx_mission_history_actor', table_name='mission_status_history')
    op.drop_index('idx_mission_history_mission', table_name='mission_status_history')
    op.drop_table('mission_status_history')

    op.drop_index('idx_missions_assistant', table_name='missions')
    op.drop_index('idx_missions_client', table_name='missions')
    op.drop_index('idx_missions_status_created', table_name='missions')
    op.drop_table('missions')

    op.drop_table('users')
