"""Create parish billing schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

WHAT: Creates parishes, users, the plan-limited parish resources, and the
subscription tables (plans, subscriptions, payments, history, webhook log).

WHY: Subscriptions gate parish access:
1. One subscription per parish (unique parish_id)
2. One payment row per Razorpay payment (unique razorpay_payment_id),
   which makes redelivered payment webhooks idempotent
3. Append-only history and webhook log for audit and replay

HOW: Enum types are created explicitly so models can use create_type=False.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'parishstatus': ('ACTIVE', 'PENDING', 'SUSPENDED', 'CANCELLED'),
    'usertype': ('super_admin', 'church_admin', 'parishioner'),
    'plantier': ('basic', 'standard', 'premium', 'enterprise'),
    'billingcycle': ('monthly', 'quarterly', 'yearly'),
    'paymentmethod': ('online', 'cash'),
    'subscriptionstatus': (
        'created', 'authenticated', 'active', 'paused', 'halted', 'cancelled', 'expired', 'pending'
    ),
    'paymentstatus': ('created', 'authorized', 'captured', 'failed', 'refunded', 'pending'),
    'subscriptionaction': (
        'created', 'activated', 'paused', 'resumed', 'cancelled', 'expired',
        'plan_changed', 'payment_failed', 'payment_succeeded',
    ),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def _parish_resource(table: str) -> None:
    op.create_table(
        table,
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(f'ix_{table}_id', table, ['id'])
    op.create_index(f'ix_{table}_parish_id', table, ['parish_id'])


def upgrade() -> None:
    """
    Create the billing schema.

    WHY: Single migration for a fresh deployment of the billing service.
    """
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # Plan catalog
    op.create_table(
        'subscription_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plan_name', sa.String(length=100), nullable=False),
        sa.Column('plan_code', sa.String(length=50), nullable=False),
        sa.Column('tier', _enum('plantier'), nullable=False, server_default='basic'),
        sa.Column('razorpay_plan_id', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('billing_cycle', _enum('billingcycle'), nullable=False, server_default='monthly'),
        sa.Column('features', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('max_parishioners', sa.Integer(), nullable=True, comment='Null or 0 = unlimited'),
        sa.Column('max_families', sa.Integer(), nullable=True),
        sa.Column('max_wards', sa.Integer(), nullable=True),
        sa.Column('max_admins', sa.Integer(), nullable=True),
        sa.Column('max_users', sa.Integer(), nullable=True),
        sa.Column('max_storage_gb', sa.Integer(), nullable=True),
        sa.Column('trial_period_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('razorpay_plan_id'),
    )
    op.create_index('ix_subscription_plans_id', 'subscription_plans', ['id'])
    op.create_index('ix_subscription_plans_plan_code', 'subscription_plans', ['plan_code'], unique=True)

    # Tenants
    op.create_table(
        'parishes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            'subscription_status',
            _enum('parishstatus'),
            nullable=False,
            server_default='PENDING',
            comment='Four-value projection of the subscription state',
        ),
        sa.Column('current_plan_id', sa.Integer(), nullable=True),
        sa.Column('is_subscription_managed', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['current_plan_id'], ['subscription_plans.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_parishes_id', 'parishes', ['id'])
    op.create_index('ix_parishes_name', 'parishes', ['name'])
    op.create_index('ix_parishes_subscription_status', 'parishes', ['subscription_status'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=True),
        sa.Column('user_type', _enum('usertype'), nullable=False, server_default='parishioner'),
        sa.Column('parish_id', sa.Integer(), nullable=True, comment='Null for super admins'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_parish_id', 'users', ['parish_id'])

    # Plan-limited resources
    for table in ('parishioners', 'families', 'wards'):
        _parish_resource(table)

    # Subscriptions
    op.create_table(
        'parish_subscriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('payment_method', _enum('paymentmethod'), nullable=False, server_default='online'),
        sa.Column('razorpay_subscription_id', sa.String(length=255), nullable=True),
        sa.Column('razorpay_customer_id', sa.String(length=255), nullable=True),
        sa.Column('billing_contact_user_id', sa.Integer(), nullable=True),
        sa.Column('billing_email', sa.String(length=255), nullable=False),
        sa.Column('billing_phone', sa.String(length=20), nullable=True),
        sa.Column('billing_address_line1', sa.String(length=255), nullable=True),
        sa.Column('billing_address_line2', sa.String(length=255), nullable=True),
        sa.Column('billing_city', sa.String(length=100), nullable=True),
        sa.Column('billing_state', sa.String(length=100), nullable=True),
        sa.Column('billing_country', sa.String(length=100), nullable=True, server_default='India'),
        sa.Column('billing_postal_code', sa.String(length=20), nullable=True),
        sa.Column('tax_identification_number', sa.String(length=50), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('status', _enum('subscriptionstatus'), nullable=False, server_default='created'),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('trial_start_date', sa.DateTime(), nullable=True),
        sa.Column('trial_end_date', sa.DateTime(), nullable=True),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('next_billing_date', sa.DateTime(), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(), nullable=True),
        sa.Column('cancellation_date', sa.DateTime(), nullable=True),
        sa.Column('expiry_date', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('auto_renewal', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('payment_failed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paid', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_invoices', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id']),
        sa.ForeignKeyConstraint(['billing_contact_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['cancelled_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_parish_subscriptions_id', 'parish_subscriptions', ['id'])
    op.create_index(
        'ix_parish_subscriptions_parish_id', 'parish_subscriptions', ['parish_id'], unique=True
    )
    op.create_index(
        'ix_parish_subscriptions_razorpay_subscription_id',
        'parish_subscriptions',
        ['razorpay_subscription_id'],
        unique=True,
    )
    op.create_index('ix_parish_subscriptions_status', 'parish_subscriptions', ['status'])

    op.create_table(
        'subscription_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=False),
        sa.Column('razorpay_payment_id', sa.String(length=255), nullable=True),
        sa.Column('razorpay_order_id', sa.String(length=255), nullable=True),
        sa.Column('razorpay_invoice_id', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False, comment='Rupees, not paise'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('amount_paid', sa.Numeric(10, 2), nullable=True),
        sa.Column('payment_method', sa.String(length=50), nullable=True),
        sa.Column('status', _enum('paymentstatus'), nullable=False, server_default='created'),
        sa.Column('paid_on', sa.DateTime(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('refund_date', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['subscription_id'], ['parish_subscriptions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscription_payments_id', 'subscription_payments', ['id'])
    op.create_index('ix_subscription_payments_subscription_id', 'subscription_payments', ['subscription_id'])
    op.create_index('ix_subscription_payments_parish_id', 'subscription_payments', ['parish_id'])
    op.create_index(
        'ix_subscription_payments_razorpay_payment_id',
        'subscription_payments',
        ['razorpay_payment_id'],
        unique=True,
    )

    op.create_table(
        'subscription_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=False),
        sa.Column('parish_id', sa.Integer(), nullable=False),
        sa.Column('action', _enum('subscriptionaction'), nullable=False),
        sa.Column('old_status', sa.String(length=50), nullable=True),
        sa.Column('new_status', sa.String(length=50), nullable=True),
        sa.Column('old_plan_id', sa.Integer(), nullable=True),
        sa.Column('new_plan_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('performed_by', sa.Integer(), nullable=True, comment='Null when the gateway acted'),
        sa.Column('performed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['subscription_id'], ['parish_subscriptions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['performed_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscription_history_id', 'subscription_history', ['id'])
    op.create_index('ix_subscription_history_subscription_id', 'subscription_history', ['subscription_id'])
    op.create_index('ix_subscription_history_parish_id', 'subscription_history', ['parish_id'])

    op.create_table(
        'razorpay_webhook_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=True),
        sa.Column('entity_id', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parish_id', sa.Integer(), nullable=True),
        sa.Column('subscription_id', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['parish_id'], ['parishes.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['subscription_id'], ['parish_subscriptions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_razorpay_webhook_logs_id', 'razorpay_webhook_logs', ['id'])
    op.create_index('ix_razorpay_webhook_logs_event_id', 'razorpay_webhook_logs', ['event_id'])
    op.create_index(
        'uq_razorpay_webhook_logs_processed_event_id',
        'razorpay_webhook_logs',
        ['event_id'],
        unique=True,
        postgresql_where=sa.text('processed'),
        sqlite_where=sa.text('processed'),
    )
    op.create_index('ix_razorpay_webhook_logs_event_type', 'razorpay_webhook_logs', ['event_type'])


def downgrade() -> None:
    """Drop the billing schema."""
    for table in (
        'razorpay_webhook_logs',
        'subscription_history',
        'subscription_payments',
        'parish_subscriptions',
        'wards',
        'families',
        'parishioners',
        'users',
        'parishes',
        'subscription_plans',
    ):
        op.drop_table(table)

    for name in ENUMS:
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
