"""create_billing_tables

Revision ID: 4c1e9a27b6d3
Revises:
Create Date: 2026-03-02 10:14:52.481203

Tables:
- subscribers: billable identity, tier and per-provider customer ids
- billing_events: append-only ledger of processed provider notifications
- usage_counters: per subscriber, per feature, per UTC day counts
- audit_logs: checkout and lifecycle audit trail
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1e9a27b6d3'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create billing tables with their indexes and constraints."""

    op.create_table(
        'subscribers',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('country_code', sa.String(2), nullable=True),

        # Tier
        sa.Column('subscription_tier', sa.String(50), nullable=False, server_default='community'),
        sa.Column('tier_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tier_expires_at', sa.DateTime(timezone=True), nullable=True),

        # Per-provider customer ids (never cleared once set)
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('janua_customer_id', sa.String(255), nullable=True),

        # Active provider and subscription
        sa.Column('billing_provider', sa.String(50), nullable=True),
        sa.Column('upstream_provider', sa.String(50), nullable=True),
        sa.Column('provider_subscription_id', sa.String(255), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_customer_id'),
        sa.UniqueConstraint('janua_customer_id'),
        sa.UniqueConstraint('provider_subscription_id'),
    )

    op.create_index('ix_subscribers_email', 'subscribers', ['email'])
    op.create_index('ix_subscribers_subscription_tier', 'subscribers', ['subscription_tier'])
    op.create_index('idx_subscriber_tier_expires', 'subscribers', ['subscription_tier', 'tier_expires_at'])

    op.create_table(
        'billing_events',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('subscriber_id', sa.String(36), nullable=False),

        sa.Column('type', sa.String(50), nullable=False),
        # Major units
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(20), nullable=False),

        sa.Column('provider', sa.String(50), nullable=False),
        sa.Column('provider_event_id', sa.String(255), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),

        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('provider', 'provider_event_id', name='uq_billing_event_provider_event'),
    )

    op.create_index('ix_billing_events_subscriber_id', 'billing_events', ['subscriber_id'])
    op.create_index('idx_billing_event_subscriber_created', 'billing_events', ['subscriber_id', 'created_at'])

    op.create_table(
        'usage_counters',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('subscriber_id', sa.String(36), nullable=False),
        sa.Column('feature', sa.String(50), nullable=False),
        sa.Column('usage_date', sa.Date(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('subscriber_id', 'feature', 'usage_date', name='uq_usage_counter_key'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('subscriber_id', sa.String(36), nullable=False),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('severity', sa.String(16), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id'], ondelete='CASCADE'),
    )

    op.create_index('idx_audit_subscriber_action', 'audit_logs', ['subscriber_id', 'action'])


def downgrade() -> None:
    """Remove billing tables."""
    op.drop_table('audit_logs')
    op.drop_table('usage_counters')
    op.drop_table('billing_events')
    op.drop_table('subscribers')
