"""Subscription ledger schema

Revision ID: 0001_subscription_ledger
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_subscription_ledger'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


USAGE_TABLES = ('numerology_readings', 'love_matches', 'trust_assessments')


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create profiles, subscriptions and the three usage streams."""

    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(320)),
        sa.Column('display_name', sa.String(100)),
        sa.Column('wants_premium', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('terms_agreed', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('onboarding_done', sa.Boolean(), server_default='false', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_profiles_user_id', 'profiles', ['user_id'], unique=True)

    # No unique constraint on (user_id, status): at most one active row per
    # user is kept by the reconciler, not the database.
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('tier', sa.String(20), server_default='free', nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('billing_cycle', sa.String(20), server_default='monthly', nullable=False),
        sa.Column('is_premium', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_unlimited', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True)),
        sa.Column('ends_at', sa.DateTime(timezone=True)),
        sa.Column('stripe_subscription_id', sa.String()),
        sa.Column('stripe_customer_id', sa.String()),
        *_timestamps(),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_user_status', 'subscriptions', ['user_id', 'status'])
    op.create_index('ix_subscriptions_status_ends_at', 'subscriptions', ['status', 'ends_at'])
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'])
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])

    op.create_table(
        'numerology_readings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('reading_type', sa.String(100), server_default='usage', nullable=False),
        sa.Column('reading_data', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'love_matches',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('partner_name', sa.String(255), server_default='usage', nullable=False),
        sa.Column('compatibility_score', sa.Float()),
        sa.Column('match_details', sa.JSON()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'trust_assessments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('assessment_data', sa.JSON()),
        sa.Column('trust_score', sa.Float()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    for table in USAGE_TABLES:
        op.create_index(f'ix_{table}_user_id', table, ['user_id'])
        op.create_index(f'ix_{table}_created_at', table, ['created_at'])
        op.create_index(f'ix_{table}_user_created', table, ['user_id', 'created_at'])


def downgrade() -> None:
    """Drop all ledger tables."""
    for table in USAGE_TABLES:
        op.drop_table(table)
    op.drop_table('subscriptions')
    op.drop_table('profiles')
