"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create access key, usage, keyword attempt and payment tables."""

    # ========================================================================
    # Create access_keys table
    # ========================================================================
    op.create_table(
        'access_keys',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('plan', sa.String(20), nullable=False),
        sa.Column('credits_total', sa.BigInteger(), nullable=False),
        sa.Column('credits_used', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        # Constraints
        sa.CheckConstraint('credits_total >= 0', name='ck_access_keys_credits_total_non_negative'),
        sa.CheckConstraint('credits_used >= 0', name='ck_access_keys_credits_used_non_negative'),
        sa.CheckConstraint("plan IN ('basic', 'blogger', 'pro')", name='ck_access_keys_plan'),
        sa.CheckConstraint("status IN ('active', 'suspended', 'expired')", name='ck_access_keys_status'),
    )

    op.create_index('idx_access_keys_created_at', 'access_keys', ['created_at'])
    op.create_index('idx_access_keys_email', 'access_keys', ['email'])

    # ========================================================================
    # Create usage_logs table
    # ========================================================================
    op.create_table(
        'usage_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('access_key_id', sa.String(32), nullable=False),
        sa.Column('keywords_requested', sa.Integer(), nullable=False),
        sa.Column('keywords_processed', sa.Integer(), nullable=False),
        sa.Column('credits_deducted', sa.Integer(), nullable=False),
        sa.Column('output_format', sa.String(32), nullable=False, server_default='wordpress'),
        sa.Column('estimated_cost_usd', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.CheckConstraint('credits_deducted >= 0', name='ck_usage_logs_credits_non_negative'),
        sa.ForeignKeyConstraint(['access_key_id'], ['access_keys.id'], name='fk_usage_logs_access_key', ondelete='CASCADE'),
    )

    op.create_index('idx_usage_logs_access_key_id', 'usage_logs', ['access_key_id'])
    op.create_index('idx_usage_logs_created_at', 'usage_logs', ['created_at'])

    # ========================================================================
    # Create keyword_attempts table
    # ========================================================================
    op.create_table(
        'keyword_attempts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('access_key_id', sa.String(32), nullable=False),
        sa.Column('keyword', sa.String(255), nullable=False),
        sa.Column('approach', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('word_count', sa.Integer(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('output_format', sa.String(32), nullable=False, server_default='wordpress'),
        sa.Column('estimated_cost_usd', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.CheckConstraint("status IN ('success', 'failed')", name='ck_keyword_attempts_status'),
        sa.ForeignKeyConstraint(['access_key_id'], ['access_keys.id'], name='fk_keyword_attempts_access_key', ondelete='CASCADE'),
    )

    op.create_index('idx_keyword_attempts_access_key_id', 'keyword_attempts', ['access_key_id'])
    op.create_index('idx_keyword_attempts_created_at', 'keyword_attempts', ['created_at'])
    op.create_index('idx_keyword_attempts_keyword', 'keyword_attempts', ['keyword'])

    # ========================================================================
    # Create payment_logs table
    # ========================================================================
    op.create_table(
        'payment_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('session_id', sa.String(255), nullable=False),
        sa.Column('access_key_id', sa.String(32), nullable=True),
        sa.Column('plan', sa.String(20), nullable=False),
        sa.Column('credits', sa.Integer(), nullable=False),
        sa.Column('amount_paid', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        # Idempotency: one row per checkout session, enforced by the database
        sa.UniqueConstraint('session_id', name='uq_payment_logs_session_id'),
        sa.CheckConstraint("payment_status IN ('completed', 'failed', 'pending')", name='ck_payment_logs_status'),
        sa.ForeignKeyConstraint(['access_key_id'], ['access_keys.id'], name='fk_payment_logs_access_key', ondelete='SET NULL'),
    )

    op.create_index('idx_payment_logs_created_at', 'payment_logs', ['created_at'])
    op.create_index('idx_payment_logs_status', 'payment_logs', ['payment_status'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('payment_logs')
    op.drop_table('keyword_attempts')
    op.drop_table('usage_logs')
    op.drop_table('access_keys')
