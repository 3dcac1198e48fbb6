"""create eventswap core tables

Revision ID: 2026_01_05_0900
Revises:
Create Date: 2026-01-05 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '2026_01_05_0900'
down_revision = None
branch_labels = None
depends_on = None

_OPEN_TRANSACTION = "status NOT IN ('COMPLETED', 'REFUNDED', 'CANCELLED')"


def _base_columns():
    return [
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    op.create_table(
        'users',
        *_base_columns(),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('status', sa.Enum('ACTIVE', 'SUSPENDED', name='user_status'), nullable=False, server_default='ACTIVE'),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('phone_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('kyc_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'categories',
        *_base_columns(),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_categories'),
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)

    op.create_table(
        'listings',
        *_base_columns(),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('original_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('asking_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='BRL'),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('event_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.Enum('DRAFT', 'ACTIVE', 'RESERVED', 'SOLD', 'EXPIRED', 'CANCELLED', name='listing_status'), nullable=False, server_default='DRAFT'),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reserved_by_transaction_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_listings_seller_id'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name='fk_listings_category_id'),
        sa.PrimaryKeyConstraint('id', name='pk_listings'),
    )
    op.create_index('ix_listings_slug', 'listings', ['slug'], unique=True)
    op.create_index('ix_listings_seller_id', 'listings', ['seller_id'])
    op.create_index('ix_listings_category_id', 'listings', ['category_id'])
    op.create_index('ix_listings_status', 'listings', ['status'])
    op.create_index('ix_listings_reserved_by_transaction_id', 'listings', ['reserved_by_transaction_id'])
    op.create_index('idx_listings_status_published', 'listings', ['status', 'published_at'])

    op.create_table(
        'offers',
        *_base_columns(),
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('buyer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('proposer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('responder_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'ACCEPTED', 'REJECTED', 'COUNTERED', 'EXPIRED', name='offer_status'), nullable=False, server_default='PENDING'),
        sa.Column('parent_offer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('counter_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], name='fk_offers_listing_id'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], name='fk_offers_buyer_id'),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_offers_seller_id'),
        sa.ForeignKeyConstraint(['proposer_id'], ['users.id'], name='fk_offers_proposer_id'),
        sa.ForeignKeyConstraint(['responder_id'], ['users.id'], name='fk_offers_responder_id'),
        sa.ForeignKeyConstraint(['parent_offer_id'], ['offers.id'], name='fk_offers_parent_offer_id'),
        sa.PrimaryKeyConstraint('id', name='pk_offers'),
        sa.CheckConstraint('amount > 0', name='check_offers_amount_positive'),
    )
    for column in ('listing_id', 'buyer_id', 'seller_id', 'responder_id', 'status', 'parent_offer_id'):
        op.create_index(f'ix_offers_{column}', 'offers', [column])
    op.create_index(
        'uq_offers_live_per_buyer', 'offers', ['listing_id', 'buyer_id'],
        unique=True, postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        'transactions',
        *_base_columns(),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('listing_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('offer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('buyer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('seller_net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.Enum(
            'PENDING', 'AWAITING_PAYMENT', 'PAYMENT_CONFIRMED', 'TRANSFERRING',
            'COMPLETED', 'DISPUTED', 'REFUNDED', 'CANCELLED',
            name='transaction_status',
        ), nullable=False, server_default='PENDING'),
        sa.Column('review_status', sa.Enum('NONE', 'FLAGGED', 'HELD', 'CLEARED', name='review_status'), nullable=False, server_default='NONE'),
        sa.Column('fraud_score', sa.Numeric(6, 3), nullable=True),
        sa.Column('fraud_level', sa.String(length=20), nullable=True),
        sa.Column('fraud_recommendation', sa.String(length=20), nullable=True),
        sa.Column('payment_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transfer_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transfer_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('override_actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('override_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['listing_id'], ['listings.id'], name='fk_transactions_listing_id'),
        sa.ForeignKeyConstraint(['offer_id'], ['offers.id'], name='fk_transactions_offer_id'),
        sa.ForeignKeyConstraint(['buyer_id'], ['users.id'], name='fk_transactions_buyer_id'),
        sa.ForeignKeyConstraint(['seller_id'], ['users.id'], name='fk_transactions_seller_id'),
        sa.ForeignKeyConstraint(['override_actor_id'], ['users.id'], name='fk_transactions_override_actor_id'),
        sa.PrimaryKeyConstraint('id', name='pk_transactions'),
        sa.CheckConstraint('amount > 0', name='check_transactions_amount_positive'),
    )
    op.create_index('ix_transactions_code', 'transactions', ['code'], unique=True)
    for column in ('listing_id', 'offer_id', 'buyer_id', 'seller_id', 'status', 'review_status'):
        op.create_index(f'ix_transactions_{column}', 'transactions', [column])
    op.create_index(
        'uq_transactions_open_per_listing', 'transactions', ['listing_id'],
        unique=True, postgresql_where=sa.text(_OPEN_TRANSACTION),
    )

    op.create_table(
        'payments',
        *_base_columns(),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('payer_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('payee_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('gross_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'PROCESSING', 'SUCCEEDED', 'FAILED', name='payment_status'), nullable=False, server_default='PENDING'),
        sa.Column('provider_payment_id', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_reference', sa.String(length=255), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_payments_transaction_id'),
        sa.ForeignKeyConstraint(['payer_id'], ['users.id'], name='fk_payments_payer_id'),
        sa.ForeignKeyConstraint(['payee_id'], ['users.id'], name='fk_payments_payee_id'),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
        sa.CheckConstraint('net_amount <= gross_amount', name='check_payments_net_le_gross'),
        sa.CheckConstraint('net_amount >= 0', name='check_payments_net_non_negative'),
    )
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'], unique=True)
    op.create_index('ix_payments_provider_payment_id', 'payments', ['provider_payment_id'], unique=True)
    op.create_index('ix_payments_status', 'payments', ['status'])

    op.create_table(
        'disputes',
        *_base_columns(),
        sa.Column('protocol', sa.String(length=20), nullable=False),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('raised_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('reason', sa.Enum(
            'LISTING_MISMATCH', 'TRANSFER_REJECTED', 'MISSING_DOCUMENTATION', 'PAYMENT_ISSUES', 'OTHER',
            name='dispute_reason',
        ), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.Enum('OPEN', 'UNDER_REVIEW', 'RESOLVED', name='dispute_status'), nullable=False, server_default='OPEN'),
        sa.Column('resolution', sa.Enum('REFUND', 'RELEASE', 'PARTIAL', name='dispute_resolution'), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('fraud_confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reviewer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('resolved_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_disputes_transaction_id'),
        sa.ForeignKeyConstraint(['raised_by'], ['users.id'], name='fk_disputes_raised_by'),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], name='fk_disputes_reviewer_id'),
        sa.ForeignKeyConstraint(['resolved_by'], ['users.id'], name='fk_disputes_resolved_by'),
        sa.PrimaryKeyConstraint('id', name='pk_disputes'),
    )
    op.create_index('ix_disputes_protocol', 'disputes', ['protocol'], unique=True)
    op.create_index('ix_disputes_transaction_id', 'disputes', ['transaction_id'])
    op.create_index('ix_disputes_status', 'disputes', ['status'])
    op.create_index(
        'uq_disputes_open_per_transaction', 'disputes', ['transaction_id'],
        unique=True, postgresql_where=sa.text("status <> 'RESOLVED'"),
    )

    op.create_table(
        'payment_adjustments',
        *_base_columns(),
        sa.Column('payment_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('dispute_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('kind', sa.Enum('BUYER_REFUND', 'SELLER_RELEASE', name='adjustment_kind'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('provider_reference', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], name='fk_payment_adjustments_payment_id'),
        sa.ForeignKeyConstraint(['dispute_id'], ['disputes.id'], name='fk_payment_adjustments_dispute_id'),
        sa.PrimaryKeyConstraint('id', name='pk_payment_adjustments'),
        sa.CheckConstraint('amount >= 0', name='check_payment_adjustments_amount_non_negative'),
    )
    op.create_index('ix_payment_adjustments_payment_id', 'payment_adjustments', ['payment_id'])
    op.create_index('ix_payment_adjustments_dispute_id', 'payment_adjustments', ['dispute_id'])

    op.create_table(
        'webhook_events',
        *_base_columns(),
        sa.Column('provider_event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('outcome', sa.String(length=50), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_webhook_events_transaction_id'),
        sa.PrimaryKeyConstraint('id', name='pk_webhook_events'),
    )
    op.create_index('ix_webhook_events_provider_event_id', 'webhook_events', ['provider_event_id'], unique=True)
    op.create_index('ix_webhook_events_transaction_id', 'webhook_events', ['transaction_id'])

    op.create_table(
        'fraud_checks',
        *_base_columns(),
        sa.Column('subject_type', sa.String(length=50), nullable=False),
        sa.Column('subject_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('score', sa.Numeric(6, 3), nullable=False),
        sa.Column('level', sa.String(length=20), nullable=False),
        sa.Column('recommendation', sa.String(length=20), nullable=False),
        sa.Column('signals', postgresql.JSON(), nullable=False),
        sa.Column('hard_signals', postgresql.JSON(), nullable=False),
        sa.Column('input_snapshot', postgresql.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_fraud_checks'),
    )
    for column in ('subject_type', 'subject_id', 'level', 'recommendation'):
        op.create_index(f'ix_fraud_checks_{column}', 'fraud_checks', [column])

    op.create_table(
        'api_keys',
        *_base_columns(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('key_prefix', sa.String(length=20), nullable=False),
        sa.Column('key_hash', sa.String(length=64), nullable=False),
        sa.Column('permissions', postgresql.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_api_keys_user_id'),
        sa.PrimaryKeyConstraint('id', name='pk_api_keys'),
    )
    op.create_index('ix_api_keys_user_id', 'api_keys', ['user_id'])
    op.create_index('ix_api_keys_key_hash', 'api_keys', ['key_hash'], unique=True)

    op.create_table(
        'audit_logs',
        *_base_columns(),
        sa.Column('actor_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor_role', sa.Enum('USER', 'MEDIATOR', 'ADMIN', 'SUPER_ADMIN', 'SYSTEM', name='actor_role'), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('before', postgresql.JSON(), nullable=True),
        sa.Column('after', postgresql.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], name='fk_audit_logs_actor_user_id'),
        sa.PrimaryKeyConstraint('id', name='pk_audit_logs'),
    )
    for column in ('actor_user_id', 'actor_role', 'action', 'entity_type', 'entity_id'):
        op.create_index(f'ix_audit_logs_{column}', 'audit_logs', [column])


def downgrade():
    for table in (
        'audit_logs',
        'api_keys',
        'fraud_checks',
        'webhook_events',
        'payment_adjustments',
        'disputes',
        'payments',
        'transactions',
        'offers',
        'listings',
        'categories',
        'users',
    ):
        op.drop_table(table)

    for enum_name in (
        'actor_role',
        'adjustment_kind',
        'dispute_resolution',
        'dispute_status',
        'dispute_reason',
        'payment_status',
        'review_status',
        'transaction_status',
        'offer_status',
        'listing_status',
        'user_status',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
