"""add_refunded_amount_and_fraud_signal_columns

Revision ID: 2026_01_19_1400
Revises: 2026_01_05_0900
Create Date: 2026-01-19 14:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '2026_01_19_1400'
down_revision = '2026_01_05_0900'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Running refund total, so a chargeback after a partial settlement refunds only the remainder
    op.add_column('payments', sa.Column('refunded_amount', sa.Numeric(12, 2), nullable=False, server_default='0'))
    op.create_check_constraint('check_payments_refunded_le_gross', 'payments', 'refunded_amount <= gross_amount')

    # Fraud signals for listing and user checks
    op.add_column('listings', sa.Column('images', sa.JSON(), nullable=True))
    op.add_column('users', sa.Column('last_ip', sa.String(length=45), nullable=True))


def downgrade() -> None:
    op.drop_column('users', 'last_ip')
    op.drop_column('listings', 'images')
    op.drop_constraint('check_payments_refunded_le_gross', 'payments', type_='check')
    op.drop_column('payments', 'refunded_amount')
