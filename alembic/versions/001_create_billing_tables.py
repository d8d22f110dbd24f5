"""Create billing and operational read-model tables

Revision ID: 001_billing
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision = '001_billing'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create rate catalogue, invoice and usage read-model tables"""

    # ====================
    # ACCOUNTS
    # ====================
    op.create_table(
        'accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
    )

    # ====================
    # RATE CATALOGUE
    # ====================
    op.create_table(
        'billing_rates',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('account_id', UUID(as_uuid=True), nullable=True),
        sa.Column('category', sa.String(30), nullable=False),
        sa.Column('uom', sa.String(20), nullable=False),
        sa.Column('tier', sa.String(50), nullable=True),
        sa.Column('unit_price', sa.Numeric(18, 6), nullable=False),
        sa.Column('effective_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('effective_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('replaces_rate_id', UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_billing_rates_account_id', 'billing_rates', ['account_id'])
    op.create_index(
        'ix_billing_rates_lookup', 'billing_rates',
        ['account_id', 'category', 'uom', 'is_active']
    )

    # ====================
    # INVOICES
    # ====================
    op.create_table(
        'billing_invoices',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('invoice_number', sa.String(40), nullable=False, unique=True),
        sa.Column('status', sa.String(30), server_default='DRAFT', nullable=False),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('period_start', sa.Date, nullable=False),
        sa.Column('period_end', sa.Date, nullable=False),
        sa.Column('due_date', sa.Date, nullable=False),
        sa.Column('rates_as_of', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount', sa.Numeric(18, 2), server_default='0', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()')),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            'account_id', 'period_start', 'period_end', name='uq_billing_invoice_period'
        ),
    )
    op.create_index('ix_billing_invoices_account_id', 'billing_invoices', ['account_id'])
    op.create_index('ix_billing_invoices_status', 'billing_invoices', ['status'])

    op.create_table(
        'billing_invoice_lines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'invoice_id', UUID(as_uuid=True),
            sa.ForeignKey('billing_invoices.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('line_number', sa.Integer, nullable=False),
        sa.Column('category', sa.String(30), nullable=False),
        sa.Column('uom', sa.String(20), nullable=False),
        sa.Column('tier', sa.String(50), nullable=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 6), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 6), nullable=False),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.UniqueConstraint('invoice_id', 'line_number', name='uq_billing_invoice_line_number'),
    )
    op.create_index('ix_billing_invoice_lines_invoice_id', 'billing_invoice_lines', ['invoice_id'])

    # ====================
    # USAGE READ MODELS
    # ====================
    op.create_table(
        'storage_occupancy',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'account_id', UUID(as_uuid=True),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('snapshot_date', sa.Date, nullable=False),
        sa.Column('zone', sa.String(30), nullable=False),
        sa.Column('pallet_count', sa.Integer, server_default='0', nullable=False),
        sa.Column('weight_kg', sa.Numeric(18, 6), server_default='0', nullable=False),
        sa.UniqueConstraint(
            'account_id', 'snapshot_date', 'zone', name='uq_storage_occupancy_day_zone'
        ),
    )
    op.create_index('ix_storage_occupancy_account_id', 'storage_occupancy', ['account_id'])
    op.create_index('ix_storage_occupancy_snapshot_date', 'storage_occupancy', ['snapshot_date'])

    op.create_table(
        'receiving_lines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'account_id', UUID(as_uuid=True),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('receiving_number', sa.String(50), nullable=True),
        sa.Column('material_id', UUID(as_uuid=True), nullable=True),
        sa.Column('quantity', sa.Numeric(18, 6), server_default='0', nullable=False),
        sa.Column('weight_kg', sa.Numeric(18, 6), server_default='0', nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_receiving_lines_account_time', 'receiving_lines', ['account_id', 'received_at'])

    op.create_table(
        'pick_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'account_id', UUID(as_uuid=True),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('material_id', UUID(as_uuid=True), nullable=True),
        sa.Column('quantity', sa.Numeric(18, 6), server_default='0', nullable=False),
        sa.Column('is_confirmed', sa.Boolean, server_default='false', nullable=False),
        sa.Column('picked_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_pick_transactions_account_time', 'pick_transactions', ['account_id', 'picked_at'])

    op.create_table(
        'withdrawal_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'account_id', UUID(as_uuid=True),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('shipment_number', sa.String(50), nullable=True),
        sa.Column('total_weight_kg', sa.Numeric(18, 6), server_default='0', nullable=False),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_withdrawal_transactions_account_time', 'withdrawal_transactions',
        ['account_id', 'shipped_at']
    )

    op.create_table(
        'vas_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'account_id', UUID(as_uuid=True),
            sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('category', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), server_default='PLANNED', nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('performed_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_vas_transactions_account_time', 'vas_transactions', ['account_id', 'performed_at'])

    op.create_table(
        'vas_transaction_lines',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'transaction_id', UUID(as_uuid=True),
            sa.ForeignKey('vas_transactions.id', ondelete='CASCADE'), nullable=False
        ),
        sa.Column('material_id', UUID(as_uuid=True), nullable=True),
        sa.Column('quantity', sa.Numeric(18, 6), server_default='0', nullable=False),
        sa.Column('weight_kg', sa.Numeric(18, 6), server_default='0', nullable=False),
        sa.Column('is_input', sa.Boolean, server_default='true', nullable=False),
    )
    op.create_index('ix_vas_transaction_lines_transaction_id', 'vas_transaction_lines', ['transaction_id'])


def downgrade():
    """Drop billing and read-model tables"""
    op.drop_table('vas_transaction_lines')
    op.drop_table('vas_transactions')
    op.drop_table('withdrawal_transactions')
    op.drop_table('pick_transactions')
    op.drop_table('receiving_lines')
    op.drop_table('storage_occupancy')
    op.drop_table('billing_invoice_lines')
    op.drop_table('billing_invoices')
    op.drop_table('billing_rates')
    op.drop_table('accounts')
