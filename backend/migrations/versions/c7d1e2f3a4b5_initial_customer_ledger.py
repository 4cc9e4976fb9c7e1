"""initial customer ledger schema

Revision ID: c7d1e2f3a4b5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the customer ledger schema:
- customers: account master plus cached aggregates (debt, spent, points)
- products: stock rows adjusted by sales/returns/voids
- invoices / invoice_lines: settled sales
- invoice_returns / invoice_return_lines: append-only return history
- ledger_entries: append-only non-sale financial events
- ledger_settings: currency symbol, tax and loyalty rates
- sync_actions: replication outbox with idempotency keys
- ledger_backups: rolling snapshot archive
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c7d1e2f3a4b5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # customers: aggregates are a cache of invoices + ledger entries
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('total_spent_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_debt_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('loyalty_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_visit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('total_debt_cents >= 0', name='ck_customers_debt_non_negative'),
        sa.CheckConstraint('loyalty_points >= 0', name='ck_customers_points_non_negative'),
        sa.CheckConstraint('total_spent_cents >= 0', name='ck_customers_spent_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_debt', 'customers', ['total_debt_cents'])
    op.create_index('ix_customers_is_deleted', 'customers', ['is_deleted'])

    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # invoices
    # ============================================================================
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('profit_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tendered_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_at_issue_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='unpaid'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('paid_amount_cents <= total_cents', name='ck_invoices_paid_le_total'),
        sa.CheckConstraint('paid_at_issue_cents <= total_cents', name='ck_invoices_paid_at_issue_le_total'),
        sa.CheckConstraint('points_earned >= 0', name='ck_invoices_points_non_negative'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_number', name='uq_invoices_document_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_occurred_at', 'invoices', ['occurred_at'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_is_deleted', 'invoices', ['is_deleted'])
    op.create_index('ix_invoices_customer_occurred', 'invoices', ['customer_id', 'occurred_at'])

    op.create_table(
        'invoice_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('returned_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('quantity > 0', name='ck_invoice_lines_quantity_positive'),
        sa.CheckConstraint('returned_quantity >= 0 AND returned_quantity <= quantity',
                           name='ck_invoice_lines_returned_bounds'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoice_lines_invoice_id', 'invoice_lines', ['invoice_id'])
    op.create_index('ix_invoice_lines_product_id', 'invoice_lines', ['product_id'])

    # ============================================================================
    # invoice_returns: append-only return history
    # ============================================================================
    op.create_table(
        'invoice_returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('refund_cents', sa.Integer(), nullable=False),
        sa.Column('debt_applied_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('spent_reduction_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_removed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoice_returns_invoice_id', 'invoice_returns', ['invoice_id'])

    op.create_table(
        'invoice_return_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('invoice_line_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('refund_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_invoice_return_lines_quantity_positive'),
        sa.ForeignKeyConstraint(['return_id'], ['invoice_returns.id']),
        sa.ForeignKeyConstraint(['invoice_line_id'], ['invoice_lines.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoice_return_lines_return_id', 'invoice_return_lines', ['return_id'])

    # ============================================================================
    # ledger_entries: append-only
    # ============================================================================
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('entry_type', sa.String(length=16), nullable=False),
        sa.Column('direction', sa.String(length=8), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('amount_cents >= 0', name='ck_ledger_entries_amount_non_negative'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_entries_customer_id', 'ledger_entries', ['customer_id'])
    op.create_index('ix_ledger_entries_invoice_id', 'ledger_entries', ['invoice_id'])
    op.create_index('ix_ledger_entries_entry_type', 'ledger_entries', ['entry_type'])
    op.create_index('ix_ledger_entries_occurred_at', 'ledger_entries', ['occurred_at'])
    op.create_index('ix_ledger_entries_customer_occurred', 'ledger_entries', ['customer_id', 'occurred_at'])

    # ============================================================================
    # settings, outbox, backups
    # ============================================================================
    op.create_table(
        'ledger_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('currency_symbol', sa.String(length=8), nullable=False, server_default='$'),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('loyalty_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'sync_actions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=64), nullable=False),
        sa.Column('action_type', sa.String(length=64), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', name='uq_sync_actions_idempotency_key'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sync_actions_status_id', 'sync_actions', ['status', 'id'])

    op.create_table(
        'ledger_backups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=128), nullable=False),
        sa.Column('document', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('ledger_backups')
    op.drop_index('ix_sync_actions_status_id', table_name='sync_actions')
    op.drop_table('sync_actions')
    op.drop_table('ledger_settings')
    op.drop_index('ix_ledger_entries_customer_occurred', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_occurred_at', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_entry_type', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_invoice_id', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_customer_id', table_name='ledger_entries')
    op.drop_table('ledger_entries')
    op.drop_index('ix_invoice_return_lines_return_id', table_name='invoice_return_lines')
    op.drop_table('invoice_return_lines')
    op.drop_index('ix_invoice_returns_invoice_id', table_name='invoice_returns')
    op.drop_table('invoice_returns')
    op.drop_index('ix_invoice_lines_product_id', table_name='invoice_lines')
    op.drop_index('ix_invoice_lines_invoice_id', table_name='invoice_lines')
    op.drop_table('invoice_lines')
    op.drop_index('ix_invoices_customer_occurred', table_name='invoices')
    op.drop_index('ix_invoices_is_deleted', table_name='invoices')
    op.drop_index('ix_invoices_status', table_name='invoices')
    op.drop_index('ix_invoices_occurred_at', table_name='invoices')
    op.drop_index('ix_invoices_customer_id', table_name='invoices')
    op.drop_table('invoices')
    op.drop_table('products')
    op.drop_index('ix_customers_is_deleted', table_name='customers')
    op.drop_index('ix_customers_debt', table_name='customers')
    op.drop_table('customers')
