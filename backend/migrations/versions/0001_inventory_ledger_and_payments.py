"""inventory ledger, fulfillment and payment allocation schema

Revision ID: 0001_ledger_core
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema from scratch:
- organizations: tenant root
- items / customers / suppliers: minimal master data referenced by documents
- inventory_locations / inventory_positions / stock_movements: stock ledger
- purchase_orders / sales_orders (+ lines): fulfillment targets
- sales_invoices / purchase_invoices / payments / payment_allocations
- document_sequences: per-org numbering (payments, transfers)

On PostgreSQL every tenant table also gets a row-level security policy keyed
on the transaction-local setting app.current_tenant_id.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_ledger_core'
down_revision = None
branch_labels = None
depends_on = None


TENANT_TABLES = [
    'items',
    'customers',
    'suppliers',
    'inventory_locations',
    'inventory_positions',
    'stock_movements',
    'purchase_orders',
    'purchase_order_lines',
    'sales_orders',
    'sales_order_lines',
    'sales_invoices',
    'purchase_invoices',
    'payments',
    'payment_allocations',
    'document_sequences',
]


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def _org_column():
    return sa.Column('org_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False)


def upgrade():
    # ============================================================================
    # organizations: tenant root
    # ============================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    # ============================================================================
    # master data
    # ============================================================================
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit_of_measurement', sa.String(length=32), nullable=False, server_default='EA'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'code', name='uq_items_org_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_items_org_id', 'items', ['org_id'])
    op.create_index('ix_items_org_name', 'items', ['org_id', 'name'])

    for table in ('customers', 'suppliers'):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), nullable=False),
            _org_column(),
            sa.Column('code', sa.String(length=64), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('org_id', 'code', name=f'uq_{table}_org_code'),
            sqlite_autoincrement=True
        )
        op.create_index(f'ix_{table}_org_id', table, ['org_id'])

    # ============================================================================
    # stock ledger
    # ============================================================================
    op.create_table(
        'inventory_locations',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'code', name='uq_locations_org_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_locations_org_id', 'inventory_locations', ['org_id'])
    op.create_index('ix_locations_org_default', 'inventory_locations', ['org_id', 'is_default'])

    op.create_table(
        'inventory_positions',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('inventory_locations.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('minimum_stock_level', sa.Integer(), nullable=True),
        sa.Column('maximum_stock_level', sa.Integer(), nullable=True),
        sa.Column('reorder_point', sa.Integer(), nullable=True),
        sa.Column('last_counted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'item_id', 'location_id', name='uq_positions_org_item_location'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_positions_org_id', 'inventory_positions', ['org_id'])
    op.create_index('ix_inventory_positions_item_id', 'inventory_positions', ['item_id'])
    op.create_index('ix_inventory_positions_location_id', 'inventory_positions', ['location_id'])
    op.create_index('ix_positions_org_location', 'inventory_positions', ['org_id', 'location_id'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('location_id', sa.Integer(), sa.ForeignKey('inventory_locations.id'), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('quantity_before', sa.Integer(), nullable=False),
        sa.Column('quantity_after', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('related_movement_id', sa.Integer(), sa.ForeignKey('stock_movements.id'), nullable=True),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('total_cost_cents', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_org_id', 'stock_movements', ['org_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_movements_org_item_date', 'stock_movements', ['org_id', 'item_id', 'movement_date'])
    op.create_index('ix_movements_org_location_date', 'stock_movements', ['org_id', 'location_id', 'movement_date'])
    op.create_index('ix_movements_reference', 'stock_movements', ['org_id', 'reference_type', 'reference_id'])

    # ============================================================================
    # orders
    # ============================================================================
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=True),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='DRAFT'),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'document_number', name='uq_purchase_orders_org_docnum'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_orders_org_id', 'purchase_orders', ['org_id'])
    op.create_index('ix_purchase_orders_supplier_id', 'purchase_orders', ['supplier_id'])
    op.create_index('ix_purchase_orders_org_status', 'purchase_orders', ['org_id', 'status'])

    op.create_table(
        'purchase_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('purchase_order_id', sa.Integer(), sa.ForeignKey('purchase_orders.id'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('quantity_ordered', sa.Integer(), nullable=False),
        sa.Column('quantity_received', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_order_id', 'line_number', name='uq_po_lines_order_line_number'),
        sa.CheckConstraint('quantity_received <= quantity_ordered', name='ck_po_lines_received_le_ordered'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_order_lines_org_id', 'purchase_order_lines', ['org_id'])
    op.create_index('ix_purchase_order_lines_purchase_order_id', 'purchase_order_lines', ['purchase_order_id'])
    op.create_index('ix_purchase_order_lines_item_id', 'purchase_order_lines', ['item_id'])

    op.create_table(
        'sales_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='DRAFT'),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'document_number', name='uq_sales_orders_org_docnum'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_orders_org_id', 'sales_orders', ['org_id'])
    op.create_index('ix_sales_orders_customer_id', 'sales_orders', ['customer_id'])
    op.create_index('ix_sales_orders_org_status', 'sales_orders', ['org_id', 'status'])

    op.create_table(
        'sales_order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('sales_order_id', sa.Integer(), sa.ForeignKey('sales_orders.id'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('quantity_ordered', sa.Integer(), nullable=False),
        sa.Column('quantity_delivered', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sales_order_id', 'line_number', name='uq_so_lines_order_line_number'),
        sa.CheckConstraint('quantity_delivered <= quantity_ordered', name='ck_so_lines_delivered_le_ordered'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_order_lines_org_id', 'sales_order_lines', ['org_id'])
    op.create_index('ix_sales_order_lines_sales_order_id', 'sales_order_lines', ['sales_order_id'])
    op.create_index('ix_sales_order_lines_item_id', 'sales_order_lines', ['item_id'])

    # ============================================================================
    # invoices
    # ============================================================================
    for table, party_col, party_table, order_col, order_table in (
        ('sales_invoices', 'customer_id', 'customers', 'sales_order_id', 'sales_orders'),
        ('purchase_invoices', 'supplier_id', 'suppliers', 'purchase_order_id', 'purchase_orders'),
    ):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), nullable=False),
            _org_column(),
            sa.Column(party_col, sa.Integer(), sa.ForeignKey(f'{party_table}.id'), nullable=True),
            sa.Column(order_col, sa.Integer(), sa.ForeignKey(f'{order_table}.id'), nullable=True),
            sa.Column('document_number', sa.String(length=64), nullable=False),
            sa.Column('status', sa.String(length=24), nullable=False, server_default='DRAFT'),
            sa.Column('invoice_date', sa.DateTime(timezone=True), nullable=False,
                      server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('grand_total_cents', sa.Integer(), nullable=False),
            sa.Column('amount_paid_cents', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('balance_due_cents', sa.Integer(), nullable=False),
            sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('org_id', 'document_number', name=f'uq_{table}_org_docnum'),
            sqlite_autoincrement=True
        )
        op.create_index(f'ix_{table}_org_id', table, ['org_id'])
        op.create_index(f'ix_{table}_{party_col}', table, [party_col])
        op.create_index(f'ix_{table}_org_status', table, ['org_id', 'status'])

    # ============================================================================
    # payments
    # ============================================================================
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('payment_number', sa.String(length=64), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('payment_type', sa.String(length=24), nullable=False),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=True),
        sa.Column('payment_method', sa.String(length=24), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('reference_number', sa.String(length=128), nullable=True),
        sa.Column('bank_account', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'payment_number', name='uq_payments_org_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_org_id', 'payments', ['org_id'])
    op.create_index('ix_payments_customer_id', 'payments', ['customer_id'])
    op.create_index('ix_payments_supplier_id', 'payments', ['supplier_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_org_status', 'payments', ['org_id', 'status'])
    op.create_index('ix_payments_org_date', 'payments', ['org_id', 'payment_date'])

    op.create_table(
        'payment_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('payment_id', sa.Integer(), sa.ForeignKey('payments.id'), nullable=False),
        sa.Column('invoice_type', sa.String(length=24), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount_allocated_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('reversed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_allocated_cents > 0', name='ck_allocations_amount_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payment_allocations_org_id', 'payment_allocations', ['org_id'])
    op.create_index('ix_payment_allocations_payment_id', 'payment_allocations', ['payment_id'])
    op.create_index('ix_allocations_invoice', 'payment_allocations', ['org_id', 'invoice_type', 'invoice_id'])

    # ============================================================================
    # document_sequences
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        _org_column(),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'document_type', name='uq_doc_sequences_org_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_org_id', 'document_sequences', ['org_id'])
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])

    # ============================================================================
    # Row-level security (PostgreSQL only)
    # ============================================================================
    if op.get_bind().dialect.name == 'postgresql':
        for table in TENANT_TABLES:
            op.execute(f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY')
            op.execute(
                f"CREATE POLICY tenant_isolation_{table} ON {table} "
                f"FOR ALL "
                f"USING (org_id = NULLIF(current_setting('app.current_tenant_id', true), '')::integer) "
                f"WITH CHECK (org_id = NULLIF(current_setting('app.current_tenant_id', true), '')::integer)"
            )


def downgrade():
    if op.get_bind().dialect.name == 'postgresql':
        for table in TENANT_TABLES:
            op.execute(f'DROP POLICY IF EXISTS tenant_isolation_{table} ON {table}')

    for table in (
        'document_sequences',
        'payment_allocations',
        'payments',
        'purchase_invoices',
        'sales_invoices',
        'sales_order_lines',
        'sales_orders',
        'purchase_order_lines',
        'purchase_orders',
        'stock_movements',
        'inventory_positions',
        'inventory_locations',
        'suppliers',
        'customers',
        'items',
        'organizations',
    ):
        op.drop_table(table)
