"""Initial schema: customers, catalog, orders, ledger, legacy udhar, milk, settings

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. counters (sole source of customer/order/ledger ids)
2. customers with soft-delete status and a partial unique phone index
3. products / product_variants / price_tiers (nullable stock = untracked)
4. orders and order_lines with reconciliation flags
5. ledger_entries with UNIQUE(source, legacy_id)
6. udhar_entries / udhar_payments (legacy, read-only history)
7. milk_subscriptions / milk_logs / milk_payments
8. store_settings
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. COUNTERS
    # ==========================================================================
    op.create_table('counters',
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('name')
    )

    # ==========================================================================
    # 2. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('block', sa.String(length=64), nullable=True),
        sa.Column('villa', sa.String(length=64), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('credit_limit', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('pin_hash', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index('ix_customers_phone', ['phone'], unique=False)
        batch_op.create_index('ix_customers_status', ['status'], unique=False)
        batch_op.create_index(
            'uq_customers_phone_active', ['phone'], unique=True,
            sqlite_where=sa.text("status = 'ACTIVE'"),
            postgresql_where=sa.text("status = 'ACTIVE'"),
        )

    # ==========================================================================
    # 3. CATALOG
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock_quantity IS NULL OR stock_quantity >= 0', name='ck_products_stock_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_active_name', 'products', ['is_active', 'name'], unique=False)

    op.create_table('product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('label', sa.String(length=128), nullable=False),
        sa.Column('in_stock', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'code', name='uq_product_variants_product_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'], unique=False)

    op.create_table('price_tiers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('min_qty', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.CheckConstraint('min_qty >= 1', name='ck_price_tiers_min_qty'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('variant_id', 'min_qty', name='uq_price_tiers_variant_min_qty'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_price_tiers_variant_id', 'price_tiers', ['variant_id'], unique=False)

    # ==========================================================================
    # 4. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('block', sa.String(length=64), nullable=True),
        sa.Column('villa', sa.String(length=64), nullable=True),
        sa.Column('note', sa.String(length=512), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cod'),
        sa.Column('added_to_udhar', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('stock_restored', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('free_gift', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_phone_created', 'orders', ['phone', 'created_at'], unique=False)
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'], unique=False)

    op.create_table('order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_code', sa.String(length=32), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('variant_label', sa.String(length=128), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('line_total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('is_gift', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'], unique=False)

    # ==========================================================================
    # 5. LEDGER
    # ==========================================================================
    op.create_table('ledger_entries',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('note', sa.String(length=512), nullable=True),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='manual'),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('legacy_id', sa.Integer(), nullable=True),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_ledger_entries_amount_positive'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source', 'legacy_id', name='uq_ledger_entries_source_legacy')
    )
    op.create_index('ix_ledger_entries_customer_id', 'ledger_entries', ['customer_id'], unique=False)
    op.create_index('ix_ledger_entries_customer_date', 'ledger_entries', ['customer_id', 'date'], unique=False)
    op.create_index('ix_ledger_entries_order_id', 'ledger_entries', ['order_id'], unique=False)
    op.create_index('ix_ledger_entries_source', 'ledger_entries', ['source'], unique=False)

    # ==========================================================================
    # 6. LEGACY UDHAR (no FK: rows may reference customers that no longer exist)
    # ==========================================================================
    op.create_table('udhar_entries',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('note', sa.String(length=512), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False, server_default='purchase'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_udhar_entries_customer_id', 'udhar_entries', ['customer_id'], unique=False)

    op.create_table('udhar_payments',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=False, server_default='cash'),
        sa.Column('note', sa.String(length=512), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_udhar_payments_customer_id', 'udhar_payments', ['customer_id'], unique=False)

    # ==========================================================================
    # 7. MILK
    # ==========================================================================
    op.create_table('milk_subscriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('default_qty', sa.Numeric(precision=8, scale=3), nullable=True),
        sa.Column('default_items', sa.JSON(), nullable=True),
        sa.Column('price_per_litre', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('pause_from', sa.String(length=10), nullable=True),
        sa.Column('pause_until', sa.String(length=10), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', name='uq_milk_subscriptions_customer'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_milk_subscriptions_customer_id', 'milk_subscriptions', ['customer_id'], unique=False)

    op.create_table('milk_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('month', sa.String(length=7), nullable=False),
        sa.Column('qty', sa.Numeric(precision=8, scale=3), nullable=False, server_default='0'),
        sa.Column('items', sa.JSON(), nullable=True),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('marked_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'date', name='uq_milk_logs_customer_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_milk_logs_customer_id', 'milk_logs', ['customer_id'], unique=False)
    op.create_index('ix_milk_logs_month_customer', 'milk_logs', ['month', 'customer_id'], unique=False)

    op.create_table('milk_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.String(length=7), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_milk_payments_customer_id', 'milk_payments', ['customer_id'], unique=False)
    op.create_index('ix_milk_payments_month_customer', 'milk_payments', ['month', 'customer_id'], unique=False)

    # ==========================================================================
    # 8. SETTINGS
    # ==========================================================================
    op.create_table('store_settings',
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )

    op.bulk_insert(
        sa.table('counters', sa.column('name', sa.String), sa.column('value', sa.Integer)),
        [
            {'name': 'customers', 'value': 0},
            {'name': 'orders', 'value': 0},
            {'name': 'ledger', 'value': 0},
        ],
    )


def downgrade():
    op.drop_table('store_settings')
    op.drop_index('ix_milk_payments_month_customer', table_name='milk_payments')
    op.drop_index('ix_milk_payments_customer_id', table_name='milk_payments')
    op.drop_table('milk_payments')
    op.drop_index('ix_milk_logs_month_customer', table_name='milk_logs')
    op.drop_index('ix_milk_logs_customer_id', table_name='milk_logs')
    op.drop_table('milk_logs')
    op.drop_index('ix_milk_subscriptions_customer_id', table_name='milk_subscriptions')
    op.drop_table('milk_subscriptions')
    op.drop_index('ix_udhar_payments_customer_id', table_name='udhar_payments')
    op.drop_table('udhar_payments')
    op.drop_index('ix_udhar_entries_customer_id', table_name='udhar_entries')
    op.drop_table('udhar_entries')
    op.drop_index('ix_ledger_entries_source', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_order_id', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_customer_date', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_customer_id', table_name='ledger_entries')
    op.drop_table('ledger_entries')
    op.drop_index('ix_order_lines_order_id', table_name='order_lines')
    op.drop_table('order_lines')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_phone_created', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_customer_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_price_tiers_variant_id', table_name='price_tiers')
    op.drop_table('price_tiers')
    op.drop_index('ix_product_variants_product_id', table_name='product_variants')
    op.drop_table('product_variants')
    op.drop_index('ix_products_active_name', table_name='products')
    op.drop_table('products')
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.drop_index('uq_customers_phone_active')
        batch_op.drop_index('ix_customers_status')
        batch_op.drop_index('ix_customers_phone')
    op.drop_table('customers')
    op.drop_table('counters')
