"""Initial schema: tenancy, customers/samples, credit ledger, conversions, inventory, wholesale

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. Brand and Store (tenancy; brand owns the shop domain and webhook secret)
2. Customer and SampleHistory (attribution inputs)
3. BrandPartnership and CreditTransaction (running-balance credit ledger)
4. Conversion (unique per brand + external order id) and WebhookLog (audit)
5. Product, StoreInventory and InventoryTransaction (two-phase inventory)
6. WholesaleOrder and WholesaleOrderItem
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. TENANCY
    # ==========================================================================
    op.create_table('brands',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('shop_domain', sa.String(length=255), nullable=True),
        sa.Column('shop_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('webhook_secret', sa.String(length=255), nullable=True),
        sa.Column('api_base_url', sa.String(length=255), nullable=True),
        sa.Column('api_access_token', sa.String(length=255), nullable=True),
        sa.Column('attribution_window_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('commission_rate', sa.Numeric(precision=6, scale=3), nullable=False, server_default='10'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('brands', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_brands_code'), ['code'], unique=True)
        batch_op.create_index(batch_op.f('ix_brands_shop_domain'), ['shop_domain'], unique=True)
        batch_op.create_index(batch_op.f('ix_brands_is_active'), ['is_active'], unique=False)

    op.create_table('stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('owner_email', sa.String(length=255), nullable=True),
        sa.Column('owner_phone', sa.String(length=32), nullable=True),
        sa.Column('purchasing_email', sa.String(length=255), nullable=True),
        sa.Column('purchasing_phone', sa.String(length=32), nullable=True),
        sa.Column('external_customer_id', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stores', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stores_store_code'), ['store_code'], unique=True)
        batch_op.create_index(batch_op.f('ix_stores_external_customer_id'), ['external_customer_id'], unique=False)

    # ==========================================================================
    # 2. CUSTOMERS AND SAMPLES
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.String(length=32), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('attributed_store_id', sa.Integer(), nullable=True),
        sa.Column('first_name', sa.String(length=128), nullable=True),
        sa.Column('last_name', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('external_customer_id', sa.String(length=64), nullable=True),
        sa.Column('sample_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stage', sa.String(length=16), nullable=False, server_default='sampled'),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['attributed_store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_member_id'), ['member_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_customers_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customers_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customers_attributed_store_id'), ['attributed_store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customers_external_customer_id'), ['external_customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customers_stage'), ['stage'], unique=False)
        batch_op.create_index('ix_customers_brand_phone', ['brand_id', 'phone'], unique=False)
        batch_op.create_index('ix_customers_brand_email', ['brand_id', 'email'], unique=False)

    op.create_table('sample_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('display_id', sa.String(length=64), nullable=True),
        sa.Column('product_sku', sa.String(length=64), nullable=True),
        sa.Column('sampled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attribution_window_days', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sample_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sample_history_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sample_history_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sample_history_store_id'), ['store_id'], unique=False)
        batch_op.create_index(
            'ix_sample_history_customer_brand_sampled',
            ['customer_id', 'brand_id', 'sampled_at'],
            unique=False,
        )

    # ==========================================================================
    # 3. PARTNERSHIPS
    # ==========================================================================
    op.create_table('brand_partnerships',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('credit_balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('online_commission_rate', sa.Numeric(precision=6, scale=3), nullable=True),
        sa.Column('promo_commission_rate', sa.Numeric(precision=6, scale=3), nullable=True),
        sa.Column('subscription_commission_rate', sa.Numeric(precision=6, scale=3), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'brand_id', name='uq_partnerships_store_brand'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('brand_partnerships', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_brand_partnerships_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_brand_partnerships_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_brand_partnerships_status'), ['status'], unique=False)

    # ==========================================================================
    # 4. CATALOG AND WHOLESALE ORDERS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('product_type', sa.String(length=32), nullable=False, server_default='retail'),
        sa.Column('units_per_box', sa.Integer(), nullable=True),
        sa.Column('external_product_id', sa.String(length=128), nullable=True),
        sa.Column('external_variant_id', sa.String(length=128), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('brand_id', 'sku', name='uq_products_brand_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_sku'), ['sku'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_external_product_id'), ['external_product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_external_variant_id'), ['external_variant_id'], unique=False)

    op.create_table('wholesale_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('shop_domain', sa.String(length=255), nullable=True),
        sa.Column('external_order_id', sa.String(length=64), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('credit_applied_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('verification_token', sa.String(length=64), nullable=True),
        sa.Column('verification_notes', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('wholesale_orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_wholesale_orders_order_number'), ['order_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_wholesale_orders_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wholesale_orders_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wholesale_orders_external_order_id'), ['external_order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_wholesale_orders_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_wholesale_orders_verification_token'), ['verification_token'], unique=True)
        batch_op.create_index('ix_wholesale_orders_store_status', ['store_id', 'status'], unique=False)

    op.create_table('wholesale_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('wholesale_order_id', sa.Integer(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('retail_sku', sa.String(length=64), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('units_per_box', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expected_units', sa.Integer(), nullable=False),
        sa.Column('received_units', sa.Integer(), nullable=True),
        sa.Column('discrepancy_units', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['wholesale_order_id'], ['wholesale_orders.id'], ),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('wholesale_order_items', schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f('ix_wholesale_order_items_wholesale_order_id'), ['wholesale_order_id'], unique=False
        )

    # ==========================================================================
    # 5. CONVERSIONS AND CREDIT LEDGER
    # ==========================================================================
    op.create_table('conversions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=False),
        sa.Column('external_order_id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('external_customer_id', sa.String(length=64), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('partnership_id', sa.Integer(), nullable=True),
        sa.Column('sample_id', sa.Integer(), nullable=True),
        sa.Column('order_total_cents', sa.Integer(), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=6, scale=3), nullable=False),
        sa.Column('commission_cents', sa.Integer(), nullable=False),
        sa.Column('sample_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('days_to_conversion', sa.Integer(), nullable=False),
        sa.Column('attributed', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['partnership_id'], ['brand_partnerships.id'], ),
        sa.ForeignKeyConstraint(['sample_id'], ['sample_history.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('brand_id', 'external_order_id', name='uq_conversions_brand_order'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('conversions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_conversions_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_conversions_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_conversions_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_conversions_partnership_id'), ['partnership_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_conversions_paid'), ['paid'], unique=False)
        batch_op.create_index('ix_conversions_store_purchase', ['store_id', 'purchase_date'], unique=False)

    op.create_table('credit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('partnership_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('balance_after_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('conversion_id', sa.Integer(), nullable=True),
        sa.Column('wholesale_order_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['partnership_id'], ['brand_partnerships.id'], ),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['conversion_id'], ['conversions.id'], ),
        sa.ForeignKeyConstraint(['wholesale_order_id'], ['wholesale_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('credit_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_credit_transactions_partnership_id'), ['partnership_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_transactions_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_transactions_transaction_type'), ['transaction_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_transactions_conversion_id'), ['conversion_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_transactions_wholesale_order_id'), ['wholesale_order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credit_transactions_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_credit_txns_partnership_occurred', ['partnership_id', 'occurred_at'], unique=False)

    op.create_table('webhook_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('topic', sa.String(length=64), nullable=False),
        sa.Column('shop_domain', sa.String(length=255), nullable=True),
        sa.Column('external_order_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('webhook_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_webhook_logs_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_webhook_logs_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_webhook_logs_topic'), ['topic'], unique=False)
        batch_op.create_index(batch_op.f('ix_webhook_logs_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_webhook_logs_processed_at'), ['processed_at'], unique=False)
        batch_op.create_index('ix_webhook_logs_brand_order', ['brand_id', 'external_order_id'], unique=False)

    # ==========================================================================
    # 6. STORE INVENTORY
    # ==========================================================================
    op.create_table('store_inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('quantity_on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_available', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity_incoming', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_restocked_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'product_sku', name='uq_store_inventory_store_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('store_inventory', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_store_inventory_store_id'), ['store_id'], unique=False)

    op.create_table('inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('wholesale_order_id', sa.Integer(), nullable=True),
        sa.Column('external_order_id', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id'], ),
        sa.ForeignKeyConstraint(['wholesale_order_id'], ['wholesale_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_transactions_store_id'), ['store_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_transactions_type'), ['type'], unique=False)
        batch_op.create_index(
            batch_op.f('ix_inventory_transactions_wholesale_order_id'), ['wholesale_order_id'], unique=False
        )
        batch_op.create_index('ix_invtx_store_sku_created', ['store_id', 'product_sku', 'created_at'], unique=False)
        batch_op.create_index('ix_invtx_store_order_type', ['store_id', 'external_order_id', 'type'], unique=False)


def downgrade():
    # Drop tables in reverse order of creation (respect foreign keys)
    op.drop_table('inventory_transactions')
    op.drop_table('store_inventory')
    op.drop_table('webhook_logs')
    op.drop_table('credit_transactions')
    op.drop_table('conversions')
    op.drop_table('wholesale_order_items')
    op.drop_table('wholesale_orders')
    op.drop_table('products')
    op.drop_table('brand_partnerships')
    op.drop_table('sample_history')
    op.drop_table('customers')
    op.drop_table('stores')
    op.drop_table('brands')
