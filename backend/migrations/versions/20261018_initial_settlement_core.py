"""Initial schema: catalog, stock ledger, orders, supplier payouts

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. suppliers and products (products carry the version_id optimistic lock)
2. orders and stock_movements
3. order_items, linked to the sale and reversal movements
4. supplier_payouts
5. document_sequences and ledger_events
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
    # 1. CATALOG
    # ==========================================================================
    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=4), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('iban', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            'commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate <= 1)',
            name='ck_suppliers_commission_rate_range',
        ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_suppliers_type', 'suppliers', ['type'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('artist_name', sa.String(length=255), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_threshold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_price_cents', sa.Integer(), nullable=True),
        sa.Column('selling_price_cents', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('supplier_type', sa.String(length=16), nullable=True),
        sa.Column('consignment_rate', sa.Numeric(precision=5, scale=4), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_supplier', 'products', ['supplier_id'])

    # ==========================================================================
    # 2. ORDERS AND STOCK LEDGER
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('tracking_url', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('refund_requested', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('refund_reason', sa.String(length=255), nullable=True),
        sa.Column('credit_note_number', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('stock_before', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('order_item_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.CheckConstraint('quantity <> 0', name='ck_stock_movements_quantity_nonzero'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_product_id_id', 'stock_movements', ['product_id', 'id'])
    op.create_index('ix_stock_movements_order', 'stock_movements', ['order_id'])
    op.create_index('ix_stock_movements_order_item_id', 'stock_movements', ['order_item_id'])
    op.create_index('ix_stock_movements_supplier_id', 'stock_movements', ['supplier_id'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])

    # ==========================================================================
    # 3. ORDER ITEMS
    # ==========================================================================
    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('stock_movement_id', sa.Integer(), nullable=True),
        sa.Column('reversed_stock_movement_id', sa.Integer(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_reason', sa.String(length=255), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('supplier_type', sa.String(length=16), nullable=True),
        sa.Column('consignment_rate', sa.Numeric(precision=5, scale=4), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['stock_movement_id'], ['stock_movements.id']),
        sa.ForeignKeyConstraint(['reversed_stock_movement_id'], ['stock_movements.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])
    op.create_index('ix_order_items_status', 'order_items', ['status'])
    op.create_index('ix_order_items_supplier_created', 'order_items', ['supplier_id', 'created_at'])

    # ==========================================================================
    # 4. SUPPLIER PAYOUTS
    # ==========================================================================
    op.create_table('supplier_payouts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('gross_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payout_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_supplier_payouts_supplier_id', 'supplier_payouts', ['supplier_id'])
    op.create_index('ix_supplier_payouts_status', 'supplier_payouts', ['status'])
    op.create_index('ix_supplier_payouts_supplier_period', 'supplier_payouts', ['supplier_id', 'period_start'])

    # ==========================================================================
    # 5. DOCUMENT SEQUENCES AND AUDIT LEDGER
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', name='uq_doc_sequences_type'),
        sqlite_autoincrement=True,
    )

    op.create_table('ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('event_category', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor', sa.String(length=64), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_ledger_events_event_type', 'ledger_events', ['event_type'])
    op.create_index('ix_ledger_events_event_category', 'ledger_events', ['event_category'])
    op.create_index('ix_ledger_events_occurred_at', 'ledger_events', ['occurred_at'])
    op.create_index('ix_ledger_events_entity', 'ledger_events', ['entity_type', 'entity_id'])


def downgrade():
    op.drop_table('ledger_events')
    op.drop_table('document_sequences')
    op.drop_table('supplier_payouts')
    op.drop_table('order_items')
    op.drop_table('stock_movements')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('suppliers')
