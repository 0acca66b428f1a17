"""Stock movement schema: catalog, inventory levels, transfers, adjustments, alerts

Revision ID: 20261018_stockflow
Revises:
Create Date: 2026-10-18

This migration adds:
1. Warehouse and Product (catalog, existence checks only)
2. InventoryLevel (on-hand per product and warehouse)
3. ReferenceSequence (atomic monthly TRF/ADJ counters)
4. StockTransfer and TransferItem
5. StockAdjustment and AdjustmentItem
6. StockAlert
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_stockflow'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('warehouses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_warehouses_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('warehouses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_warehouses_is_active'), ['is_active'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_is_active'), ['is_active'], unique=False)

    # ==========================================================================
    # 2. INVENTORY LEVELS
    # ==========================================================================
    op.create_table('inventory_levels',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'warehouse_id', name='uq_inventory_levels_product_warehouse'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_levels', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_levels_product_id'), ['product_id'], unique=False)
        batch_op.create_index('ix_inventory_levels_warehouse', ['warehouse_id'], unique=False)

    # ==========================================================================
    # 3. REFERENCE SEQUENCES
    # ==========================================================================
    op.create_table('reference_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_type', 'year', 'month', name='uq_reference_sequences_type_period'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('reference_sequences', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_reference_sequences_entity_type'), ['entity_type'], unique=False)

    # ==========================================================================
    # 4. TRANSFERS
    # ==========================================================================
    op.create_table('stock_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source_warehouse_id', sa.Integer(), nullable=False),
        sa.Column('destination_warehouse_id', sa.Integer(), nullable=False),
        sa.Column('reference_code', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('initiated_by', sa.Integer(), nullable=False),
        sa.Column('completed_by', sa.Integer(), nullable=True),
        sa.Column('initiated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('source_warehouse_id <> destination_warehouse_id', name='ck_stock_transfers_distinct_warehouses'),
        sa.ForeignKeyConstraint(['source_warehouse_id'], ['warehouses.id'], ),
        sa.ForeignKeyConstraint(['destination_warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference_code', name='uq_stock_transfers_reference_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_transfers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_transfers_source_warehouse_id'), ['source_warehouse_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_transfers_destination_warehouse_id'), ['destination_warehouse_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_transfers_status'), ['status'], unique=False)
        batch_op.create_index('ix_stock_transfers_status_initiated', ['status', 'initiated_at'], unique=False)

    op.create_table('transfer_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('received_quantity', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity > 0', name='ck_transfer_items_quantity_positive'),
        sa.CheckConstraint('unit_cost_cents >= 0', name='ck_transfer_items_unit_cost'),
        sa.CheckConstraint(
            'received_quantity IS NULL OR (received_quantity >= 0 AND received_quantity <= quantity)',
            name='ck_transfer_items_received_range',
        ),
        sa.ForeignKeyConstraint(['transfer_id'], ['stock_transfers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transfer_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transfer_items_transfer_id'), ['transfer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transfer_items_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transfer_items_status'), ['status'], unique=False)

    # ==========================================================================
    # 5. ADJUSTMENTS
    # ==========================================================================
    op.create_table('stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('reference_code', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('initiated_by', sa.Integer(), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('initiated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference_code', name='uq_stock_adjustments_reference_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_adjustments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_adjustments_warehouse_id'), ['warehouse_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_adjustments_status'), ['status'], unique=False)
        batch_op.create_index('ix_stock_adjustments_warehouse_status', ['warehouse_id', 'status'], unique=False)

    op.create_table('adjustment_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('adjustment_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('new_stock', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('decided_by', sa.Integer(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity <> 0', name='ck_adjustment_items_quantity_nonzero'),
        sa.ForeignKeyConstraint(['adjustment_id'], ['stock_adjustments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('adjustment_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_adjustment_items_adjustment_id'), ['adjustment_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_adjustment_items_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_adjustment_items_status'), ['status'], unique=False)

    # ==========================================================================
    # 6. STOCK ALERTS
    # ==========================================================================
    op.create_table('stock_alerts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('alert_type', sa.String(length=16), nullable=False, server_default='low_stock'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('current_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'warehouse_id', name='uq_stock_alerts_product_warehouse'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_alerts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_alerts_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_alerts_warehouse_id'), ['warehouse_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_alerts_status'), ['status'], unique=False)
        batch_op.create_index('ix_stock_alerts_status_created', ['status', 'created_at'], unique=False)


def downgrade():
    # Drop tables in reverse order of creation (respect foreign keys)
    op.drop_table('stock_alerts')
    op.drop_table('adjustment_items')
    op.drop_table('stock_adjustments')
    op.drop_table('transfer_items')
    op.drop_table('stock_transfers')
    op.drop_table('reference_sequences')
    op.drop_table('inventory_levels')
    op.drop_table('products')
    op.drop_table('warehouses')
