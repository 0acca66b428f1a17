"""Stock movement ledger

Revision ID: 20261018_stock_movements
Revises: 20261018_stockflow
Create Date: 2026-10-18

This migration adds:
1. StockMovement (one row per InventoryLevel change, tagged with its document)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_stock_movements'
down_revision = '20261018_stockflow'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('warehouse_id', sa.Integer(), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('quantity_after', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=16), nullable=False),
        sa.Column('document_id', sa.Integer(), nullable=True),
        sa.Column('reference_code', sa.String(length=32), nullable=True),
        sa.Column('performed_by', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity_delta <> 0', name='ck_stock_movements_delta_nonzero'),
        sa.CheckConstraint('quantity_after >= 0', name='ck_stock_movements_after_nonnegative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stock_movements_warehouse_id'), ['warehouse_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_movements_reference_code'), ['reference_code'], unique=False)
        batch_op.create_index('ix_stock_movements_pair_occurred', ['product_id', 'warehouse_id', 'occurred_at'], unique=False)
        batch_op.create_index('ix_stock_movements_document', ['document_type', 'document_id'], unique=False)


def downgrade():
    op.drop_table('stock_movements')
