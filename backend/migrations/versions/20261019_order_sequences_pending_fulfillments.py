"""Wholesale order number sequences and pending fulfillments

Revision ID: 20261019_sequences
Revises: 20261018_initial
Create Date: 2026-10-19

This migration adds:
1. wholesale_order_sequences (one atomic counter row per UTC day)
2. pending_fulfillments (shipments received before their order was known)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_sequences'
down_revision = '20261018_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('wholesale_order_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sequence_date', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('wholesale_order_sequences', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_wholesale_order_sequences_sequence_date'), ['sequence_date'], unique=True)

    op.create_table('pending_fulfillments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=False),
        sa.Column('external_order_id', sa.String(length=64), nullable=False),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('wholesale_order_id', sa.Integer(), nullable=True),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.ForeignKeyConstraint(['wholesale_order_id'], ['wholesale_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('brand_id', 'external_order_id', name='uq_pending_fulfillments_brand_order'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('pending_fulfillments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_pending_fulfillments_brand_id'), ['brand_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_pending_fulfillments_external_order_id'), ['external_order_id'], unique=False)


def downgrade():
    op.drop_table('pending_fulfillments')
    op.drop_table('wholesale_order_sequences')
