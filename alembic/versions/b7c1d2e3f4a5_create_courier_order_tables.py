"""create_courier_order_tables

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-19 09:12:44.318205

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b7c1d2e3f4a5'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tracking_number', sa.String(length=64), nullable=False),
        sa.Column('courier', sa.String(length=20), nullable=False),
        sa.Column('brand_id', sa.String(length=64), nullable=False),
        sa.Column('order_ref_number', sa.String(length=128), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=50), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=True),
        sa.Column('city_name', sa.String(length=128), nullable=True),
        sa.Column('order_detail', sa.Text(), nullable=True),
        sa.Column('order_type', sa.String(length=32), nullable=True),
        sa.Column('order_amount', sa.Float(), nullable=False),
        sa.Column('invoice_payment', sa.Float(), nullable=False),
        sa.Column('transaction_fee', sa.Float(), nullable=False),
        sa.Column('transaction_tax', sa.Float(), nullable=False),
        sa.Column('sales_withholding_tax', sa.Float(), nullable=False),
        sa.Column('upfront_payment', sa.Float(), nullable=False),
        sa.Column('net_amount', sa.Float(), nullable=False),
        sa.Column('order_status', sa.String(length=128), nullable=True),
        sa.Column('transaction_status', sa.String(length=128), nullable=True),
        sa.Column('last_status', sa.String(length=255), nullable=True),
        sa.Column('last_status_time', sa.DateTime(), nullable=True),
        sa.Column('order_date', sa.DateTime(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(), nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('courier', 'tracking_number', name='uq_orders_courier_tracking'),
    )
    op.create_index(op.f('ix_orders_id'), 'orders', ['id'], unique=False)
    op.create_index(op.f('ix_orders_brand_id'), 'orders', ['brand_id'], unique=False)
    op.create_index('ix_orders_brand_courier_order_date', 'orders', ['brand_id', 'courier', 'order_date'], unique=False)

    op.create_table(
        'storefront_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('storefront_order_id', sa.String(length=64), nullable=False),
        sa.Column('brand_id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=64), nullable=True),
        sa.Column('order_name', sa.String(length=64), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('shipping_address', sa.Text(), nullable=True),
        sa.Column('shipping_city', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('financial_status', sa.String(length=32), nullable=True),
        sa.Column('fulfillment_status', sa.String(length=32), nullable=True),
        sa.Column('total_price', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('line_items', sa.Text(), nullable=True),
        sa.Column('fulfillments', sa.Text(), nullable=True),
        sa.Column('tracking_numbers', sa.Text(), nullable=True),
        sa.Column('courier_partner', sa.String(length=128), nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('storefront_order_id'),
    )
    op.create_index(op.f('ix_storefront_orders_id'), 'storefront_orders', ['id'], unique=False)
    op.create_index(op.f('ix_storefront_orders_brand_id'), 'storefront_orders', ['brand_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_storefront_orders_brand_id'), table_name='storefront_orders')
    op.drop_index(op.f('ix_storefront_orders_id'), table_name='storefront_orders')
    op.drop_table('storefront_orders')
    op.drop_index('ix_orders_brand_courier_order_date', table_name='orders')
    op.drop_index(op.f('ix_orders_brand_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_id'), table_name='orders')
    op.drop_table('orders')
