"""Order pipeline schema: orders, order counters and number reservations.

Revision ID: 001_order_pipeline
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001_order_pipeline'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_DOCUMENT = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    # ### Orders table ###
    op.create_table(
        'orders',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('order_number', sa.String(160), nullable=False),
        sa.Column('product_key', sa.String(128), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('transaction_id', sa.String(255), nullable=False),
        sa.Column('payment_provider', sa.String(50)),
        sa.Column('payment_method', JSON_DOCUMENT),
        sa.Column('customer_id', sa.String(255)),
        sa.Column('customer_email', sa.String(255), nullable=False),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('login_method', sa.String(20), nullable=False, server_default='guest'),
        sa.Column('order_total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('tax_total', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('discount_total', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('fulfillment_status', sa.String(20), nullable=False),
        sa.Column('order_status', sa.String(20), nullable=False),
        sa.Column('shipping_method', sa.String(50), nullable=False, server_default='Standard'),
        sa.Column('carrier', sa.String(100)),
        sa.Column('shipping_address', JSON_DOCUMENT),
        sa.Column('billing_address', JSON_DOCUMENT),
        sa.Column('tracking_numbers', JSON_DOCUMENT, nullable=False),
        sa.Column('shipments', JSON_DOCUMENT, nullable=False),
        sa.Column('items', JSON_DOCUMENT, nullable=False),
        sa.Column('payment_timeline', JSON_DOCUMENT, nullable=False),
        sa.Column('event_timeline', JSON_DOCUMENT, nullable=False),
        sa.Column('refunds', JSON_DOCUMENT, nullable=False),
        sa.Column('owner_notes', JSON_DOCUMENT, nullable=False),
        sa.Column('metadata', JSON_DOCUMENT, nullable=False),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('transaction_id', 'product_key', name='uq_orders_transaction_product'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_product_key', 'orders', ['product_key'])
    op.create_index('ix_orders_transaction_id', 'orders', ['transaction_id'])
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_customer_email', 'orders', ['customer_email'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_fulfillment_status', 'orders', ['fulfillment_status'])
    op.create_index('ix_orders_order_status', 'orders', ['order_status'])
    op.create_index('ix_orders_order_date', 'orders', ['order_date'])

    # ### Order counters table ###
    op.create_table(
        'order_counters',
        sa.Column('key', sa.String(128), primary_key=True),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ### Order number reservations table ###
    op.create_table(
        'order_number_reservations',
        sa.Column('order_number', sa.String(160), primary_key=True),
        sa.Column('product_key', sa.String(128), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='reserved'),
        sa.Column('order_id', sa.String(64)),
        sa.Column('reason', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_order_number_reservations_product_key', 'order_number_reservations', ['product_key'])
    op.create_index('ix_order_number_reservations_transaction_id', 'order_number_reservations', ['transaction_id'])
    op.create_index('ix_order_number_reservations_status', 'order_number_reservations', ['status'])


def downgrade() -> None:
    op.drop_table('order_number_reservations')
    op.drop_table('order_counters')
    op.drop_table('orders')
