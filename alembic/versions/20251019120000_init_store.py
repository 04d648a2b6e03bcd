from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20251019120000"
down_revision = None

fulfillment_state = sa.Enum('NEEDS_CREATED', 'NEEDS_SHIPPED', 'SHIPPED', name='fulfillment_state')
order_status = sa.Enum('RECEIVED', 'COMPLETE', name='order_status')
now_utc = sa.text("(now() at time zone 'utc')")

def upgrade():
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=240), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('price_cents', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('quantity_available', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('make_time_minutes', sa.Integer()),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=now_utc),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=now_utc),
        sa.CheckConstraint('quantity_available >= 0', name='ck_items_quantity_available_nonneg'),
        sa.CheckConstraint('price_cents >= 0', name='ck_items_price_nonneg'),
    )
    op.create_index('ix_items_active', 'items', ['active'])
    op.create_table(
        'item_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('url', sa.String(length=1024), nullable=False),
        sa.Column('object_key', sa.String(length=255)),
        sa.Column('sort_order', sa.Integer()),
        sa.Column('alt_text', sa.String(length=255)),
    )
    op.create_index('ix_item_images_item_id', 'item_images', ['item_id'])
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('status', order_status, nullable=False, server_default='RECEIVED'),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('shipping_address', postgresql.JSONB()),
        sa.Column('subtotal_cents', sa.BigInteger(), nullable=False),
        sa.Column('tax_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('shipping_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=now_utc),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=now_utc),
        sa.CheckConstraint('total_cents = subtotal_cents + tax_cents + shipping_cents', name='ck_orders_total'),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_email', 'orders', ['email'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_table(
        'order_line_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id', ondelete='SET NULL')),
        sa.Column('title_snapshot', sa.String(length=240), nullable=False),
        sa.Column('unit_price_cents_snapshot', sa.BigInteger(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_line_items_quantity_pos'),
    )
    op.create_index('ix_order_line_items_order_id', 'order_line_items', ['order_id'])
    op.create_index('ix_order_line_items_item_id', 'order_line_items', ['item_id'])
    op.create_table(
        'fulfillment_units',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_line_item_id', sa.Integer(), sa.ForeignKey('order_line_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('state', fulfillment_state, nullable=False, server_default='NEEDS_CREATED'),
        sa.Column('queued_at', sa.DateTime(timezone=True), nullable=False, server_default=now_utc),
        sa.Column('shipped_at', sa.DateTime(timezone=True)),
        sa.Column('carrier', sa.String(length=64)),
        sa.Column('tracking_number', sa.String(length=64)),
    )
    op.create_index('ix_fulfillment_units_order_id', 'fulfillment_units', ['order_id'])
    op.create_index('ix_fulfillment_units_order_line_item_id', 'fulfillment_units', ['order_line_item_id'])
    op.create_index('ix_fulfillment_units_item_id', 'fulfillment_units', ['item_id'])
    op.create_index('ix_fulfillment_units_state_queued', 'fulfillment_units', ['state', 'queued_at', 'id'])

def downgrade():
    op.drop_table('fulfillment_units')
    op.drop_table('order_line_items')
    op.drop_table('orders')
    op.drop_table('item_images')
    op.drop_table('items')
    fulfillment_state.drop(op.get_bind(), checkfirst=True)
    order_status.drop(op.get_bind(), checkfirst=True)
