from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, BigInteger, JSON, CheckConstraint, Index, Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from handmade_store.db.session import Base

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class FulfillmentState(str, Enum):
    NEEDS_CREATED = "NEEDS_CREATED"
    NEEDS_SHIPPED = "NEEDS_SHIPPED"
    SHIPPED = "SHIPPED"

class OrderStatus(str, Enum):
    RECEIVED = "RECEIVED"
    COMPLETE = "COMPLETE"

# opaque structured address; JSONB on postgres
AddressJSON = JSON().with_variant(JSONB(), 'postgresql')

class Item(Base):
    __tablename__ = 'items'
    __table_args__ = (
        CheckConstraint('quantity_available >= 0', name='ck_items_quantity_available_nonneg'),
        CheckConstraint('price_cents >= 0', name='ck_items_price_nonneg'),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(240), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default='USD')
    quantity_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    make_time_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    images = relationship('ItemImage', back_populates='item', cascade='all, delete-orphan',
                          order_by=lambda: [ItemImage.sort_order.is_(None), ItemImage.sort_order, ItemImage.id])

class ItemImage(Base):
    __tablename__ = 'item_images'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(ForeignKey('items.id', ondelete='CASCADE'), index=True)
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    object_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sort_order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    alt_text: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    item = relationship('Item', back_populates='images')

class Order(Base):
    __tablename__ = 'orders'
    __table_args__ = (
        CheckConstraint('total_cents = subtotal_cents + tax_cents + shipping_cents', name='ck_orders_total'),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[OrderStatus] = mapped_column(SAEnum(OrderStatus, name='order_status'), default=OrderStatus.RECEIVED, index=True)
    email: Mapped[str] = mapped_column(String(255), index=True)
    shipping_address: Mapped[Optional[dict]] = mapped_column(AddressJSON, nullable=True)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger)
    tax_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    shipping_cents: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cents: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    line_items = relationship("OrderLineItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderLineItem.id")
    units = relationship("FulfillmentUnit", back_populates="order", cascade="all, delete-orphan", order_by="FulfillmentUnit.id")

class OrderLineItem(Base):
    __tablename__ = "order_line_items"
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_order_line_items_quantity_pos'),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    # severable: the snapshot survives deletion of the item
    item_id: Mapped[Optional[int]] = mapped_column(ForeignKey("items.id", ondelete="SET NULL"), nullable=True, index=True)
    title_snapshot: Mapped[str] = mapped_column(String(240))
    unit_price_cents_snapshot: Mapped[int] = mapped_column(BigInteger)
    quantity: Mapped[int] = mapped_column(Integer)

    order = relationship("Order", back_populates="line_items")
    units = relationship("FulfillmentUnit", back_populates="line_item", order_by="FulfillmentUnit.id")

class FulfillmentUnit(Base):
    __tablename__ = "fulfillment_units"
    __table_args__ = (
        Index('ix_fulfillment_units_state_queued', 'state', 'queued_at', 'id'),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    order_line_item_id: Mapped[int] = mapped_column(ForeignKey("order_line_items.id", ondelete="CASCADE"), index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), index=True)
    state: Mapped[FulfillmentState] = mapped_column(SAEnum(FulfillmentState, name='fulfillment_state'), default=FulfillmentState.NEEDS_CREATED)
    queued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    carrier: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    order = relationship("Order", back_populates="units")
    line_item = relationship("OrderLineItem", back_populates="units")
    item = relationship("Item")
