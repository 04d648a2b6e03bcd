from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from handmade_store.db.models import FulfillmentState, OrderStatus

# --- catalog ---

class ItemImageBase(BaseModel):
    url: str = Field(min_length=1, max_length=1024)
    sort_order: Optional[int] = None
    alt_text: Optional[str] = Field(default=None, max_length=255)
class ItemImageCreate(ItemImageBase): pass
class ItemImageUpdate(BaseModel):
    url: Optional[str] = Field(default=None, min_length=1, max_length=1024)
    sort_order: Optional[int] = None
    alt_text: Optional[str] = Field(default=None, max_length=255)
class ItemImageRead(ItemImageBase):
    id: int
    item_id: int
    object_key: Optional[str] = None
    class Config: from_attributes = True
class ItemBase(BaseModel):
    title: str = Field(min_length=1, max_length=240)
    description: Optional[str] = None
    price_cents: int = Field(ge=0)
    currency: str = Field(default='USD', min_length=3, max_length=3)
    quantity_available: int = Field(default=0, ge=0)
    make_time_minutes: Optional[int] = Field(default=None, ge=0)
    active: bool = True
class ItemCreate(ItemBase): pass
class ItemUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=240)
    description: Optional[str] = None
    price_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    quantity_available: Optional[int] = Field(default=None, ge=0)
    make_time_minutes: Optional[int] = Field(default=None, ge=0)
    active: Optional[bool] = None
class ItemRead(ItemBase):
    id: int
    created_at: datetime
    updated_at: datetime
    images: List[ItemImageRead] = []
    class Config: from_attributes = True

# --- orders ---

class OrderItemIn(BaseModel):
    item_id: int
    quantity: int

class OrderCreate(BaseModel):
    email: EmailStr
    items: List[OrderItemIn]
    shipping_address: Optional[dict] = None
    tax_cents: Optional[int] = 0
    shipping_cents: Optional[int] = 0
    currency: Optional[str] = None

class OrderTotals(BaseModel):
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    total_cents: int
    currency: str

class LineItemOut(BaseModel):
    id: int
    item_id: Optional[int]
    quantity: int
    unit_price_cents: int
    title: str

class FulfillmentCounts(BaseModel):
    needs_created: int
    needs_shipped: int

class OrderCreated(BaseModel):
    order_id: int
    totals: OrderTotals
    line_items: List[LineItemOut]
    fulfillment: FulfillmentCounts

# --- fulfillment transitions ---

class ShipRequest(BaseModel):
    carrier: Optional[str] = Field(default=None, max_length=64)
    tracking_number: Optional[str] = Field(default=None, max_length=64)

class UnitTransition(BaseModel):
    unit_id: int
    new_state: FulfillmentState

class UnitShipped(UnitTransition):
    order_id: int
    order_status: OrderStatus

# --- fulfillment views ---

class QueueRow(BaseModel):
    unit_id: int
    state: FulfillmentState
    queued_at: datetime
    shipped_at: Optional[datetime] = None
    item_id: int
    item_title: str
    order_id: int
    order_email: str
    shipping_address: Optional[dict] = None
    line_item_id: int
    line_item_title_snapshot: str

class QueuePage(BaseModel):
    state: FulfillmentState
    count: int
    rows: List[QueueRow]

class OrderSummary(BaseModel):
    order_id: int
    order_status: OrderStatus
    order_email: str
    shipping_address: Optional[dict] = None
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    total_cents: int
    currency: str
    created_at: datetime
    updated_at: datetime
    total_units: int
    needs_created_units: int
    needs_shipped_units: int
    shipped_units: int

class OrderSummaryPage(BaseModel):
    count: int
    rows: List[OrderSummary]

class UnitDetail(BaseModel):
    unit_id: int
    state: FulfillmentState
    queued_at: datetime
    shipped_at: Optional[datetime] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    item_id: int
    item_title: str
    line_item_id: int
    line_item_title_snapshot: str

class LineItemDetail(BaseModel):
    line_item_id: int
    item_id: Optional[int]
    title_snapshot: str
    unit_price_cents_snapshot: int
    quantity: int
    units: List[UnitDetail] = []

class OrderDetail(BaseModel):
    order: OrderSummary
    line_items: List[LineItemDetail]
