"""Staff-facing read views over orders and fulfillment units.

Nothing here locks; callers may see state that changes right after the read.
FIFO order everywhere is ``queued_at`` then unit id, the id being the stable
tie-breaker for units queued in the same transaction.
"""
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from handmade_store.core.config import settings
from handmade_store.core.errors import ValidationError
from handmade_store.db.models import FulfillmentState, FulfillmentUnit, Item, Order, OrderLineItem, OrderStatus
from handmade_store.schemas import LineItemDetail, OrderDetail, OrderSummary, QueueRow, UnitDetail


def page_bounds(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    if limit is None:
        limit = settings.QUEUE_DEFAULT_LIMIT
    return min(max(limit, 1), settings.QUEUE_MAX_LIMIT), max(offset or 0, 0)


def get_queue(db: Session, state: FulfillmentState, limit: Optional[int] = None,
              offset: Optional[int] = None) -> List[QueueRow]:
    limit, offset = page_bounds(limit, offset)
    stmt = (
        select(
            FulfillmentUnit.id.label('unit_id'),
            FulfillmentUnit.state.label('state'),
            FulfillmentUnit.queued_at.label('queued_at'),
            FulfillmentUnit.shipped_at.label('shipped_at'),
            Item.id.label('item_id'),
            Item.title.label('item_title'),
            Order.id.label('order_id'),
            Order.email.label('order_email'),
            Order.shipping_address.label('shipping_address'),
            OrderLineItem.id.label('line_item_id'),
            OrderLineItem.title_snapshot.label('line_item_title_snapshot'),
        )
        .join(Item, Item.id == FulfillmentUnit.item_id)
        .join(Order, Order.id == FulfillmentUnit.order_id)
        .join(OrderLineItem, OrderLineItem.id == FulfillmentUnit.order_line_item_id)
        .where(FulfillmentUnit.state == state)
        .order_by(FulfillmentUnit.queued_at.asc(), FulfillmentUnit.id.asc())
        .limit(limit)
        .offset(offset)
    )
    return [QueueRow(**row._mapping) for row in db.execute(stmt)]


def _count_in(state: FulfillmentState):
    return func.coalesce(func.sum(case((FulfillmentUnit.state == state, 1), else_=0)), 0)


def _to_summary(order: Order, total, needs_created, needs_shipped, shipped) -> OrderSummary:
    return OrderSummary(
        order_id=order.id,
        order_status=order.status,
        order_email=order.email,
        shipping_address=order.shipping_address,
        subtotal_cents=order.subtotal_cents,
        tax_cents=order.tax_cents,
        shipping_cents=order.shipping_cents,
        total_cents=order.total_cents,
        currency=order.currency,
        created_at=order.created_at,
        updated_at=order.updated_at,
        total_units=int(total),
        needs_created_units=int(needs_created),
        needs_shipped_units=int(needs_shipped),
        shipped_units=int(shipped),
    )


def get_order_summaries(db: Session, status: Optional[OrderStatus] = None, order_id: Optional[int] = None,
                        email_query: Optional[str] = None, limit: Optional[int] = None,
                        offset: Optional[int] = None) -> List[OrderSummary]:
    """Orders with per-state unit counts, newest first (ties: higher id first)."""
    limit, offset = page_bounds(limit, offset)
    stmt = (
        select(
            Order,
            func.count(FulfillmentUnit.id),
            _count_in(FulfillmentState.NEEDS_CREATED),
            _count_in(FulfillmentState.NEEDS_SHIPPED),
            _count_in(FulfillmentState.SHIPPED),
        )
        .outerjoin(FulfillmentUnit, FulfillmentUnit.order_id == Order.id)
        .group_by(Order.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if status is not None:
        stmt = stmt.where(Order.status == status)
    if order_id is not None:
        stmt = stmt.where(Order.id == order_id)
    if email_query:
        stmt = stmt.where(Order.email.icontains(email_query, autoescape=True))
    return [_to_summary(*row) for row in db.execute(stmt)]


def get_order_detail(db: Session, order_id: int) -> Optional[OrderDetail]:
    """Summary, line items in creation order, and each line's units (FIFO).

    Returns None when the order does not exist.
    """
    if not isinstance(order_id, int) or order_id <= 0:
        raise ValidationError(f'Invalid order id: {order_id!r}')

    summaries = get_order_summaries(db, order_id=order_id, limit=1, offset=0)
    if not summaries:
        return None

    line_rows = db.execute(
        select(OrderLineItem).where(OrderLineItem.order_id == order_id).order_by(OrderLineItem.id.asc())
    ).scalars().all()

    unit_rows = db.execute(
        select(
            FulfillmentUnit.id.label('unit_id'),
            FulfillmentUnit.state.label('state'),
            FulfillmentUnit.queued_at.label('queued_at'),
            FulfillmentUnit.shipped_at.label('shipped_at'),
            FulfillmentUnit.carrier.label('carrier'),
            FulfillmentUnit.tracking_number.label('tracking_number'),
            Item.id.label('item_id'),
            Item.title.label('item_title'),
            OrderLineItem.id.label('line_item_id'),
            OrderLineItem.title_snapshot.label('line_item_title_snapshot'),
        )
        .join(Item, Item.id == FulfillmentUnit.item_id)
        .join(OrderLineItem, OrderLineItem.id == FulfillmentUnit.order_line_item_id)
        .where(FulfillmentUnit.order_id == order_id)
        .order_by(OrderLineItem.id.asc(), FulfillmentUnit.queued_at.asc(), FulfillmentUnit.id.asc())
    )

    units_by_line: Dict[int, List[UnitDetail]] = {}
    for row in unit_rows:
        units_by_line.setdefault(row.line_item_id, []).append(UnitDetail(**row._mapping))

    return OrderDetail(
        order=summaries[0],
        line_items=[
            LineItemDetail(
                line_item_id=li.id,
                item_id=li.item_id,
                title_snapshot=li.title_snapshot,
                unit_price_cents_snapshot=li.unit_price_cents_snapshot,
                quantity=li.quantity,
                units=units_by_line.get(li.id, []),
            )
            for li in line_rows
        ],
    )
