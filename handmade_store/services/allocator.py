"""Order creation and stock allocation.

``create_order`` persists an order, its line items and one fulfillment unit
per unit of ordered quantity, all in a single transaction. Every referenced
item row is locked (ascending id) before any allocation decision, so two
concurrent orders can never both claim the same unit of stock.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from handmade_store.core.config import settings
from handmade_store.core import errors
from handmade_store.core.errors import NotFoundError, StateConflictError, ValidationError
from handmade_store.db.models import FulfillmentState, FulfillmentUnit, Item, Order, OrderLineItem, OrderStatus, utcnow
from handmade_store.db.session import atomic
from handmade_store.kafka.producer import emit_order_event
from handmade_store.schemas import FulfillmentCounts, LineItemOut, OrderCreate, OrderCreated, OrderTotals

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r'^[A-Z]{3}$')


@dataclass
class AllocationPlan:
    # (line_item_id, item_id, state), in emission order
    units: List[Tuple[int, int, FulfillmentState]] = field(default_factory=list)
    decrements: Dict[int, int] = field(default_factory=dict)
    needs_created: int = 0
    needs_shipped: int = 0


def plan_allocation(lines, stock_by_item: Dict[int, int]) -> AllocationPlan:
    """Split each line into units, drawing on stock before production.

    ``lines`` is an iterable of ``(line_item_id, item_id, quantity)`` in line
    creation order. ``stock_by_item`` holds the locked ``quantity_available``
    per item; allocations to earlier lines of the same item reduce what later
    lines can draw. Units from stock come first within a line.
    """
    plan = AllocationPlan()
    for line_item_id, item_id, quantity in lines:
        already = plan.decrements.get(item_id, 0)
        remaining = max(0, stock_by_item.get(item_id, 0) - already)
        from_stock = min(quantity, remaining)
        to_make = quantity - from_stock
        if from_stock:
            plan.decrements[item_id] = already + from_stock
        plan.units.extend((line_item_id, item_id, FulfillmentState.NEEDS_SHIPPED) for _ in range(from_stock))
        plan.units.extend((line_item_id, item_id, FulfillmentState.NEEDS_CREATED) for _ in range(to_make))
        plan.needs_shipped += from_stock
        plan.needs_created += to_make
    return plan


def validate_order_request(payload: OrderCreate) -> None:
    if not payload.email or not str(payload.email).strip():
        raise ValidationError('email is required')
    if not payload.items:
        raise ValidationError('items must be a non-empty list')
    for line in payload.items:
        if line.item_id is None or line.item_id <= 0:
            raise ValidationError(f'Invalid item_id: {line.item_id}')
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError(f'Invalid quantity for item {line.item_id}: {line.quantity}')
    if (payload.tax_cents or 0) < 0:
        raise ValidationError('tax_cents must be >= 0')
    if (payload.shipping_cents or 0) < 0:
        raise ValidationError('shipping_cents must be >= 0')
    if payload.currency is not None and not _CURRENCY_RE.match(payload.currency.upper()):
        raise ValidationError(f'Invalid currency: {payload.currency}')


def _lock_items(db: Session, item_ids) -> Dict[int, Item]:
    stmt = (
        select(Item)
        .where(Item.id.in_(sorted(item_ids)))
        .order_by(Item.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {it.id: it for it in db.execute(stmt).scalars().all()}


def _apply_decrements(db: Session, decrements: Dict[int, int], now) -> None:
    for item_id in sorted(decrements):
        dec = decrements[item_id]
        result = db.execute(
            update(Item)
            .where(Item.id == item_id, Item.quantity_available >= dec)
            .values(quantity_available=Item.quantity_available - dec, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("stock decrement of %s rejected for item %s", dec, item_id)
            raise StateConflictError(f'Insufficient stock while allocating item {item_id}',
                                     code=errors.INSUFFICIENT_STOCK, details={'item_id': item_id, 'requested': dec})
        logger.info("item %s stock decremented by %s", item_id, dec)


def _insert_units(db: Session, order_id: int, plan: AllocationPlan, queued_at) -> None:
    rows = [
        {'order_id': order_id, 'order_line_item_id': line_item_id, 'item_id': item_id,
         'state': state, 'queued_at': queued_at}
        for line_item_id, item_id, state in plan.units
    ]
    batch = max(1, settings.UNIT_INSERT_BATCH)
    for start in range(0, len(rows), batch):
        db.execute(insert(FulfillmentUnit), rows[start:start + batch])


def create_order(db: Session, payload: OrderCreate) -> OrderCreated:
    validate_order_request(payload)
    currency = (payload.currency or settings.DEFAULT_CURRENCY).upper()
    tax_cents = payload.tax_cents or 0
    shipping_cents = payload.shipping_cents or 0

    with atomic(db):
        now = utcnow()
        items = _lock_items(db, {line.item_id for line in payload.items})

        for line in payload.items:
            it = items.get(line.item_id)
            if it is None:
                raise NotFoundError(f'Item not found: {line.item_id}', code=errors.ITEM_NOT_FOUND,
                                    details={'item_id': line.item_id})
            if not it.active:
                raise NotFoundError(f'Item is not active: {line.item_id}', code=errors.ITEM_INACTIVE,
                                    details={'item_id': line.item_id})

        subtotal_cents = sum(items[line.item_id].price_cents * line.quantity for line in payload.items)
        total_cents = subtotal_cents + tax_cents + shipping_cents

        order = Order(
            status=OrderStatus.RECEIVED,
            email=str(payload.email),
            shipping_address=payload.shipping_address,
            subtotal_cents=subtotal_cents,
            tax_cents=tax_cents,
            shipping_cents=shipping_cents,
            total_cents=total_cents,
            currency=currency,
            created_at=now,
            updated_at=now,
        )
        line_items = [
            OrderLineItem(
                item_id=line.item_id,
                title_snapshot=items[line.item_id].title,
                unit_price_cents_snapshot=items[line.item_id].price_cents,
                quantity=line.quantity,
            )
            for line in payload.items
        ]
        order.line_items = line_items
        db.add(order)
        db.flush()

        plan = plan_allocation(
            ((li.id, li.item_id, li.quantity) for li in line_items),
            {item_id: it.quantity_available for item_id, it in items.items()},
        )
        _apply_decrements(db, plan.decrements, now)
        _insert_units(db, order.id, plan, now)

        result = OrderCreated(
            order_id=order.id,
            totals=OrderTotals(subtotal_cents=subtotal_cents, tax_cents=tax_cents,
                               shipping_cents=shipping_cents, total_cents=total_cents, currency=currency),
            line_items=[
                LineItemOut(id=li.id, item_id=li.item_id, quantity=li.quantity,
                            unit_price_cents=li.unit_price_cents_snapshot, title=li.title_snapshot)
                for li in line_items
            ],
            fulfillment=FulfillmentCounts(needs_created=plan.needs_created, needs_shipped=plan.needs_shipped),
        )

    logger.info("order %s created: %s units ready to ship, %s to make",
                result.order_id, plan.needs_shipped, plan.needs_created)
    emit_order_event({
        "type": "order.created",
        "order_id": result.order_id,
        "email": str(payload.email),
        "total_cents": total_cents,
        "currency": currency,
        "needs_created": plan.needs_created,
        "needs_shipped": plan.needs_shipped,
    })
    return result
