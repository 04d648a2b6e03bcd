"""Fulfillment unit transitions.

States move strictly forward: NEEDS_CREATED -> NEEDS_SHIPPED -> SHIPPED.
Each transition locks the unit row before reading its state. Shipping the
last open unit of an order marks the order COMPLETE in the same transaction.
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from handmade_store.core import errors
from handmade_store.core.errors import NotFoundError, StateConflictError, ValidationError
from handmade_store.db.models import FulfillmentState, FulfillmentUnit, Order, OrderStatus, utcnow
from handmade_store.db.session import atomic
from handmade_store.kafka.producer import emit_fulfillment_event
from handmade_store.schemas import UnitShipped, UnitTransition

logger = logging.getLogger(__name__)

NEXT_STATE = {
    FulfillmentState.NEEDS_CREATED: FulfillmentState.NEEDS_SHIPPED,
    FulfillmentState.NEEDS_SHIPPED: FulfillmentState.SHIPPED,
}


def _check_id(unit_id) -> None:
    if not isinstance(unit_id, int) or isinstance(unit_id, bool) or unit_id <= 0:
        raise ValidationError(f'Invalid unit id: {unit_id!r}')


def _lock_unit(db: Session, unit_id: int) -> FulfillmentUnit:
    unit = db.execute(
        select(FulfillmentUnit)
        .where(FulfillmentUnit.id == unit_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if unit is None:
        raise NotFoundError(f'Unit not found: {unit_id}', code=errors.UNIT_NOT_FOUND, details={'unit_id': unit_id})
    return unit


def _advance(unit: FulfillmentUnit, expected: FulfillmentState) -> FulfillmentState:
    if unit.state != expected:
        logger.warning("unit %s: rejected transition from %s", unit.id, unit.state.value)
        raise StateConflictError(f'Invalid transition from {unit.state.value}', code=errors.INVALID_TRANSITION,
                                 details={'unit_id': unit.id, 'state': unit.state.value})
    unit.state = NEXT_STATE[expected]
    return unit.state


def mark_created_done(db: Session, unit_id: int) -> UnitTransition:
    """NEEDS_CREATED -> NEEDS_SHIPPED: the good has been made and can ship."""
    _check_id(unit_id)
    with atomic(db):
        unit = _lock_unit(db, unit_id)
        new_state = _advance(unit, FulfillmentState.NEEDS_CREATED)
        order_id = unit.order_id
    logger.info("unit %s of order %s is ready to ship", unit_id, order_id)
    emit_fulfillment_event({"type": "fulfillment.unit_created", "order_id": order_id, "unit_id": unit_id})
    return UnitTransition(unit_id=unit_id, new_state=new_state)


def mark_shipped(db: Session, unit_id: int, carrier: Optional[str] = None,
                 tracking_number: Optional[str] = None) -> UnitShipped:
    """NEEDS_SHIPPED -> SHIPPED, then recompute the order's status.

    ``carrier`` / ``tracking_number`` replace the stored values only when
    given. The order is COMPLETE once none of its units are unshipped; the
    count is taken fresh inside this transaction.
    """
    _check_id(unit_id)
    with atomic(db):
        now = utcnow()
        unit = _lock_unit(db, unit_id)
        new_state = _advance(unit, FulfillmentState.NEEDS_SHIPPED)
        unit.shipped_at = now
        if carrier is not None:
            unit.carrier = carrier
        if tracking_number is not None:
            unit.tracking_number = tracking_number
        db.flush()

        order_id = unit.order_id
        order = db.execute(
            select(Order).where(Order.id == order_id).with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        unshipped = db.execute(
            select(func.count(FulfillmentUnit.id))
            .where(FulfillmentUnit.order_id == order_id, FulfillmentUnit.state != FulfillmentState.SHIPPED)
        ).scalar_one()
        completed = unshipped == 0 and order.status != OrderStatus.COMPLETE
        if unshipped == 0:
            order.status = OrderStatus.COMPLETE
        order.updated_at = now
        order_status = order.status
        carrier, tracking_number = unit.carrier, unit.tracking_number

    logger.info("unit %s of order %s shipped (%s open units left)", unit_id, order_id, unshipped)
    emit_fulfillment_event({"type": "fulfillment.unit_shipped", "order_id": order_id, "unit_id": unit_id,
                            "carrier": carrier, "tracking_number": tracking_number})
    if completed:
        logger.info("order %s complete", order_id)
        emit_fulfillment_event({"type": "order.completed", "order_id": order_id})
    return UnitShipped(unit_id=unit_id, new_state=new_state, order_id=order_id, order_status=order_status)
