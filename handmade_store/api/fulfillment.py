from fastapi import APIRouter, Depends, Query
from typing import Optional
from sqlalchemy.orm import Session
from handmade_store.api.deps import get_db
from handmade_store.core import errors
from handmade_store.core.auth import require_admin
from handmade_store.core.errors import NotFoundError
from handmade_store.db.models import FulfillmentState, OrderStatus
from handmade_store.schemas import OrderDetail, OrderSummaryPage, QueuePage, ShipRequest, UnitShipped, UnitTransition
from handmade_store.services import fulfillment, queries

router = APIRouter(dependencies=[Depends(require_admin)])

@router.get("/queue", response_model=QueuePage)
def get_queue(state: FulfillmentState, limit: Optional[int] = None, offset: Optional[int] = None,
              db: Session = Depends(get_db)):
    rows = queries.get_queue(db, state, limit=limit, offset=offset)
    return QueuePage(state=state, count=len(rows), rows=rows)

@router.get("/orders", response_model=OrderSummaryPage)
def list_orders(status: Optional[OrderStatus] = None, order_id: Optional[int] = Query(default=None, ge=1),
                email: Optional[str] = None, limit: Optional[int] = None, offset: Optional[int] = None,
                db: Session = Depends(get_db)):
    rows = queries.get_order_summaries(db, status=status, order_id=order_id, email_query=email,
                                       limit=limit, offset=offset)
    return OrderSummaryPage(count=len(rows), rows=rows)

@router.get("/orders/{order_id}", response_model=OrderDetail)
def get_order(order_id: int, db: Session = Depends(get_db)):
    detail = queries.get_order_detail(db, order_id)
    if detail is None:
        raise NotFoundError("Order not found", code=errors.ORDER_NOT_FOUND, details={"order_id": order_id})
    return detail

@router.patch("/units/{unit_id}/created-done", response_model=UnitTransition)
def mark_created_done(unit_id: int, db: Session = Depends(get_db)):
    return fulfillment.mark_created_done(db, unit_id)

@router.patch("/units/{unit_id}/ship", response_model=UnitShipped)
def mark_shipped(unit_id: int, payload: Optional[ShipRequest] = None, db: Session = Depends(get_db)):
    payload = payload or ShipRequest()
    return fulfillment.mark_shipped(db, unit_id, carrier=payload.carrier, tracking_number=payload.tracking_number)
