from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from handmade_store.api.deps import get_db
from handmade_store.core.config import settings
from handmade_store.schemas import OrderCreate, OrderCreated
from handmade_store.services import allocator

router = APIRouter()

def enforce_order_limits(payload: OrderCreate):
    """Storefront ordering caps; larger orders go through the shop directly."""
    total_units = sum(max(it.quantity, 0) for it in payload.items)
    if total_units > settings.MAX_TOTAL_ORDER_ITEMS:
        raise HTTPException(status_code=400, detail=f"Order is limited to {settings.MAX_TOTAL_ORDER_ITEMS} total items")
    for it in payload.items:
        if it.quantity > settings.MAX_QUANTITY_PER_ITEM:
            raise HTTPException(status_code=400, detail=f"Cannot order more than {settings.MAX_QUANTITY_PER_ITEM} of the same item")

# Payment capture happens upstream; this is only called once it succeeded.
@router.post("/v1/orders", response_model=OrderCreated, status_code=201)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    enforce_order_limits(payload)
    return allocator.create_order(db, payload)
