"""Admin catalog management: items and their images.

Stock set here is what the allocator later draws from. Deleting an item is
refused while fulfillment units still reference it.
"""
import logging
from typing import List, Optional

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from handmade_store.core import errors
from handmade_store.core.errors import NotFoundError, StateConflictError, ValidationError
from handmade_store.db.models import FulfillmentUnit, Item, ItemImage, utcnow
from handmade_store.db.session import atomic
from handmade_store.schemas import ItemCreate, ItemImageCreate, ItemImageUpdate, ItemUpdate

logger = logging.getLogger(__name__)

NULLABLE_ITEM_FIELDS = {"description", "make_time_minutes"}


def list_items(db: Session, active: Optional[bool] = None) -> List[Item]:
    stmt = select(Item).order_by(Item.id.asc())
    if active is not None:
        stmt = stmt.where(Item.active == active)
    return db.execute(stmt).scalars().all()


def get_item(db: Session, item_id: int, for_update: bool = False) -> Item:
    obj = db.get(Item, item_id, with_for_update=for_update)
    if not obj:
        raise NotFoundError(f'Item not found: {item_id}', code=errors.ITEM_NOT_FOUND)
    return obj


def create_item(db: Session, payload: ItemCreate) -> Item:
    with atomic(db):
        now = utcnow()
        obj = Item(**payload.model_dump(), created_at=now, updated_at=now)
        db.add(obj)
    db.refresh(obj)
    logger.info("item %s created with %s in stock", obj.id, obj.quantity_available)
    return obj


def update_item(db: Session, item_id: int, payload: ItemUpdate) -> Item:
    changes = payload.model_dump(exclude_unset=True)
    for k, v in changes.items():
        if v is None and k not in NULLABLE_ITEM_FIELDS:
            raise ValidationError(f"{k} cannot be null")
    with atomic(db):
        # row lock: stock edits wait for in-flight allocations
        obj = get_item(db, item_id, for_update=True)
        for k, v in changes.items():
            setattr(obj, k, v)
        obj.updated_at = utcnow()
    db.refresh(obj)
    return obj


def delete_item(db: Session, item_id: int) -> None:
    with atomic(db):
        obj = get_item(db, item_id)
        in_use = db.execute(select(exists().where(FulfillmentUnit.item_id == item_id))).scalar()
        if in_use:
            raise StateConflictError(f'Item {item_id} is referenced by fulfillment units',
                                     code=errors.ITEM_IN_USE, details={'item_id': item_id})
        db.delete(obj)
    logger.info("item %s deleted", item_id)


# ---------- images ----------

def list_images(db: Session, item_id: int) -> List[ItemImage]:
    stmt = (
        select(ItemImage)
        .where(ItemImage.item_id == item_id)
        .order_by(ItemImage.sort_order.is_(None), ItemImage.sort_order.asc(), ItemImage.id.asc())
    )
    return db.execute(stmt).scalars().all()


def add_image(db: Session, item_id: int, payload: ItemImageCreate, object_key: Optional[str] = None) -> ItemImage:
    with atomic(db):
        get_item(db, item_id)
        img = ItemImage(item_id=item_id, object_key=object_key, **payload.model_dump())
        db.add(img)
    db.refresh(img)
    return img


def _get_image(db: Session, image_id: int) -> ItemImage:
    img = db.get(ItemImage, image_id)
    if not img:
        raise NotFoundError(f'Image not found: {image_id}', code=errors.IMAGE_NOT_FOUND)
    return img


def update_image(db: Session, image_id: int, payload: ItemImageUpdate) -> ItemImage:
    with atomic(db):
        img = _get_image(db, image_id)
        for k, v in payload.model_dump(exclude_unset=True).items():
            setattr(img, k, v)
    db.refresh(img)
    return img


def delete_image(db: Session, image_id: int) -> Optional[str]:
    """Delete the row; returns the stored object key, if any, for cleanup."""
    with atomic(db):
        img = _get_image(db, image_id)
        key = img.object_key
        db.delete(img)
    return key
