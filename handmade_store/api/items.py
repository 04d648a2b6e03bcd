from fastapi import APIRouter, Depends, UploadFile, File, Form, Response
from typing import List, Optional
from sqlalchemy.orm import Session
from handmade_store.api.deps import get_db
from handmade_store.core.auth import require_admin
from handmade_store.schemas import ItemCreate, ItemUpdate, ItemRead, ItemImageCreate, ItemImageUpdate, ItemImageRead
from handmade_store.services import catalog
from handmade_store.services.storage import upload_bytes, remove_object

router = APIRouter(dependencies=[Depends(require_admin)])

@router.get('/', response_model=List[ItemRead])
def list_items(active: Optional[bool] = None, db: Session = Depends(get_db)):
    return catalog.list_items(db, active=active)

@router.get('/{item_id}', response_model=ItemRead)
def get_item(item_id: int, db: Session = Depends(get_db)):
    return catalog.get_item(db, item_id)

@router.post('/', response_model=ItemRead, status_code=201)
def create_item(payload: ItemCreate, db: Session = Depends(get_db)):
    return catalog.create_item(db, payload)

@router.patch('/{item_id}', response_model=ItemRead)
def update_item(item_id: int, payload: ItemUpdate, db: Session = Depends(get_db)):
    return catalog.update_item(db, item_id, payload)

@router.delete('/{item_id}', status_code=204)
def delete_item(item_id: int, db: Session = Depends(get_db)):
    catalog.delete_item(db, item_id)
    return Response(status_code=204)

# ---------- images ----------

@router.get('/{item_id}/images', response_model=List[ItemImageRead])
def list_images(item_id: int, db: Session = Depends(get_db)):
    return catalog.list_images(db, item_id)

@router.post('/{item_id}/images', response_model=ItemImageRead, status_code=201)
def add_image(item_id: int, payload: ItemImageCreate, db: Session = Depends(get_db)):
    return catalog.add_image(db, item_id, payload)

@router.post('/{item_id}/images/upload', response_model=ItemImageRead, status_code=201)
async def upload_image(item_id: int, file: UploadFile = File(...), sort_order: Optional[int] = Form(default=None),
                       alt_text: Optional[str] = Form(default=None), db: Session = Depends(get_db)):
    catalog.get_item(db, item_id)
    content = await file.read(); ext = '.' + file.filename.rsplit('.',1)[-1].lower() if file.filename and '.' in file.filename else ''
    key, url = upload_bytes(content, file.content_type or 'application/octet-stream', ext=ext)
    return catalog.add_image(db, item_id, ItemImageCreate(url=url, sort_order=sort_order, alt_text=alt_text), object_key=key)

@router.patch('/images/{image_id}', response_model=ItemImageRead)
def update_image(image_id: int, payload: ItemImageUpdate, db: Session = Depends(get_db)):
    return catalog.update_image(db, image_id, payload)

@router.delete('/images/{image_id}', status_code=204)
def delete_image(image_id: int, db: Session = Depends(get_db)):
    key = catalog.delete_image(db, image_id)
    if key:
        remove_object(key)
    return Response(status_code=204)
