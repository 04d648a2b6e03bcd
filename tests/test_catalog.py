import pytest

from handmade_store.core.errors import NotFoundError, PersistenceFault, StateConflictError, ValidationError
from handmade_store.db.models import Item, OrderLineItem
from handmade_store.db.session import atomic
from handmade_store.schemas import ItemCreate, ItemImageCreate, ItemImageUpdate, ItemUpdate
from handmade_store.services import allocator, catalog


def test_create_and_list_items(db):
    catalog.create_item(db, ItemCreate(title="Elephant", price_cents=4000, quantity_available=1))
    catalog.create_item(db, ItemCreate(title="Pig Artist", price_cents=4500, active=False))

    assert [i.title for i in catalog.list_items(db)] == ["Elephant", "Pig Artist"]
    assert [i.title for i in catalog.list_items(db, active=True)] == ["Elephant"]
    assert [i.title for i in catalog.list_items(db, active=False)] == ["Pig Artist"]


def test_update_item_changes_only_given_fields(db, make_item):
    item_id = make_item(price_cents=3500, quantity_available=2)

    item = catalog.update_item(db, item_id, ItemUpdate(quantity_available=7, description="Soft"))

    assert item.quantity_available == 7
    assert item.description == "Soft"
    assert item.price_cents == 3500

    item = catalog.update_item(db, item_id, ItemUpdate(description=None))
    assert item.description is None


def test_update_item_refuses_null_required_field(db, make_item):
    item_id = make_item()

    with pytest.raises(ValidationError):
        catalog.update_item(db, item_id, ItemUpdate(title=None))


def test_missing_item_is_not_found(db):
    with pytest.raises(NotFoundError) as exc_info:
        catalog.get_item(db, 31)
    assert exc_info.value.code == "ITEM_NOT_FOUND"


def test_item_with_units_cannot_be_deleted(db, make_item, order_request):
    item_id = make_item(quantity_available=1)
    allocator.create_order(db, order_request((item_id, 1)))

    with pytest.raises(StateConflictError) as exc_info:
        catalog.delete_item(db, item_id)

    assert exc_info.value.code == "ITEM_IN_USE"
    assert db.get(Item, item_id) is not None


def test_unused_item_is_deleted_with_its_images(db, make_item):
    item_id = make_item()
    catalog.add_image(db, item_id, ItemImageCreate(url="https://cdn.example/a.jpg"))

    catalog.delete_item(db, item_id)

    assert db.get(Item, item_id) is None
    assert catalog.list_images(db, item_id) == []


def test_images_sorted_with_unordered_last(db, make_item):
    item_id = make_item()
    loose = catalog.add_image(db, item_id, ItemImageCreate(url="https://cdn.example/loose.jpg"))
    second = catalog.add_image(db, item_id, ItemImageCreate(url="https://cdn.example/2.jpg", sort_order=2))
    first = catalog.add_image(db, item_id, ItemImageCreate(url="https://cdn.example/1.jpg", sort_order=1))

    assert [i.id for i in catalog.list_images(db, item_id)] == [first.id, second.id, loose.id]


def test_image_update_and_delete(db, make_item):
    item_id = make_item()
    img = catalog.add_image(db, item_id, ItemImageCreate(url="https://cdn.example/a.jpg"),
                            object_key="items/abc.jpg")

    img = catalog.update_image(db, img.id, ItemImageUpdate(alt_text="Front view"))
    assert img.alt_text == "Front view"
    assert img.url == "https://cdn.example/a.jpg"

    assert catalog.delete_image(db, img.id) == "items/abc.jpg"
    with pytest.raises(NotFoundError) as exc_info:
        catalog.delete_image(db, img.id)
    assert exc_info.value.code == "IMAGE_NOT_FOUND"


def test_image_for_missing_item_is_not_found(db):
    with pytest.raises(NotFoundError):
        catalog.add_image(db, 77, ItemImageCreate(url="https://cdn.example/a.jpg"))


def test_database_errors_surface_as_persistence_fault(db, make_item):
    item_id = make_item()

    with pytest.raises(PersistenceFault) as exc_info:
        with atomic(db):
            db.add(OrderLineItem(order_id=999, item_id=item_id, title_snapshot="x",
                                 unit_price_cents_snapshot=1, quantity=1))

    assert exc_info.value.status_code == 500
    assert exc_info.value.to_dict()["code"] == "PERSISTENCE_FAULT"
    assert db.get(Item, item_id) is not None
