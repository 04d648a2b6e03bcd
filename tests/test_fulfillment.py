import pytest
from kafka.errors import KafkaTimeoutError
from sqlalchemy import select

from handmade_store.core.config import settings
from handmade_store.core.errors import NotFoundError, StateConflictError, ValidationError
from handmade_store.db.models import FulfillmentState, FulfillmentUnit, Order, OrderStatus
from handmade_store.kafka import producer
from handmade_store.services import allocator, fulfillment


def _unit_ids(db, order_id):
    return db.scalars(
        select(FulfillmentUnit.id).where(FulfillmentUnit.order_id == order_id).order_by(FulfillmentUnit.id)
    ).all()


def _state(db, unit_id):
    return db.scalar(select(FulfillmentUnit.state).where(FulfillmentUnit.id == unit_id))


@pytest.fixture
def made_to_order(db, make_item, order_request):
    """An order of two units, neither in stock."""
    item_id = make_item(quantity_available=0)
    result = allocator.create_order(db, order_request((item_id, 2)))
    return result.order_id, _unit_ids(db, result.order_id)


@pytest.fixture
def in_stock(db, make_item, order_request):
    """An order of two units, both already in stock."""
    item_id = make_item(quantity_available=2)
    result = allocator.create_order(db, order_request((item_id, 2)))
    return result.order_id, _unit_ids(db, result.order_id)


def test_created_done_moves_unit_to_shipping_queue(db, made_to_order):
    _, (unit_id, other_id) = made_to_order

    result = fulfillment.mark_created_done(db, unit_id)

    assert result.unit_id == unit_id
    assert result.new_state == FulfillmentState.NEEDS_SHIPPED
    assert _state(db, unit_id) == FulfillmentState.NEEDS_SHIPPED
    assert _state(db, other_id) == FulfillmentState.NEEDS_CREATED


def test_created_done_on_shipped_unit_is_rejected(db, in_stock):
    _, (unit_id, _) = in_stock
    fulfillment.mark_shipped(db, unit_id)

    with pytest.raises(StateConflictError) as exc_info:
        fulfillment.mark_created_done(db, unit_id)

    assert exc_info.value.code == "INVALID_TRANSITION"
    assert _state(db, unit_id) == FulfillmentState.SHIPPED


def test_created_done_twice_is_rejected(db, made_to_order):
    _, (unit_id, _) = made_to_order
    fulfillment.mark_created_done(db, unit_id)

    with pytest.raises(StateConflictError):
        fulfillment.mark_created_done(db, unit_id)

    assert _state(db, unit_id) == FulfillmentState.NEEDS_SHIPPED


def test_cannot_ship_before_it_is_made(db, made_to_order):
    order_id, (unit_id, _) = made_to_order

    with pytest.raises(StateConflictError) as exc_info:
        fulfillment.mark_shipped(db, unit_id)

    assert exc_info.value.code == "INVALID_TRANSITION"
    assert _state(db, unit_id) == FulfillmentState.NEEDS_CREATED
    assert db.get(Order, order_id).status == OrderStatus.RECEIVED


def test_shipping_last_unit_completes_order(db, in_stock):
    order_id, (first, second) = in_stock

    partial = fulfillment.mark_shipped(db, first)
    assert partial.order_status == OrderStatus.RECEIVED
    assert db.get(Order, order_id).status == OrderStatus.RECEIVED

    done = fulfillment.mark_shipped(db, second)
    assert done.new_state == FulfillmentState.SHIPPED
    assert done.order_id == order_id
    assert done.order_status == OrderStatus.COMPLETE
    assert db.get(Order, order_id).status == OrderStatus.COMPLETE


def test_made_to_order_units_complete_after_both_steps(db, made_to_order):
    order_id, unit_ids = made_to_order

    for unit_id in unit_ids:
        fulfillment.mark_created_done(db, unit_id)
    results = [fulfillment.mark_shipped(db, unit_id) for unit_id in unit_ids]

    assert [r.order_status for r in results] == [OrderStatus.RECEIVED, OrderStatus.COMPLETE]


def test_reshipping_a_shipped_unit_is_rejected(db, in_stock):
    _, (unit_id, _) = in_stock
    fulfillment.mark_shipped(db, unit_id, carrier="USPS", tracking_number="9400111")

    with pytest.raises(StateConflictError) as exc_info:
        fulfillment.mark_shipped(db, unit_id, carrier="UPS", tracking_number="1Z999")

    assert exc_info.value.code == "INVALID_TRANSITION"
    unit = db.get(FulfillmentUnit, unit_id)
    assert unit.carrier == "USPS"
    assert unit.tracking_number == "9400111"


def test_ship_records_time_and_tracking(db, in_stock):
    _, (unit_id, _) = in_stock

    fulfillment.mark_shipped(db, unit_id, carrier="USPS", tracking_number="9400111")

    unit = db.get(FulfillmentUnit, unit_id)
    assert unit.state == FulfillmentState.SHIPPED
    assert unit.shipped_at is not None
    assert (unit.carrier, unit.tracking_number) == ("USPS", "9400111")


def test_ship_without_tracking_keeps_stored_values(db, in_stock):
    _, (unit_id, _) = in_stock
    unit = db.get(FulfillmentUnit, unit_id)
    unit.carrier = "Royal Mail"
    unit.tracking_number = "RM123"
    db.commit()

    fulfillment.mark_shipped(db, unit_id, tracking_number="RM456")

    unit = db.get(FulfillmentUnit, unit_id)
    assert unit.carrier == "Royal Mail"
    assert unit.tracking_number == "RM456"


@pytest.mark.parametrize("transition", [fulfillment.mark_created_done, fulfillment.mark_shipped])
def test_unknown_unit_is_not_found(db, transition):
    with pytest.raises(NotFoundError) as exc_info:
        transition(db, 9999)

    assert exc_info.value.code == "UNIT_NOT_FOUND"


@pytest.mark.parametrize("bad_id", [0, -3, "7", None, True])
def test_malformed_unit_id_is_rejected(db, bad_id):
    with pytest.raises(ValidationError):
        fulfillment.mark_created_done(db, bad_id)
    with pytest.raises(ValidationError):
        fulfillment.mark_shipped(db, bad_id)


def test_completion_event_emitted_once(db, in_stock, monkeypatch):
    order_id, (first, second) = in_stock
    sent = []

    class FakeProducer:
        def send(self, topic, key, value):
            sent.append((topic, value["type"]))

        def flush(self, timeout):
            pass

    monkeypatch.setattr(settings, "KAFKA_ENABLED", True)
    monkeypatch.setattr(producer, "_get_producer", lambda: FakeProducer())

    fulfillment.mark_shipped(db, first)
    fulfillment.mark_shipped(db, second)

    topic = settings.TOPIC_FULFILLMENT_EVENTS
    assert sent == [
        (topic, "fulfillment.unit_shipped"),
        (topic, "fulfillment.unit_shipped"),
        (topic, "order.completed"),
    ]


def test_broker_failure_does_not_fail_shipment(db, in_stock, monkeypatch):
    order_id, (first, _) = in_stock

    class TimingOutProducer:
        def send(self, topic, key, value):
            raise KafkaTimeoutError("metadata not available")

        def flush(self, timeout):
            pass

    monkeypatch.setattr(settings, "KAFKA_ENABLED", True)
    monkeypatch.setattr(producer, "_get_producer", lambda: TimingOutProducer())

    result = fulfillment.mark_shipped(db, first, carrier="USPS")

    assert result.new_state == FulfillmentState.SHIPPED
    assert result.order_id == order_id
    assert _state(db, first) == FulfillmentState.SHIPPED
