import json
import logging
from kafka import KafkaProducer
from kafka.errors import KafkaError
from handmade_store.core.config import settings

logger = logging.getLogger(__name__)

_producer = None

def _get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=10,
            retries=5,
        )
    return _producer

def send(topic: str, key: str, value: dict):
    """Publish one event. Called only after the owning transaction committed.

    Broker failures are logged and dropped: the change is already stored.
    """
    if not settings.KAFKA_ENABLED:
        logger.debug("kafka disabled, dropping %s event for key %s", value.get("type"), key)
        return
    try:
        p = _get_producer()
        p.send(topic, key=key, value=value)
        p.flush(5)
    except KafkaError:
        logger.exception("failed to publish %s event for key %s to %s", value.get("type"), key, topic)

def emit_order_event(event: dict):
    send(settings.TOPIC_ORDER_EVENTS, key=str(event.get("order_id", "")), value=event)

def emit_fulfillment_event(event: dict):
    send(settings.TOPIC_FULFILLMENT_EVENTS, key=str(event.get("order_id", "")), value=event)
