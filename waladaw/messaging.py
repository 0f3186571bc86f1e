from __future__ import annotations

import json
import logging

import pika

from .config import EVENTS_ENABLED, EVENTS_EXCHANGE, RABBITMQ_URL

logger = logging.getLogger(__name__)

PRODUCT_CREATED = "product.created"
PURCHASE_CREATED = "purchase.created"


def _connect() -> pika.BlockingConnection:
    params = pika.URLParameters(RABBITMQ_URL)
    params.heartbeat = 30
    params.blocked_connection_timeout = 30
    return pika.BlockingConnection(params)


def publish_event(routing_key: str, payload: dict) -> None:
    connection = _connect()
    try:
        ch = connection.channel()
        ch.exchange_declare(exchange=EVENTS_EXCHANGE, exchange_type="topic", durable=True)
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        ch.basic_publish(
            exchange=EVENTS_EXCHANGE,
            routing_key=routing_key,
            body=body,
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=2,
            ),
        )
    finally:
        connection.close()


def notify(routing_key: str, payload: dict) -> bool:
    """Publish an event without letting a broker outage fail the request.

    Returns True when the event was handed to the broker.
    """
    if not EVENTS_ENABLED:
        logger.debug("Events disabled, dropping %s", routing_key)
        return False
    try:
        publish_event(routing_key, payload)
    except Exception:
        logger.exception("Failed to publish %s", routing_key)
        return False
    return True
