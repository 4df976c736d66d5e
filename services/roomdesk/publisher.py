# ============================================================
# publisher.py — Change events
# ------------------------------------------------------------
# Every committed write announces itself on the fanout exchange
# so that every running instance refreshes its live snapshots.
#
#   - event_type : event name (RoomsChanged, BookingsCreated, ...)
#   - payload    : small JSON-able dict
#
# Without a configured broker the message is dispatched locally.
# ============================================================
import json
import logging

import pika
from pika.exceptions import AMQPError

from roomdesk import settings
from roomdesk.consumer import dispatch

logger = logging.getLogger("roomdesk.publisher")


def publish_event(event_type: str, payload: dict):
    message = {"type": event_type, "payload": payload}
    if not settings.RABBITMQ_HOST:
        dispatch(message)
        return
    try:
        conn = pika.BlockingConnection(pika.ConnectionParameters(host=settings.RABBITMQ_HOST))
        try:
            ch = conn.channel()
            # durable so the exchange survives broker restarts
            ch.exchange_declare(exchange=settings.EVENTS_EXCHANGE, exchange_type="fanout", durable=True)
            ch.basic_publish(exchange=settings.EVENTS_EXCHANGE, routing_key="", body=json.dumps(message))
        finally:
            conn.close()
    except AMQPError:
        # the write is already committed; keep this instance fresh at least
        logger.exception("could not publish %s, dispatching locally", event_type)
        dispatch(message)
        return
    logger.info("%s %s", event_type, payload)
