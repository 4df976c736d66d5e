# ============================================================
# consumer.py — RabbitMQ consumer for change events
# ------------------------------------------------------------
# Listens on the fanout exchange and refreshes the snapshot of
# every collection touched by the event:
#   - RoomsChanged                      -> rooms
#   - BookingsCreated, BookingCheckedOut -> rooms + bookings
#   - StayExtended                       -> bookings
# ============================================================
import json
import logging
import time

import pika

from roomdesk import settings
from roomdesk.snapshots import feed

logger = logging.getLogger("roomdesk.consumer")

EVENT_COLLECTIONS = {
    "RoomsChanged": ("rooms",),
    "BookingsCreated": ("rooms", "bookings"),
    "BookingCheckedOut": ("rooms", "bookings"),
    "StayExtended": ("bookings",),
}


def dispatch(message: dict, snapshot_feed=None):
    """Refresh the collections touched by ``message``; returns their names."""
    snapshot_feed = snapshot_feed or feed
    collections = EVENT_COLLECTIONS.get(message.get("type"), ())
    for name in collections:
        snapshot_feed.refresh(name)
    return collections


# Callback run for every message received from RabbitMQ
def on_message(ch, method, properties, body):
    try:
        msg = json.loads(body)
    except ValueError as e:
        logger.warning("bad payload: %s", e)
        return
    if not isinstance(msg, dict):
        logger.warning("bad payload: %r", msg)
        return
    logger.debug("received %s payload=%s", msg.get("type"), msg.get("payload"))
    if not dispatch(msg):
        logger.debug("ignoring %s", msg.get("type"))


def start_consumer():
    attempt = 0
    while True:
        try:
            logger.info("connecting to rabbitmq at %s...", settings.RABBITMQ_HOST)
            conn = pika.BlockingConnection(pika.ConnectionParameters(host=settings.RABBITMQ_HOST, heartbeat=60))
            ch = conn.channel()
            ch.exchange_declare(exchange=settings.EVENTS_EXCHANGE, exchange_type="fanout", durable=True)
            # anonymous queue, exclusive to this instance
            q = ch.queue_declare(queue="", exclusive=True).method.queue
            ch.queue_bind(exchange=settings.EVENTS_EXCHANGE, queue=q)
            logger.info("bound to exchange '%s' queue='%s'", settings.EVENTS_EXCHANGE, q)
            attempt = 0
            ch.basic_consume(queue=q, on_message_callback=on_message, auto_ack=True)
            ch.start_consuming()
        except Exception as e:
            attempt += 1
            wait = min(5 * attempt, 30)
            logger.error("connection error: %s, retrying in %ss", e, wait)
            time.sleep(wait)
