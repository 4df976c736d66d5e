# ============================================================
# settings.py — Service configuration
# ------------------------------------------------------------
# All knobs are read once from the environment at import time.
# Unset RABBITMQ_HOST means change events stay in-process.
# ============================================================
import os
from zoneinfo import ZoneInfo

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./roomdesk.db")

RABBITMQ_HOST = os.getenv("RABBITMQ_HOST") or None
EVENTS_EXCHANGE = os.getenv("EVENTS_EXCHANGE", "roomdesk.events")

LOCAL_TZ = ZoneInfo(os.getenv("LOCAL_TZ", "Asia/Kolkata"))

# hour of day at which a daily booking cycle starts (and ends)
BOOKING_START_HOUR = int(os.getenv("BOOKING_START_HOUR", "12"))
if not 0 <= BOOKING_START_HOUR <= 23:
    raise ValueError(f"BOOKING_START_HOUR out of range: {BOOKING_START_HOUR}")

PAGE_SIZE = int(os.getenv("PAGE_SIZE", "10"))
DEFAULT_ROOM_PRICE = int(os.getenv("DEFAULT_ROOM_PRICE", "2000"))
HOTEL_NAME = os.getenv("HOTEL_NAME", "SBA Rooms")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
