"""Daily booking cycle arithmetic.

A booking runs in daily cycles that start and end at a fixed hour of the
local day (``BOOKING_START_HOUR``). A guest who checks in before that hour
is due out the same day at the hour; a guest who checks in at or after it
is due out the next day. A stay is overdue once "now" is strictly past the
boundary.

Stored timestamps are UTC; naive values coming back from the database are
treated as UTC.
"""
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from roomdesk.settings import BOOKING_START_HOUR, LOCAL_TZ


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: Optional[datetime], tz=LOCAL_TZ) -> Optional[datetime]:
    if dt is None:
        return None
    return as_utc(dt).astimezone(tz)


def booking_cycle_end(check_in: Optional[datetime], start_hour: int = BOOKING_START_HOUR,
                      tz=LOCAL_TZ) -> Optional[datetime]:
    """Return the instant at which the cycle containing ``check_in`` ends.

    The result is an aware datetime in ``tz``, or ``None`` when there is no
    check-in. A check-in exactly at ``start_hour`` rolls to the next day.
    """
    if check_in is None:
        return None
    local = to_local(check_in, tz)
    day = local.date()
    if local.hour >= start_hour:
        day += timedelta(days=1)
    # combine on the calendar day so DST shifts keep the wall-clock hour
    return datetime.combine(day, time(hour=start_hour), tzinfo=tz)


def is_overdue(cycle_end: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when ``now`` is strictly later than ``cycle_end``."""
    if cycle_end is None:
        return False
    if now is None:
        now = datetime.now(timezone.utc)
    return as_utc(now) > as_utc(cycle_end)
