# ============================================================
# reports.py — Read-only derivations over bookings and rooms
# ------------------------------------------------------------
# Filtering, pagination, dashboard KPIs, per-room performance,
# revenue trend and the active-bookings board. Nothing here
# writes; callers recompute on every fresh snapshot.
# ============================================================
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from roomdesk.cycle import as_utc, booking_cycle_end, is_overdue, to_local
from roomdesk.errors import ValidationError
from roomdesk.models import Booking, BookingStatus, Room, RoomStatus
from roomdesk.repository import room_sort_key
from roomdesk.settings import LOCAL_TZ, PAGE_SIZE

STATUS_ALL = "All"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Page:
    items: List[Any]
    page: int
    pages: int
    total: int
    page_size: int

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


@dataclass
class Kpis:
    revenue: Decimal
    bookings: int
    occupancy_rate: float
    average_amount: Decimal
    days: int


@dataclass
class ActiveEntry:
    booking: Booking
    cycle_end: Optional[datetime]
    overdue: bool


@dataclass
class ActiveBoard:
    entries: List[ActiveEntry] = field(default_factory=list)

    @property
    def active(self) -> int:
        return len(self.entries)

    @property
    def overdue(self) -> int:
        return sum(1 for e in self.entries if e.overdue)


def _check_in_key(b: Booking):
    return as_utc(b.check_in) or _EPOCH


def filter_bookings(bookings: Sequence[Booking], search: str = "", status: str = STATUS_ALL) -> List[Booking]:
    """Match ``search`` against guest name, phone and room number; newest first."""
    if status and status != STATUS_ALL:
        try:
            wanted = BookingStatus(status)
        except ValueError:
            raise ValidationError(f"unknown booking status: {status}")
    else:
        wanted = None
    term = (search or "").strip().lower()

    rows = []
    for b in bookings:
        if wanted is not None and b.status != wanted:
            continue
        if term and not any(term in str(v or "").lower() for v in (b.guest_name, b.customer_phone, b.room_no)):
            continue
        rows.append(b)
    rows.sort(key=_check_in_key, reverse=True)
    return rows


def paginate(items: Sequence[Any], page: int = 1, page_size: int = PAGE_SIZE) -> Page:
    if page_size < 1:
        raise ValidationError("page size must be positive")
    total = len(items)
    pages = math.ceil(total / page_size)
    if pages == 0:
        return Page(items=[], page=0, pages=0, total=0, page_size=page_size)
    page = min(max(page, 1), pages)
    start = (page - 1) * page_size
    return Page(items=list(items[start:start + page_size]), page=page, pages=pages,
                total=total, page_size=page_size)


def _local_day(dt: Optional[datetime], tz=LOCAL_TZ) -> Optional[date]:
    local = to_local(dt, tz)
    return local.date() if local else None


def bookings_in_range(bookings: Sequence[Booking], start: date, end: date, tz=LOCAL_TZ) -> List[Booking]:
    if start > end:
        raise ValidationError("range start is after range end")
    rows = []
    for b in bookings:
        day = _local_day(b.check_in, tz)
        if day is not None and start <= day <= end:
            rows.append(b)
    return rows


def dashboard_kpis(bookings: Sequence[Booking], rooms: Sequence[Room], start: date, end: date,
                   tz=LOCAL_TZ) -> Kpis:
    """Revenue, count, occupancy and average rate of bookings checked in during [start, end].

    Occupancy is an estimate: bookings in range over room-nights in range.
    """
    rows = bookings_in_range(bookings, start, end, tz)
    days = (end - start).days + 1
    revenue = sum((Decimal(b.amount) for b in rows), Decimal("0"))
    capacity = len(rooms) * days
    occupancy = round(len(rows) * 100 / capacity, 1) if capacity else 0.0
    average = (revenue / len(rows)).quantize(Decimal("0.01")) if rows else Decimal("0")
    return Kpis(revenue=revenue, bookings=len(rows), occupancy_rate=occupancy,
                average_amount=average, days=days)


def room_performance(bookings: Sequence[Booking]) -> List[Dict[str, Any]]:
    stats = defaultdict(lambda: {"bookings": 0, "revenue": Decimal("0")})
    for b in bookings:
        row = stats[str(b.room_no)]
        row["bookings"] += 1
        row["revenue"] += Decimal(b.amount)
    rows = [{"room_no": room_no, **row} for room_no, row in stats.items()]
    rows.sort(key=lambda r: room_sort_key(r["room_no"]))
    rows.sort(key=lambda r: r["revenue"], reverse=True)
    return rows


def revenue_series(bookings: Sequence[Booking], bucket: str = "day", tz=LOCAL_TZ) -> List[Dict[str, Any]]:
    if bucket not in ("day", "month"):
        raise ValidationError(f"unknown bucket: {bucket}")
    totals = defaultdict(lambda: Decimal("0"))
    for b in bookings:
        day = _local_day(b.check_in, tz)
        if day is None:
            continue
        key = day.isoformat() if bucket == "day" else day.strftime("%Y-%m")
        totals[key] += Decimal(b.amount)
    # ISO labels sort chronologically
    return [{"period": k, "revenue": totals[k]} for k in sorted(totals)]


def inventory_summary(rooms: Sequence[Room], bookings: Sequence[Booking], now: Optional[datetime] = None,
                      tz=LOCAL_TZ, recent: int = 5) -> Dict[str, Any]:
    now = as_utc(now) or datetime.now(timezone.utc)
    today = _local_day(now, tz)
    newest = sorted(bookings, key=lambda b: as_utc(b.created_at) or _EPOCH, reverse=True)
    return {
        "total_rooms": len(rooms),
        "available_rooms": sum(1 for r in rooms if r.status == RoomStatus.AVAILABLE),
        "booked_rooms": sum(1 for r in rooms if r.status == RoomStatus.BOOKED),
        "active_bookings": sum(1 for b in bookings if b.status == BookingStatus.ACTIVE),
        "today_bookings": sum(1 for b in bookings if _local_day(b.created_at, tz) == today),
        "total_revenue": sum((Decimal(b.amount) for b in bookings), Decimal("0")),
        "recent": newest[:recent],
    }


def active_board(bookings: Sequence[Booking], now: Optional[datetime] = None) -> ActiveBoard:
    """Active bookings by room number, each with its cycle end and overdue flag."""
    now = as_utc(now) or datetime.now(timezone.utc)
    board = ActiveBoard()
    for b in sorted(bookings, key=lambda b: room_sort_key(b.room_no)):
        if b.status != BookingStatus.ACTIVE:
            continue
        end = booking_cycle_end(b.check_in)
        board.entries.append(ActiveEntry(booking=b, cycle_end=end, overdue=is_overdue(end, now)))
    return board
