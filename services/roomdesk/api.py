# ============================================================
# Room Desk API Router
# ------------------------------------------------------------
# JSON endpoints for the room inventory, the booking lifecycle
# (create / extend / checkout), listings, the dashboard, bills
# and the live snapshot streams. Domain errors are mapped to
# HTTP statuses by the handlers registered in app.py.
# ============================================================
import asyncio
import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from sqlmodel import Session

from roomdesk import reports, transactions
from roomdesk.bill import bill_filename, render_bill
from roomdesk.cycle import to_local
from roomdesk.db import get_session
from roomdesk.errors import NotFoundError
from roomdesk.inventory import add_room, edit_room, remove_room
from roomdesk.models import Booking, BookingRequest, ExtendRequest, Room, RoomIn
from roomdesk.repository import BookingRepository, RoomRepository
from roomdesk.settings import PAGE_SIZE
from roomdesk.snapshots import feed

logger = logging.getLogger("roomdesk.api")

router = APIRouter(prefix="/v1")

KEEPALIVE_SECONDS = 15


def booking_row(b: Booking) -> dict:
    # listings leave out the embedded id image
    return b.model_dump(exclude={"id_proof"})


def content_disposition(filename: str) -> str:
    # header values are latin-1 on the wire: plain ASCII fallback plus RFC 5987 form
    fallback = "".join(c if c.isascii() and c.isprintable() and c not in '"\\' else "_" for c in filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


# ------------------------------------------------------------
# Rooms
# ------------------------------------------------------------
@router.get("/rooms", response_model=List[Room])
def list_rooms(s: Session = Depends(get_session)):
    return RoomRepository(s).list()


@router.post("/rooms", response_model=Room, status_code=201)
def create_room(data: RoomIn, s: Session = Depends(get_session)):
    return add_room(s, data)


@router.put("/rooms/{room_id}", response_model=Room)
def update_room(room_id: str, data: RoomIn, s: Session = Depends(get_session)):
    return edit_room(s, room_id, data)


@router.delete("/rooms/{room_id}", status_code=204)
def delete_room(room_id: str, s: Session = Depends(get_session)):
    remove_room(s, room_id)
    return Response(status_code=204)


# ------------------------------------------------------------
# Bookings
# ------------------------------------------------------------
@router.get("/bookings")
def list_bookings(search: str = "", status: str = reports.STATUS_ALL, page: int = 1,
                  s: Session = Depends(get_session)):
    rows = reports.filter_bookings(BookingRepository(s).list(), search, status)
    pg = reports.paginate(rows, page, PAGE_SIZE)
    return {
        "items": [booking_row(b) for b in pg.items],
        "page": pg.page,
        "pages": pg.pages,
        "total": pg.total,
        "page_size": pg.page_size,
    }


@router.get("/bookings/active")
def active_bookings(s: Session = Depends(get_session)):
    board = reports.active_board(BookingRepository(s).list())
    return {
        "active": board.active,
        "overdue": board.overdue,
        "entries": [
            {"booking": booking_row(e.booking), "cycle_end": e.cycle_end, "overdue": e.overdue}
            for e in board.entries
        ],
    }


@router.get("/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str, s: Session = Depends(get_session)):
    return BookingRepository(s).require(booking_id)


@router.post("/bookings", response_model=List[Booking], status_code=201)
def create_bookings(req: BookingRequest, s: Session = Depends(get_session)):
    return transactions.create_bookings(s, req)


@router.post("/bookings/{booking_id}/extend", response_model=Booking, status_code=201)
def extend_stay(booking_id: str, body: ExtendRequest, s: Session = Depends(get_session)):
    return transactions.extend_stay(s, booking_id, body.amount)


@router.post("/bookings/{booking_id}/checkout", response_model=Booking)
def checkout(booking_id: str, s: Session = Depends(get_session)):
    return transactions.checkout(s, booking_id)


@router.post("/bookings/{booking_id}/checkout-at-cycle-end", response_model=Booking)
def checkout_at_cycle_end(booking_id: str, s: Session = Depends(get_session)):
    return transactions.checkout_at_cycle_end(s, booking_id)


@router.get("/bookings/{booking_id}/bill")
def download_bill(booking_id: str, s: Session = Depends(get_session)):
    b = BookingRepository(s).require(booking_id)
    return Response(
        content=render_bill(b),
        media_type="application/pdf",
        headers={"Content-Disposition": content_disposition(bill_filename(b))},
    )


# ------------------------------------------------------------
# Dashboard
# ------------------------------------------------------------
# Range defaults to the last 30 local days, today included.
# ------------------------------------------------------------
def default_range(today: Optional[date] = None):
    today = today or to_local(datetime.now(timezone.utc)).date()
    return today - timedelta(days=29), today


@router.get("/dashboard")
def dashboard(start: Optional[date] = None, end: Optional[date] = None, bucket: str = "day",
              s: Session = Depends(get_session)):
    d_start, d_end = default_range()
    start = start or d_start
    end = end or d_end
    rooms = RoomRepository(s).list()
    bookings = BookingRepository(s).list()
    in_range = reports.bookings_in_range(bookings, start, end)
    summary = reports.inventory_summary(rooms, bookings)
    summary["recent"] = [booking_row(b) for b in summary["recent"]]
    return {
        "start": start,
        "end": end,
        "kpis": reports.dashboard_kpis(bookings, rooms, start, end),
        "room_performance": reports.room_performance(in_range),
        "revenue_series": reports.revenue_series(in_range, bucket),
        "summary": summary,
    }


# ------------------------------------------------------------
# GET /v1/stream/{collection} — live snapshots (Server-Sent Events)
# ------------------------------------------------------------
# One full snapshot right away, then one per change.
# ------------------------------------------------------------
def _sse(snapshot) -> str:
    return f"data: {json.dumps(jsonable_encoder(snapshot))}\n\n"


@router.get("/stream/{collection}")
async def stream(collection: str, request: Request):
    if collection not in feed.collections:
        raise NotFoundError(f"unknown collection {collection!r}")

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(snapshot):
        # called from worker / consumer threads
        loop.call_soon_threadsafe(queue.put_nowait, snapshot)

    unsubscribe = feed.subscribe(collection, push)
    logger.info("stream opened for %s (%d subscribers)", collection, feed.subscriber_count(collection))
    initial = await run_in_threadpool(feed.load, collection)

    async def events():
        try:
            if initial is not None:
                yield _sse(initial)
            while not await request.is_disconnected():
                try:
                    snapshot = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield _sse(snapshot)
        finally:
            unsubscribe()

    return StreamingResponse(events(), media_type="text/event-stream")
