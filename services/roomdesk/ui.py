# ============================================================
# ui.py — Staff web interface (FastAPI + Jinja2)
# ------------------------------------------------------------
# Server-rendered pages over the same logic as the JSON API:
#   /                 home
#   /dashboard        KPIs, room performance, revenue trend
#   /rooms            room inventory CRUD
#   /booking          multi-room booking wizard
#   /active-bookings  checkout / already left / extend
#   /all-bookings     searchable history, details, bills
# Domain errors re-render the page with a blocking alert and
# keep the user's input so the action can be retried.
# ============================================================
import base64
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode, urlparse

from fastapi import APIRouter, Depends, Form, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlmodel import Session

from roomdesk import reports, transactions
from roomdesk.api import default_range
from roomdesk.cycle import booking_cycle_end, to_local
from roomdesk.db import get_session
from roomdesk.errors import NotFoundError, RoomDeskError, ValidationError
from roomdesk.inventory import add_room, edit_room, remove_room
from roomdesk.models import BookingRequest, BookingStatus, RoomIn, RoomSelection, RoomType
from roomdesk.repository import BookingRepository, RoomRepository
from roomdesk.settings import BOOKING_START_HOUR, DEFAULT_ROOM_PRICE, HOTEL_NAME, PAGE_SIZE

logger = logging.getLogger("roomdesk.ui")

PREFS_COOKIE = "roomdesk_prefs"

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def fmt_time(dt, missing="N/A"):
    local = to_local(dt)
    return local.strftime("%d %b %Y, %I:%M %p") if local else missing


templates.env.filters["local_time"] = fmt_time

router = APIRouter()


# ------------------------------------------------------------
# UI preferences
# ------------------------------------------------------------
# Theme and sidebar state travel in a cookie and are injected
# into every page; there is no server-side global for them.
# ------------------------------------------------------------
@dataclass
class UIPreferences:
    theme: str = "light"
    sidebar_collapsed: bool = False

    # cookie value is "<theme>:<0|1>"
    @classmethod
    def from_cookie(cls, raw: Optional[str]) -> "UIPreferences":
        theme, _, collapsed = (raw or "").partition(":")
        if theme not in ("light", "dark"):
            theme = "light"
        return cls(theme=theme, sidebar_collapsed=collapsed == "1")

    def to_cookie(self) -> str:
        return f"{self.theme}:{int(self.sidebar_collapsed)}"


def get_preferences(request: Request) -> UIPreferences:
    return UIPreferences.from_cookie(request.cookies.get(PREFS_COOKIE))


def render(request: Request, name: str, prefs: UIPreferences, status_code: int = 200, **context):
    context.setdefault("alert", None)
    context.setdefault("notice", request.query_params.get("notice"))
    context.update(prefs=prefs, hotel_name=HOTEL_NAME, path=request.url.path)
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def alert_for(e: RoomDeskError) -> dict:
    title = "Invalid input" if isinstance(e, ValidationError) else "Error"
    logger.info("%s: %s", type(e).__name__, e.message)
    return {"title": title, "message": e.message, "type": "error"}


def redirect(url: str, notice: Optional[str] = None) -> RedirectResponse:
    if notice:
        url = f"{url}?{urlencode({'notice': notice})}"
    return RedirectResponse(url, status_code=303)


def _local_path(referer: Optional[str]) -> str:
    # only ever send the user back to a page of this app
    path = urlparse(referer or "").path
    if not path.startswith("/") or path.startswith(("//", "/\\")):
        return "/"
    return path


@router.post("/ui/preferences")
def update_preferences(request: Request, toggle: str = Form(...), prefs: UIPreferences = Depends(get_preferences)):
    if toggle == "theme":
        prefs.theme = "dark" if prefs.theme == "light" else "light"
    elif toggle == "sidebar":
        prefs.sidebar_collapsed = not prefs.sidebar_collapsed
    resp = RedirectResponse(_local_path(request.headers.get("referer")), status_code=303)
    resp.set_cookie(PREFS_COOKIE, prefs.to_cookie(), httponly=True, samesite="lax")
    return resp


@router.get("/", response_class=HTMLResponse)
def home(request: Request, prefs: UIPreferences = Depends(get_preferences)):
    return render(request, "home.html", prefs)


# ------------------------------------------------------------
# Dashboard
# ------------------------------------------------------------
@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, start: Optional[date] = None, end: Optional[date] = None, bucket: str = "day",
              s: Session = Depends(get_session), prefs: UIPreferences = Depends(get_preferences)):
    d_start, d_end = default_range()
    start = start or d_start
    end = end or d_end
    rooms = RoomRepository(s).list()
    bookings = BookingRepository(s).list()
    alert = None
    try:
        if bucket not in ("day", "month"):
            raise ValidationError(f"unknown bucket: {bucket}")
        in_range = reports.bookings_in_range(bookings, start, end)
    except ValidationError as e:
        # fall back to the default view
        alert = alert_for(e)
        start, end, bucket = d_start, d_end, "day"
        in_range = reports.bookings_in_range(bookings, start, end)
    series = reports.revenue_series(in_range, bucket)
    peak = max((row["revenue"] for row in series), default=0)
    return render(request, "dashboard.html", prefs, status_code=400 if alert else 200, alert=alert,
                  start=start, end=end, bucket=bucket,
                  kpis=reports.dashboard_kpis(bookings, rooms, start, end),
                  series=series, peak=peak,
                  performance=reports.room_performance(in_range),
                  summary=reports.inventory_summary(rooms, bookings))


# ------------------------------------------------------------
# Rooms
# ------------------------------------------------------------
def _rooms_page(request, s, prefs, status_code=200, alert=None, form=None):
    return render(request, "rooms.html", prefs, status_code=status_code, alert=alert,
                  rooms=RoomRepository(s).list(), room_types=list(RoomType),
                  form=form or {"room_id": "", "room_no": "", "room_type": RoomType.AC.value})


@router.get("/rooms", response_class=HTMLResponse)
def rooms(request: Request, edit: Optional[str] = None, s: Session = Depends(get_session),
          prefs: UIPreferences = Depends(get_preferences)):
    form = None
    if edit:
        room = RoomRepository(s).get(edit)
        if room:
            form = {"room_id": room.id, "room_no": room.room_no, "room_type": room.room_type.value}
    return _rooms_page(request, s, prefs, form=form)


@router.post("/rooms", response_class=HTMLResponse)
def save_room(request: Request, room_no: str = Form(""), room_type: str = Form(RoomType.AC.value),
              room_id: str = Form(""), s: Session = Depends(get_session),
              prefs: UIPreferences = Depends(get_preferences)):
    form = {"room_id": room_id, "room_no": room_no, "room_type": room_type}
    try:
        if room_type not in {t.value for t in RoomType}:
            raise ValidationError(f"unknown room type: {room_type}")
        data = RoomIn(room_no=room_no, room_type=RoomType(room_type))
        if room_id:
            room = edit_room(s, room_id, data)
            notice = f"Room {room.room_no} updated."
        else:
            room = add_room(s, data)
            notice = f"Room {room.room_no} added."
    except RoomDeskError as e:
        return _rooms_page(request, s, prefs, status_code=e.status_code, alert=alert_for(e), form=form)
    return redirect("/rooms", notice)


@router.get("/rooms/{room_id}/delete", response_class=HTMLResponse)
def confirm_delete_room(request: Request, room_id: str, s: Session = Depends(get_session),
                        prefs: UIPreferences = Depends(get_preferences)):
    room = RoomRepository(s).get(room_id)
    if not room:
        return redirect("/rooms", "Room not found.")
    return render(request, "confirm.html", prefs, title="Delete Room",
                  message=f"Delete room {room.room_no}? This cannot be undone.",
                  action=f"/rooms/{room.id}/delete", cancel="/rooms")


@router.post("/rooms/{room_id}/delete")
def delete_room(room_id: str, s: Session = Depends(get_session)):
    try:
        remove_room(s, room_id)
    except NotFoundError:
        return redirect("/rooms", "Room not found.")
    return redirect("/rooms", "Room deleted.")


# ------------------------------------------------------------
# Booking wizard
# ------------------------------------------------------------
# Step 1 picks how many rooms, step 2 picks exactly that many
# available rooms and fills in the guest.
# ------------------------------------------------------------
def _booking_page(request, s, prefs, status_code=200, alert=None, form=None):
    form = form or {}
    form.setdefault("room_count", 0)
    form.setdefault("room_ids", [])
    form.setdefault("persons", {})
    form.setdefault("amounts", {})
    form.setdefault("common_amount", str(DEFAULT_ROOM_PRICE))
    form.setdefault("guest_name", "")
    form.setdefault("customer_phone", "")
    return render(request, "booking.html", prefs, status_code=status_code, alert=alert,
                  rooms=RoomRepository(s).available(), form=form)


@router.get("/booking", response_class=HTMLResponse)
def booking(request: Request, count: int = 0, s: Session = Depends(get_session),
            prefs: UIPreferences = Depends(get_preferences)):
    return _booking_page(request, s, prefs, form={"room_count": max(count, 0)})


async def _read_id_proof(upload) -> str:
    if upload is None or isinstance(upload, str) or not upload.filename:
        return ""
    data = await upload.read()
    if not data:
        return ""
    mime = upload.content_type or "application/octet-stream"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def _int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _submit_booking(request, s, prefs, form, id_proof):
    try:
        selections = []
        for rid in form["room_ids"]:
            raw = str(form["amounts"][rid]).strip()
            amount = transactions.parse_amount(raw, "room amount") if raw else None
            selections.append(RoomSelection(room_id=rid, number_of_persons=_int(form["persons"][rid], 0),
                                            amount=amount))
        common = str(form["common_amount"]).strip()
        req = BookingRequest(
            room_count=form["room_count"],
            selections=selections,
            guest_name=form["guest_name"],
            customer_phone=form["customer_phone"],
            id_proof=id_proof,
            common_amount=transactions.parse_amount(common, "common amount") if common else None,
        )
        created = transactions.create_bookings(s, req)
    except RoomDeskError as e:
        return _booking_page(request, s, prefs, status_code=e.status_code, alert=alert_for(e), form=form)
    rooms_text = ", ".join(b.room_no for b in created)
    return redirect("/booking", f"Booked room(s) {rooms_text} for {created[0].guest_name}.")


# Field names depend on the selected rooms, so the form is read by hand;
# the database work then runs off the event loop.
@router.post("/booking", response_class=HTMLResponse)
async def create_booking(request: Request, s: Session = Depends(get_session),
                         prefs: UIPreferences = Depends(get_preferences)):
    data = await request.form()
    room_ids = [str(v) for v in data.getlist("room_ids")]
    form = {
        "room_count": _int(data.get("room_count")),
        "room_ids": room_ids,
        "persons": {rid: data.get(f"persons_{rid}", "1") for rid in room_ids},
        "amounts": {rid: data.get(f"amount_{rid}", "") for rid in room_ids},
        "common_amount": data.get("common_amount", ""),
        "guest_name": data.get("guest_name", ""),
        "customer_phone": data.get("customer_phone", ""),
    }
    id_proof = await _read_id_proof(data.get("id_proof"))
    return await run_in_threadpool(_submit_booking, request, s, prefs, form, id_proof)


# ------------------------------------------------------------
# Active bookings
# ------------------------------------------------------------
# Overdue stays offer "already left" and "extend"; the others a
# plain checkout. Every action goes through a confirm page.
# ------------------------------------------------------------
def _active_page(request, s, prefs, status_code=200, alert=None):
    board = reports.active_board(BookingRepository(s).list())
    return render(request, "active_bookings.html", prefs, status_code=status_code, alert=alert,
                  board=board, start_hour=BOOKING_START_HOUR)


@router.get("/active-bookings", response_class=HTMLResponse)
def active_bookings(request: Request, s: Session = Depends(get_session),
                    prefs: UIPreferences = Depends(get_preferences)):
    return _active_page(request, s, prefs)


CHECKOUT_ACTIONS = {
    "checkout": ("Confirm Checkout", "Are you sure you want to check out {guest} from room {room}?"),
    "already-left": ("Mark as Already Left",
                     "Mark {guest} in room {room} as checked out at the cycle end time ({end})?"),
}


@router.get("/active-bookings/{booking_id}/{action}", response_class=HTMLResponse)
def confirm_action(request: Request, booking_id: str, action: str, s: Session = Depends(get_session),
                   prefs: UIPreferences = Depends(get_preferences)):
    b = BookingRepository(s).get(booking_id)
    if not b:
        return redirect("/active-bookings", "Booking not found.")
    if action == "extend":
        return render(request, "extend.html", prefs, booking=b, amount=str(b.amount),
                      cycle_end=booking_cycle_end(b.check_in))
    if action not in CHECKOUT_ACTIONS:
        return redirect("/active-bookings")
    title, message = CHECKOUT_ACTIONS[action]
    return render(request, "confirm.html", prefs, title=title,
                  message=message.format(guest=b.guest_name, room=b.room_no,
                                         end=fmt_time(booking_cycle_end(b.check_in))),
                  action=f"/active-bookings/{b.id}/{action}", cancel="/active-bookings")


@router.post("/active-bookings/{booking_id}/checkout", response_class=HTMLResponse)
def do_checkout(request: Request, booking_id: str, s: Session = Depends(get_session),
                prefs: UIPreferences = Depends(get_preferences)):
    try:
        transactions.checkout(s, booking_id)
    except RoomDeskError as e:
        return _active_page(request, s, prefs, status_code=e.status_code, alert=alert_for(e))
    return redirect("/active-bookings", "Guest has been checked out successfully.")


@router.post("/active-bookings/{booking_id}/already-left", response_class=HTMLResponse)
def do_already_left(request: Request, booking_id: str, s: Session = Depends(get_session),
                    prefs: UIPreferences = Depends(get_preferences)):
    try:
        transactions.checkout_at_cycle_end(s, booking_id)
    except RoomDeskError as e:
        return _active_page(request, s, prefs, status_code=e.status_code, alert=alert_for(e))
    return redirect("/active-bookings", "Guest has been marked as checked out.")


@router.post("/active-bookings/{booking_id}/extend", response_class=HTMLResponse)
def do_extend(request: Request, booking_id: str, amount: str = Form(""), s: Session = Depends(get_session),
              prefs: UIPreferences = Depends(get_preferences)):
    try:
        successor = transactions.extend_stay(s, booking_id, amount)
    except ValidationError as e:
        b = BookingRepository(s).get(booking_id)
        if b is None:
            return redirect("/active-bookings", "Booking not found.")
        return render(request, "extend.html", prefs, status_code=400, alert=alert_for(e), booking=b,
                      amount=amount, cycle_end=booking_cycle_end(b.check_in))
    except RoomDeskError as e:
        return _active_page(request, s, prefs, status_code=e.status_code, alert=alert_for(e))
    return redirect("/active-bookings", f"Stay for Room {successor.room_no} has been successfully extended.")


# ------------------------------------------------------------
# All bookings
# ------------------------------------------------------------
@router.get("/all-bookings", response_class=HTMLResponse)
def all_bookings(request: Request, search: str = "", status: str = reports.STATUS_ALL, page: int = 1,
                 s: Session = Depends(get_session), prefs: UIPreferences = Depends(get_preferences)):
    alert = None
    try:
        rows = reports.filter_bookings(BookingRepository(s).list(), search, status)
    except ValidationError as e:
        alert, status = alert_for(e), reports.STATUS_ALL
        rows = reports.filter_bookings(BookingRepository(s).list(), search, status)
    return render(request, "all_bookings.html", prefs, alert=alert, page=reports.paginate(rows, page, PAGE_SIZE),
                  search=search, status=status,
                  statuses=[reports.STATUS_ALL] + [st.value for st in BookingStatus])


@router.get("/all-bookings/{booking_id}", response_class=HTMLResponse)
def booking_details(request: Request, booking_id: str, s: Session = Depends(get_session),
                    prefs: UIPreferences = Depends(get_preferences)):
    b = BookingRepository(s).get(booking_id)
    if not b:
        return redirect("/all-bookings", "Booking not found.")
    return render(request, "booking_details.html", prefs, booking=b)
