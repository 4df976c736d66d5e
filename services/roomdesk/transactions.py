# ============================================================
# transactions.py — Multi-row booking writes
# ------------------------------------------------------------
# Each procedure runs in a single database transaction: either
# every row changes or none does.
#   - create_bookings       : N rooms Available -> Booked + N bookings
#   - extend_stay           : old booking -> Extended + successor
#   - checkout              : booking -> Completed now, room freed
#   - checkout_at_cycle_end : same, closed at the cycle boundary
# Status flips are conditional updates, so a row changed by a
# concurrent client makes the whole transaction fail cleanly.
# ============================================================
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from roomdesk.cycle import as_utc, booking_cycle_end
from roomdesk.errors import ConflictError, ValidationError
from roomdesk.models import Booking, BookingRequest, BookingStatus, Room, RoomStatus, utcnow
from roomdesk.publisher import publish_event
from roomdesk.repository import BookingRepository

logger = logging.getLogger("roomdesk.transactions")

CENTS = Decimal("0.01")


def parse_amount(value, what: str = "amount") -> Decimal:
    """Parse a positive currency amount, rejecting anything else."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{what} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{what} is required")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"{what} must be a number, got {text!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{what} must be a positive number")
    return amount.quantize(CENTS)


def _commit(session: Session, what: str):
    try:
        session.commit()
    except OperationalError as e:
        session.rollback()
        logger.warning("%s failed on commit: %s", what, e)
        raise ConflictError(f"{what} failed because of a concurrent change, please retry") from e


# ------------------------------------------------------------
# Booking creation
# ------------------------------------------------------------
# Validation happens up front; nothing is written on a
# ValidationError. A room that is no longer Available aborts
# the whole batch.
# ------------------------------------------------------------
def _validate_request(req: BookingRequest):
    if not req.selections:
        raise ValidationError("select at least one room")
    if len(req.selections) != req.room_count:
        raise ValidationError(
            f"select exactly {req.room_count} room(s), {len(req.selections)} selected")
    room_ids = [sel.room_id for sel in req.selections]
    if len(set(room_ids)) != len(room_ids):
        raise ValidationError("a room was selected twice")
    if not req.guest_name.strip():
        raise ValidationError("guest name is required")
    if not req.customer_phone.strip():
        raise ValidationError("customer phone is required")
    if not req.id_proof:
        raise ValidationError("id proof image is required")

    plan = []
    for sel in req.selections:
        if sel.number_of_persons < 1:
            raise ValidationError("number of persons must be at least 1")
        raw = sel.amount if sel.amount is not None else req.common_amount
        plan.append((sel, parse_amount(raw, "amount")))
    return plan


def create_bookings(session: Session, req: BookingRequest, now: Optional[datetime] = None) -> List[Booking]:
    plan = _validate_request(req)
    now = as_utc(now) or utcnow()

    created = []
    try:
        for sel, amount in plan:
            result = session.execute(
                update(Room)
                .where(Room.id == sel.room_id, Room.status == RoomStatus.AVAILABLE)
                .values(status=RoomStatus.BOOKED)
            )
            if result.rowcount != 1:
                raise ConflictError(f"room {sel.room_id} is no longer available")
            room = session.get(Room, sel.room_id)
            booking = Booking(
                room_id=room.id,
                room_no=room.room_no,
                guest_name=req.guest_name.strip(),
                customer_phone=req.customer_phone.strip(),
                number_of_persons=sel.number_of_persons,
                id_proof=req.id_proof,
                amount=amount,
                check_in=now,
                check_out=None,
                status=BookingStatus.ACTIVE,
                created_at=now,
            )
            session.add(booking)
            created.append(booking)
    except ConflictError as e:
        session.rollback()
        logger.warning("booking for %s rejected: %s", req.guest_name, e.message)
        raise
    _commit(session, "booking")

    for b in created:
        session.refresh(b)
    logger.info("booked %d room(s) for %s: %s", len(created), req.guest_name,
                ", ".join(b.room_no for b in created))
    publish_event("BookingsCreated", {
        "bookingIds": [b.id for b in created],
        "roomIds": [b.room_id for b in created],
    })
    return created


# ------------------------------------------------------------
# Stay extension
# ------------------------------------------------------------
# The old booking closes at its cycle boundary and the successor
# opens at that same instant. The room is never touched.
# ------------------------------------------------------------
def extend_stay(session: Session, booking_id: str, new_amount, now: Optional[datetime] = None) -> Booking:
    amount = parse_amount(new_amount, "extension amount")
    now = as_utc(now) or utcnow()

    old = BookingRepository(session).require(booking_id)
    if old.status != BookingStatus.ACTIVE:
        raise ConflictError(f"booking {booking_id} is {old.status.value}, not Active")
    boundary = as_utc(booking_cycle_end(old.check_in))

    result = session.execute(
        update(Booking)
        .where(Booking.id == old.id, Booking.status == BookingStatus.ACTIVE)
        .values(status=BookingStatus.EXTENDED, check_out=boundary)
    )
    if result.rowcount != 1:
        session.rollback()
        raise ConflictError(f"booking {booking_id} was changed by someone else")

    successor = Booking(
        room_id=old.room_id,
        room_no=old.room_no,
        guest_name=old.guest_name,
        customer_phone=old.customer_phone,
        number_of_persons=old.number_of_persons,
        id_proof=old.id_proof,
        amount=amount,
        check_in=boundary,
        check_out=None,
        status=BookingStatus.ACTIVE,
        created_at=now,
    )
    session.add(successor)
    _commit(session, "extension")
    session.refresh(successor)

    logger.info("room %s extended: %s -> %s from %s", old.room_no, old.id, successor.id, boundary.isoformat())
    publish_event("StayExtended", {"bookingId": old.id, "successorId": successor.id, "roomId": old.room_id})
    return successor


# ------------------------------------------------------------
# Checkouts
# ------------------------------------------------------------
# Booking and room are written in the same transaction. A room
# that was deleted meanwhile is skipped; the booking still closes.
# ------------------------------------------------------------
def _close(session: Session, booking: Booking, check_out: datetime) -> Booking:
    result = session.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == BookingStatus.ACTIVE)
        .values(status=BookingStatus.COMPLETED, check_out=check_out)
    )
    if result.rowcount != 1:
        session.rollback()
        raise ConflictError(f"booking {booking.id} is no longer active")
    freed = session.execute(
        update(Room).where(Room.id == booking.room_id).values(status=RoomStatus.AVAILABLE)
    )
    if freed.rowcount == 0:
        logger.warning("room %s of booking %s no longer exists", booking.room_no, booking.id)
    _commit(session, "checkout")
    session.refresh(booking)

    logger.info("room %s checked out at %s (%s)", booking.room_no, check_out.isoformat(), booking.id)
    publish_event("BookingCheckedOut", {"bookingId": booking.id, "roomId": booking.room_id})
    return booking


def checkout(session: Session, booking_id: str, now: Optional[datetime] = None) -> Booking:
    booking = BookingRepository(session).require(booking_id)
    return _close(session, booking, as_utc(now) or utcnow())


def checkout_at_cycle_end(session: Session, booking_id: str) -> Booking:
    """Close a booking at its cycle boundary, for guests who already left."""
    booking = BookingRepository(session).require(booking_id)
    return _close(session, booking, as_utc(booking_cycle_end(booking.check_in)))
