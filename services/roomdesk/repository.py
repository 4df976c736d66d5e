# ============================================================
# repository.py — Data access for rooms and bookings
# ------------------------------------------------------------
# Repository pattern over the Room and Booking tables. Used by
# the JSON API, the HTML UI and the snapshot loaders. Writes
# that span several rows live in transactions.py instead.
# ============================================================
import logging
import re
from typing import List, Optional

from sqlmodel import Session, select

from roomdesk.errors import NotFoundError, ValidationError
from roomdesk.models import Booking, BookingStatus, BookingSummary, Room, RoomIn, RoomStatus, RoomType

logger = logging.getLogger("roomdesk.repository")

_NUMERIC = re.compile(r"^\s*\d+\s*$")


def room_sort_key(room_no):
    """Order room labels numerically when they are numbers, else by text."""
    label = str(room_no)
    if _NUMERIC.match(label):
        return (0, int(label), "")
    return (1, 0, label.lower())


def clean_room(data: RoomIn) -> RoomIn:
    room_no = str(data.room_no or "").strip()
    if not room_no:
        raise ValidationError("room number is required")
    try:
        room_type = RoomType(data.room_type)
    except ValueError:
        raise ValidationError(f"unknown room type: {data.room_type}")
    return RoomIn(room_no=room_no, room_type=room_type)


class RoomRepository:
    def __init__(self, session: Session):
        self.session = session

    def list(self) -> List[Room]:
        rooms = self.session.exec(select(Room)).all()
        return sorted(rooms, key=lambda r: room_sort_key(r.room_no))

    def get(self, room_id: str) -> Optional[Room]:
        return self.session.get(Room, room_id)

    def require(self, room_id: str) -> Room:
        room = self.get(room_id)
        if not room:
            raise NotFoundError(f"room {room_id} not found")
        return room

    def available(self) -> List[Room]:
        return [r for r in self.list() if r.status == RoomStatus.AVAILABLE]

    def create(self, data: RoomIn) -> Room:
        data = clean_room(data)
        # new rooms always start out free
        room = Room(room_no=data.room_no, room_type=data.room_type, status=RoomStatus.AVAILABLE)
        self.session.add(room)
        self.session.commit()
        self.session.refresh(room)
        logger.info("room %s created (%s)", room.room_no, room.id)
        return room

    def update(self, room_id: str, data: RoomIn) -> Room:
        data = clean_room(data)
        room = self.require(room_id)
        room.room_no = data.room_no
        room.room_type = data.room_type
        self.session.commit()
        self.session.refresh(room)
        logger.info("room %s updated (%s)", room.room_no, room.id)
        return room

    def delete(self, room_id: str) -> None:
        # no check for an active booking: a booking may keep a dangling room_id
        room = self.require(room_id)
        self.session.delete(room)
        self.session.commit()
        logger.info("room %s deleted (%s)", room.room_no, room_id)


class BookingRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, booking_id: str) -> Optional[Booking]:
        return self.session.get(Booking, booking_id)

    def require(self, booking_id: str) -> Booking:
        b = self.get(booking_id)
        if not b:
            raise NotFoundError(f"booking {booking_id} not found")
        return b

    def list(self) -> List[Booking]:
        return list(self.session.exec(select(Booking)).all())

    def by_status(self, status: BookingStatus) -> List[Booking]:
        return list(self.session.exec(select(Booking).where(Booking.status == status)).all())

    def summaries(self) -> List[BookingSummary]:
        # id_proof is never read here
        cols = [c for c in Booking.__table__.c if c.name != "id_proof"]
        return [BookingSummary(**row._mapping) for row in self.session.exec(select(*cols)).all()]
