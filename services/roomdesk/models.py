# ============================================================
# models.py — SQLModel data models (Room Desk)
# ------------------------------------------------------------
# Tables:
#   1. Room    : a sellable room of the inventory
#   2. Booking : one daily-cycle stay of a guest in a room
# Request bodies of the JSON API live here as well.
# ============================================================
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

from sqlmodel import Field, SQLModel


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoomType(str, Enum):
    AC = "AC"
    NON_AC = "Non-AC"
    BOTH = "Both"


class RoomStatus(str, Enum):
    AVAILABLE = "Available"
    BOOKED = "Booked"


class BookingStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    EXTENDED = "Extended"


# ------------------------------------------------------------
# Room
# ------------------------------------------------------------
# room_no is a display label; uniqueness is not enforced.
# status is only flipped by booking transactions and checkouts.
# ------------------------------------------------------------
class Room(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    room_no: str = Field(index=True)
    room_type: RoomType = RoomType.AC
    status: RoomStatus = RoomStatus.AVAILABLE


# ------------------------------------------------------------
# Booking
# ------------------------------------------------------------
# Lifecycle: Active -> Completed (checkout)
#            Active -> Extended  (superseded by a successor booking)
# room_no is a denormalized copy; room_id may dangle once the
# room is deleted.
# ------------------------------------------------------------
class Booking(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    room_id: str = Field(index=True)
    room_no: str
    guest_name: str
    customer_phone: str = ""
    number_of_persons: int = 1
    id_proof: str = ""
    amount: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    check_in: datetime
    check_out: Optional[datetime] = None
    status: BookingStatus = Field(default=BookingStatus.ACTIVE, index=True)
    created_at: datetime = Field(default_factory=utcnow)


# Booking without the id image, as pushed to live subscribers.
class BookingSummary(SQLModel):
    id: str
    room_id: str
    room_no: str
    guest_name: str
    customer_phone: str = ""
    number_of_persons: int = 1
    amount: Decimal
    check_in: datetime
    check_out: Optional[datetime] = None
    status: BookingStatus
    created_at: datetime


# Request bodies

class RoomIn(SQLModel):
    room_no: str
    room_type: RoomType = RoomType.AC


class RoomSelection(SQLModel):
    room_id: str
    number_of_persons: int = 1
    amount: Optional[Decimal] = None


class BookingRequest(SQLModel):
    room_count: int
    selections: List[RoomSelection]
    guest_name: str = ""
    customer_phone: str = ""
    id_proof: str = ""
    common_amount: Optional[Decimal] = None


class ExtendRequest(SQLModel):
    amount: Union[Decimal, str]
