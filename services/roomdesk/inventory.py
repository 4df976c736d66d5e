# ============================================================
# inventory.py — Room inventory writes
# ------------------------------------------------------------
# Thin layer over RoomRepository that announces every change so
# live room snapshots get refreshed.
# ============================================================
from sqlmodel import Session

from roomdesk.models import Room, RoomIn
from roomdesk.publisher import publish_event
from roomdesk.repository import RoomRepository


def add_room(session: Session, data: RoomIn) -> Room:
    room = RoomRepository(session).create(data)
    publish_event("RoomsChanged", {"roomId": room.id, "action": "created"})
    return room


def edit_room(session: Session, room_id: str, data: RoomIn) -> Room:
    room = RoomRepository(session).update(room_id, data)
    publish_event("RoomsChanged", {"roomId": room.id, "action": "updated"})
    return room


def remove_room(session: Session, room_id: str) -> None:
    RoomRepository(session).delete(room_id)
    publish_event("RoomsChanged", {"roomId": room_id, "action": "deleted"})
