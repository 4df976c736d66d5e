from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from roomdesk import db, settings
from roomdesk.models import BookingRequest, RoomIn, RoomSelection, RoomStatus, RoomType
from roomdesk.repository import RoomRepository

IST = settings.LOCAL_TZ
PROOF = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def engine(monkeypatch):
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    # snapshot loaders and startup use the module-level engine
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(settings, "RABBITMQ_HOST", None)
    return engine


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def client(engine):
    from roomdesk.app import app

    def override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[db.get_session] = override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_room(session):
    def make(room_no, room_type=RoomType.AC, status=RoomStatus.AVAILABLE):
        room = RoomRepository(session).create(RoomIn(room_no=str(room_no), room_type=room_type))
        if status != RoomStatus.AVAILABLE:
            room.status = status
            session.commit()
            session.refresh(room)
        return room
    return make


def booking_request(*rooms, amount=None, common="1000", guest="A", phone="9999900000", persons=1):
    return BookingRequest(
        room_count=len(rooms),
        selections=[RoomSelection(room_id=r.id, number_of_persons=persons, amount=amount) for r in rooms],
        guest_name=guest,
        customer_phone=phone,
        id_proof=PROOF,
        common_amount=common,
    )


def local(*args):
    return datetime(*args, tzinfo=IST)
