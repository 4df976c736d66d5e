from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from conftest import booking_request, local
from roomdesk import transactions
from roomdesk.cycle import as_utc, booking_cycle_end
from roomdesk.errors import ConflictError, NotFoundError, ValidationError
from roomdesk.models import Booking, BookingStatus, Room, RoomStatus
from roomdesk.repository import RoomRepository

NOW = local(2026, 3, 10, 9, 0)


@pytest.fixture
def events(monkeypatch):
    calls = []
    monkeypatch.setattr(transactions, "publish_event", lambda t, p: calls.append((t, p)))
    return calls


def all_bookings(session):
    return session.exec(select(Booking)).all()


def fail_next_commit(session, monkeypatch):
    """The next commit of ``session`` fails the way a locked database does."""
    real = session.commit
    failed = []

    def commit():
        if not failed:
            failed.append(True)
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        return real()
    monkeypatch.setattr(session, "commit", commit)
    return failed


class TestParseAmount:
    @pytest.mark.parametrize("raw", ["abc", "0", "-5", "nan", "Infinity", "", "   ", None, True, "1,000"])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            transactions.parse_amount(raw)

    @pytest.mark.parametrize("raw, expected", [
        ("1500", Decimal("1500.00")),
        (" 99.5 ", Decimal("99.50")),
        (1200, Decimal("1200.00")),
        (Decimal("0.015"), Decimal("0.02")),
    ])
    def test_accepts(self, raw, expected):
        assert transactions.parse_amount(raw) == expected


class TestCreateBookings:
    def test_single_room_scenario(self, session, make_room, events):
        room = make_room(101)
        created = transactions.create_bookings(session, booking_request(room, common="1000"), now=NOW)

        assert len(created) == 1
        b = created[0]
        assert b.status == BookingStatus.ACTIVE
        assert b.amount == Decimal("1000")
        assert b.room_no == "101"
        assert b.check_out is None
        assert as_utc(b.check_in) == as_utc(NOW)
        assert session.get(Room, room.id).status == RoomStatus.BOOKED
        assert [t for t, _ in events] == ["BookingsCreated"]

    def test_per_room_amount_falls_back_to_common_amount(self, session, make_room, events):
        r1, r2 = make_room(1), make_room(2)
        req = booking_request(r1, r2, common="800")
        req.selections[0].amount = Decimal("1200")
        req.selections[1].number_of_persons = 3
        created = transactions.create_bookings(session, req, now=NOW)

        by_room = {b.room_no: b for b in created}
        assert by_room["1"].amount == Decimal("1200")
        assert by_room["2"].amount == Decimal("800")
        assert by_room["2"].number_of_persons == 3
        assert all(b.guest_name == "A" for b in created)
        assert {r.status for r in RoomRepository(session).list()} == {RoomStatus.BOOKED}

    def test_room_taken_meanwhile_aborts_everything(self, session, make_room, events):
        free = make_room(1)
        taken = make_room(2, status=RoomStatus.BOOKED)

        with pytest.raises(ConflictError):
            transactions.create_bookings(session, booking_request(free, taken), now=NOW)

        assert all_bookings(session) == []
        assert session.get(Room, free.id).status == RoomStatus.AVAILABLE
        assert session.get(Room, taken.id).status == RoomStatus.BOOKED
        assert events == []

    def test_deleted_room_is_a_conflict(self, session, make_room, events):
        room = make_room(1)
        req = booking_request(room)
        RoomRepository(session).delete(room.id)
        with pytest.raises(ConflictError):
            transactions.create_bookings(session, req, now=NOW)
        assert all_bookings(session) == []

    def test_second_attempt_on_same_room_fails_cleanly(self, session, make_room, events):
        room = make_room(7)
        transactions.create_bookings(session, booking_request(room, guest="first"), now=NOW)
        with pytest.raises(ConflictError):
            transactions.create_bookings(session, booking_request(room, guest="second"), now=NOW)
        assert [b.guest_name for b in all_bookings(session)] == ["first"]

    @pytest.mark.parametrize("change, message", [
        (lambda r: setattr(r, "room_count", 2), "exactly 2"),
        (lambda r: setattr(r, "guest_name", "  "), "guest name"),
        (lambda r: setattr(r, "customer_phone", ""), "phone"),
        (lambda r: setattr(r, "id_proof", ""), "id proof"),
        (lambda r: setattr(r, "common_amount", Decimal("0")), "positive"),
        (lambda r: setattr(r, "common_amount", None), "required"),
        (lambda r: setattr(r.selections[0], "number_of_persons", 0), "persons"),
    ])
    def test_validation_happens_before_any_write(self, session, make_room, events, change, message):
        room = make_room(1)
        req = booking_request(room)
        change(req)
        with pytest.raises(ValidationError) as exc:
            transactions.create_bookings(session, req, now=NOW)
        assert message in exc.value.message
        assert all_bookings(session) == []
        assert session.get(Room, room.id).status == RoomStatus.AVAILABLE

    def test_needs_at_least_one_room(self, session, events):
        req = booking_request()
        with pytest.raises(ValidationError):
            transactions.create_bookings(session, req, now=NOW)

    def test_same_room_twice_is_rejected(self, session, make_room, events):
        room = make_room(1)
        with pytest.raises(ValidationError):
            transactions.create_bookings(session, booking_request(room, room), now=NOW)

    def test_failed_commit_leaves_no_booking(self, session, make_room, events, monkeypatch):
        r1, r2 = make_room(1), make_room(2)
        fail_next_commit(session, monkeypatch)
        with pytest.raises(ConflictError):
            transactions.create_bookings(session, booking_request(r1, r2), now=NOW)
        assert all_bookings(session) == []
        assert {r.status for r in RoomRepository(session).list()} == {RoomStatus.AVAILABLE}
        assert events == []


class TestExtendStay:
    def _book(self, session, make_room, check_in=NOW):
        room = make_room(101)
        return room, transactions.create_bookings(session, booking_request(room, common="1000"), now=check_in)[0]

    def test_closes_old_and_opens_successor_at_boundary(self, session, make_room, events):
        room, old = self._book(session, make_room, local(2026, 3, 10, 14, 0))
        successor = transactions.extend_stay(session, old.id, "1500", now=local(2026, 3, 11, 12, 30))

        session.refresh(old)
        boundary = local(2026, 3, 11, 12, 0)
        assert old.status == BookingStatus.EXTENDED
        assert as_utc(old.check_out) == as_utc(boundary)
        assert successor.status == BookingStatus.ACTIVE
        assert as_utc(successor.check_in) == as_utc(old.check_out)
        assert successor.check_out is None
        assert successor.amount == Decimal("1500")
        assert (successor.guest_name, successor.customer_phone, successor.room_id, successor.id_proof) == \
            (old.guest_name, old.customer_phone, old.room_id, old.id_proof)
        assert successor.id != old.id
        assert events[-1][0] == "StayExtended"

    def test_room_is_untouched(self, session, make_room, events):
        room, old = self._book(session, make_room)
        transactions.extend_stay(session, old.id, 900)
        assert session.get(Room, room.id).status == RoomStatus.BOOKED

    def test_exactly_one_extended_and_one_active(self, session, make_room, events):
        _, old = self._book(session, make_room)
        transactions.extend_stay(session, old.id, "1000")
        statuses = sorted(b.status.value for b in all_bookings(session))
        assert statuses == ["Active", "Extended"]

    def test_successor_can_be_extended_again(self, session, make_room, events):
        _, old = self._book(session, make_room, local(2026, 3, 10, 9, 0))
        second = transactions.extend_stay(session, old.id, "1000")
        third = transactions.extend_stay(session, second.id, "1000")
        assert as_utc(second.check_in) == as_utc(local(2026, 3, 10, 12, 0))
        assert as_utc(third.check_in) == as_utc(local(2026, 3, 11, 12, 0))

    @pytest.mark.parametrize("amount", ["abc", "0", "-100", ""])
    def test_bad_amount_writes_nothing(self, session, make_room, events, amount):
        _, old = self._book(session, make_room)
        with pytest.raises(ValidationError):
            transactions.extend_stay(session, old.id, amount)
        assert len(all_bookings(session)) == 1
        session.refresh(old)
        assert old.status == BookingStatus.ACTIVE

    def test_only_active_bookings_extend(self, session, make_room, events):
        _, old = self._book(session, make_room)
        transactions.extend_stay(session, old.id, "1000")
        with pytest.raises(ConflictError):
            transactions.extend_stay(session, old.id, "1000")
        assert len(all_bookings(session)) == 2

    def test_unknown_booking(self, session, events):
        with pytest.raises(NotFoundError):
            transactions.extend_stay(session, "nope", "1000")

    def test_failed_commit_keeps_booking_active(self, session, make_room, events, monkeypatch):
        _, b = self._book(session, make_room)
        fail_next_commit(session, monkeypatch)
        with pytest.raises(ConflictError):
            transactions.extend_stay(session, b.id, "1000")
        assert [x.status for x in all_bookings(session)] == [BookingStatus.ACTIVE]
        assert [t for t, _ in events] == ["BookingsCreated"]


class TestCheckout:
    def _book(self, session, make_room):
        room = make_room(5)
        return room, transactions.create_bookings(session, booking_request(room), now=NOW)[0]

    def test_immediate_checkout_frees_room(self, session, make_room, events):
        room, b = self._book(session, make_room)
        out = local(2026, 3, 10, 11, 15)
        transactions.checkout(session, b.id, now=out)

        session.refresh(b)
        assert b.status == BookingStatus.COMPLETED
        assert as_utc(b.check_out) == as_utc(out)
        assert session.get(Room, room.id).status == RoomStatus.AVAILABLE
        assert events[-1] == ("BookingCheckedOut", {"bookingId": b.id, "roomId": room.id})

    def test_already_left_closes_at_cycle_end(self, session, make_room, events):
        room, b = self._book(session, make_room)
        transactions.checkout_at_cycle_end(session, b.id)

        session.refresh(b)
        assert b.status == BookingStatus.COMPLETED
        assert as_utc(b.check_out) == as_utc(booking_cycle_end(NOW))
        assert session.get(Room, room.id).status == RoomStatus.AVAILABLE

    def test_second_checkout_is_rejected_and_room_untouched(self, session, make_room, events):
        room, b = self._book(session, make_room)
        transactions.checkout(session, b.id, now=NOW + timedelta(hours=1))
        # someone books the room again before the stale checkout arrives
        room.status = RoomStatus.BOOKED
        session.commit()

        with pytest.raises(ConflictError):
            transactions.checkout(session, b.id)
        assert session.get(Room, room.id).status == RoomStatus.BOOKED

    def test_extended_booking_cannot_be_checked_out(self, session, make_room, events):
        _, b = self._book(session, make_room)
        transactions.extend_stay(session, b.id, "1000")
        with pytest.raises(ConflictError):
            transactions.checkout_at_cycle_end(session, b.id)

    def test_booking_of_deleted_room_still_closes(self, session, make_room, events):
        room, b = self._book(session, make_room)
        RoomRepository(session).delete(room.id)
        transactions.checkout(session, b.id)
        session.refresh(b)
        assert b.status == BookingStatus.COMPLETED

    def test_unknown_booking(self, session, events):
        with pytest.raises(NotFoundError):
            transactions.checkout(session, "missing")

    @pytest.mark.parametrize("close", [
        lambda s, b: transactions.checkout(s, b.id, now=NOW + timedelta(hours=2)),
        lambda s, b: transactions.checkout_at_cycle_end(s, b.id),
    ])
    def test_failed_commit_changes_neither_booking_nor_room(self, session, make_room, events, monkeypatch, close):
        room, b = self._book(session, make_room)
        fail_next_commit(session, monkeypatch)
        with pytest.raises(ConflictError):
            close(session, b)

        session.refresh(b)
        assert b.status == BookingStatus.ACTIVE
        assert b.check_out is None
        assert session.get(Room, room.id).status == RoomStatus.BOOKED
        assert [t for t, _ in events] == ["BookingsCreated"]

        # a retry goes through once the store is healthy again
        transactions.checkout(session, b.id)
        assert session.get(Room, room.id).status == RoomStatus.AVAILABLE
