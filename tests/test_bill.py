import re
from decimal import Decimal

from conftest import local
from roomdesk.bill import bill_filename, bill_lines, render_bill
from roomdesk.models import Booking, BookingStatus


def make_booking(**kw):
    data = dict(id="abcdef0123456789", room_id="r1", room_no="101", guest_name="Asha (VIP)",
                number_of_persons=2, amount=Decimal("2500.00"), check_in=local(2026, 3, 10, 9, 5),
                status=BookingStatus.ACTIVE)
    data.update(kw)
    return Booking(**data)


def test_pdf_structure():
    pdf = render_bill(make_booking(), hotel_name="SBA Rooms")
    assert pdf.startswith(b"%PDF-1.4\n")
    assert pdf.endswith(b"%%EOF\n")
    startxref = int(re.search(rb"startxref\n(\d+)\n", pdf).group(1))
    assert pdf[startxref:startxref + 4] == b"xref"
    # every xref entry points at its object header
    offsets = [int(m) for m in re.findall(rb"(\d{10}) 00000 n ", pdf)]
    for i, off in enumerate(offsets, start=1):
        assert pdf[off:].startswith(f"{i} 0 obj".encode())


def test_bill_contents():
    pdf = render_bill(make_booking(), hotel_name="SBA Rooms")
    for text in (b"(SBA Rooms)", b"(Invoice / Bill)", b"(abcdef0123456789)", b"(101)",
                 b"(Number of Persons:)", b"(2)", b"(Total Amount Paid: Rs. 2500.00)",
                 b"(Not Checked Out)", b"(Thank you for your stay at SBA Rooms!)"):
        assert text in pdf
    assert b"(Asha \\(VIP\\))" in pdf


def test_lines_use_local_times():
    b = make_booking(check_out=local(2026, 3, 11, 12, 0), status=BookingStatus.COMPLETED)
    lines = dict(bill_lines(b))
    assert lines["Check-In"] == "10 Mar 2026, 09:05 AM"
    assert lines["Check-Out"] == "11 Mar 2026, 12:00 PM"


def test_same_booking_same_bytes():
    assert render_bill(make_booking()) == render_bill(make_booking())


def test_filename():
    assert bill_filename(make_booking(), hotel_name="SBA Rooms") == "SBA-Rooms-Bill-101-abcde.pdf"
