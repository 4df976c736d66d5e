"""
Room Desk - Guest bill
======================
Renders the bill of one booking as a single-page PDF.

Implementation: a minimal PDF 1.4 writer with the built-in Helvetica fonts,
so no font embedding is needed. Text outside latin-1 is replaced with '?'.
Same booking -> same bytes.
"""

from __future__ import annotations

import io
from typing import Any, List, Optional

from roomdesk.cycle import to_local
from roomdesk.models import Booking
from roomdesk.settings import HOTEL_NAME

TIME_FORMAT = "%d %b %Y, %I:%M %p"


def _pdf_str(value: Any) -> str:
    """Encode a value as a PDF literal string (parentheses form)."""
    text = str(value) if value is not None else ""
    text = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
    safe = "".join(c if ord(c) < 256 else "?" for c in text)
    return f"({safe})"


def _fmt_time(dt, missing: str) -> str:
    local = to_local(dt)
    return local.strftime(TIME_FORMAT) if local else missing


class _BillPage:
    """
    One A4 page of text lines and rules.

    Object layout:
      1: Catalog  2: Pages  3: Page  4: Content stream
      5: Helvetica  6: Helvetica-Bold
    """

    PAGE_W = 595
    PAGE_H = 842
    MARGIN_LEFT = 56
    MARGIN_RIGHT = 56

    def __init__(self):
        self._ops: List[str] = []

    def text(self, x: float, y: float, value: Any, *, size: int = 12, bold: bool = False) -> None:
        font = "/F2" if bold else "/F1"
        self._ops.append(f"BT {font} {size} Tf {x:.2f} {y:.2f} Td {_pdf_str(value)} Tj ET")

    def centered(self, y: float, value: Any, *, size: int = 12, bold: bool = False) -> None:
        # Helvetica averages roughly half an em per glyph
        width = len(str(value)) * size * 0.5
        self.text((self.PAGE_W - width) / 2, y, value, size=size, bold=bold)

    def rule(self, y: float) -> None:
        self._ops.append(f"{self.MARGIN_LEFT} {y:.2f} m {self.PAGE_W - self.MARGIN_RIGHT} {y:.2f} l S")

    def build(self) -> bytes:
        stream = "\n".join(self._ops).encode("latin-1")
        objects = [
            b"<< /Type /Catalog /Pages 2 0 R >>",
            b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
            (f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {self.PAGE_W} {self.PAGE_H}] "
             f"/Contents 4 0 R /Resources << /Font << /F1 5 0 R /F2 6 0 R >> >> >>").encode("latin-1"),
            f"<< /Length {len(stream)} >>\nstream\n".encode("latin-1") + stream + b"\nendstream",
            b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
            b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica-Bold /Encoding /WinAnsiEncoding >>",
        ]
        buf = io.BytesIO()
        buf.write(b"%PDF-1.4\n")
        offsets = []
        for i, body in enumerate(objects, start=1):
            offsets.append(buf.tell())
            buf.write(f"{i} 0 obj\n".encode("latin-1") + body + b"\nendobj\n")
        xref = buf.tell()
        buf.write(f"xref\n0 {len(objects) + 1}\n".encode("latin-1"))
        buf.write(b"0000000000 65535 f \n")
        for off in offsets:
            buf.write(f"{off:010d} 00000 n \n".encode("latin-1"))
        buf.write(f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n".encode("latin-1"))
        buf.write(f"startxref\n{xref}\n%%EOF\n".encode("latin-1"))
        return buf.getvalue()


def bill_lines(booking: Booking) -> List[tuple]:
    """Label/value rows printed on the bill, in order."""
    return [
        ("Booking ID", booking.id),
        ("Room No", booking.room_no),
        ("Guest Name", booking.guest_name),
        ("Number of Persons", booking.number_of_persons),
        ("Check-In", _fmt_time(booking.check_in, "N/A")),
        ("Check-Out", _fmt_time(booking.check_out, "Not Checked Out")),
    ]


def render_bill(booking: Booking, hotel_name: Optional[str] = None) -> bytes:
    hotel_name = hotel_name or HOTEL_NAME
    page = _BillPage()
    top = page.PAGE_H - 60
    page.centered(top, hotel_name, size=22, bold=True)
    page.centered(top - 28, "Invoice / Bill", size=16)

    y = top - 70
    for label, value in bill_lines(booking):
        page.text(page.MARGIN_LEFT, y, f"{label}:", bold=True)
        page.text(page.MARGIN_LEFT + 140, y, value)
        y -= 22

    page.rule(y)
    y -= 28
    page.text(page.MARGIN_LEFT, y, f"Total Amount Paid: Rs. {booking.amount}", size=14, bold=True)
    page.centered(y - 40, f"Thank you for your stay at {hotel_name}!", size=10)
    return page.build()


def bill_filename(booking: Booking, hotel_name: Optional[str] = None) -> str:
    prefix = (hotel_name or HOTEL_NAME).replace(" ", "-")
    return f"{prefix}-Bill-{booking.room_no}-{booking.id[:5]}.pdf"
