"""
Customer export generators.

`to_csv` and `to_pdf` are independent pure transforms over the same input
(an ordered sequence of CustomerRecord) and share nothing but that contract.
Both build their output in memory; nothing touches the filesystem.
"""
from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from datetime import datetime

from reportlab.lib.pagesizes import letter
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas as pdfcanvas

from app.crm.errors import EmptyInputError
from app.crm.modules.customers.models import CustomerRecord

CSV_HEADER = ["ID", "First Name", "Last Name", "Email", "Phone", "Address", "Date Created"]
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# PDF layout. Coordinates are measured top-down from the page edge and
# flipped to reportlab's bottom-up space when drawn.
PAGE_WIDTH, PAGE_HEIGHT = letter
MARGIN = 50
TITLE_TOP = 50
GENERATED_TOP = 90
TABLE_TOP = 150
ROW_HEIGHT = 30
PAGE_CONTENT_LIMIT = 700  # start a new page once the cursor passes this
RULE_LEFT, RULE_RIGHT = 50, 550

# (title, x, width)
PDF_COLUMNS = (
    ("ID", 50, 30),
    ("Name", 85, 120),
    ("Email", 210, 150),
    ("Phone", 365, 100),
)

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


def export_filename(ext: str, now: datetime | None = None) -> str:
    ts = (now or datetime.utcnow()).strftime("%Y%m%d%H%M%S")
    return f"customers_{ts}.{ext}"


def to_csv(records: Sequence[CustomerRecord]) -> bytes:
    """Header row plus one row per record, in input order. Empty input is an error."""
    if not records:
        raise EmptyInputError()

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(CSV_HEADER)
    for r in records:
        w.writerow(
            [
                r.id,
                r.first_name,
                r.last_name,
                r.email,
                r.phone,
                r.address,
                r.created_at.strftime(DATE_FORMAT),
            ]
        )
    return out.getvalue().encode("utf-8")


def _fit(text: str, font: str, size: float, width: float) -> str:
    """Clip `text` so it renders within `width` points."""
    if stringWidth(text, font, size) <= width:
        return text
    ellipsis = "..."
    while text and stringWidth(text + ellipsis, font, size) > width:
        text = text[:-1]
    return text + ellipsis


def _draw_text(c: pdfcanvas.Canvas, x: float, top: float, text: str, font: str, size: float) -> None:
    c.setFont(font, size)
    c.drawString(x, PAGE_HEIGHT - top - size, text)


def _draw_centred(c: pdfcanvas.Canvas, top: float, text: str, font: str, size: float) -> None:
    c.setFont(font, size)
    c.drawCentredString(PAGE_WIDTH / 2, PAGE_HEIGHT - top - size, text)


def _draw_rule(c: pdfcanvas.Canvas, top: float) -> None:
    c.line(RULE_LEFT, PAGE_HEIGHT - top, RULE_RIGHT, PAGE_HEIGHT - top)


def _draw_row(c: pdfcanvas.Canvas, top: float, cells: Sequence[str], font: str, size: float) -> None:
    for (_, x, width), value in zip(PDF_COLUMNS, cells):
        _draw_text(c, x, top, _fit(value, font, size, width), font, size)


def to_pdf(records: Sequence[CustomerRecord], *, generated_at: datetime | None = None) -> bytes:
    """
    Paginated customer table: title, generation time, header row, one row per
    record with a rule between rows, and a "Total Customers: N" footer.

    Continuation pages carry no repeated header. Empty input yields a valid
    document with an empty table.
    """
    generated_at = generated_at or datetime.utcnow()
    buf = io.BytesIO()
    c = pdfcanvas.Canvas(buf, pagesize=letter)
    c.setTitle("Customer List")

    _draw_centred(c, TITLE_TOP, "Customer List", FONT, 20)
    _draw_centred(c, GENERATED_TOP, f"Generated on: {generated_at.strftime(DATE_FORMAT)} UTC", FONT, 10)

    y = TABLE_TOP
    _draw_row(c, y, [title for title, _, _ in PDF_COLUMNS], FONT_BOLD, 10)
    _draw_rule(c, y + 15)
    y += ROW_HEIGHT

    last = len(records) - 1
    for i, r in enumerate(records):
        if y > PAGE_CONTENT_LIMIT:
            c.showPage()
            y = MARGIN
        _draw_row(c, y, [str(r.id), r.full_name, r.email, r.phone], FONT, 9)
        y += ROW_HEIGHT
        if i < last:
            _draw_rule(c, y - 15)

    footer_top = y + 20
    if footer_top > PAGE_HEIGHT - MARGIN:
        c.showPage()
        footer_top = MARGIN
    _draw_centred(c, footer_top, f"Total Customers: {len(records)}", FONT, 8)

    c.showPage()
    c.save()
    return buf.getvalue()
