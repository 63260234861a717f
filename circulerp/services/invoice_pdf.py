"""
Invoice PDF layout.

Two rendering modes:

* overlay: field values are drawn on top of an uploaded PDF template. Positions
  are expressed in an A4 reference frame (595 x 842 pt, measured from the
  top-left corner) and scaled independently on X and Y to the template's real
  page size.
* scratch: a complete A4 invoice drawn on a fixed grid. Page 1 carries the
  header, client block and line-item table; the last page carries terms and
  payment details.
"""

import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from pypdf import PageObject, PdfReader, PdfWriter
from reportlab.lib.colors import Color, HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas
import structlog

from circulerp.schemas.invoice_document import InvoiceData, LineItem

logger = structlog.get_logger()

REFERENCE_WIDTH = 595.0
REFERENCE_HEIGHT = 842.0

TEAL = HexColor("#00A651")
DARK = HexColor("#333333")
MID = HexColor("#888888")
WHITE = HexColor("#FFFFFF")
RULE = HexColor("#DDDDDD")
STRIPE = HexColor("#F7F7F7")
TERMS_FILL = HexColor("#F5F5F5")

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
# Helvetica ascender, in em
ASCENT = 0.718

DEFAULT_COMPANY_NAME = "TripleW BV"

MARGIN_LEFT = 40
MARGIN_RIGHT = 555
CONTENT_WIDTH = 515
PAGE_TOP = 40
PAGE_BREAK_Y = 780
FOOTER_Y = 810

HEADER_ROW_HEIGHT = 20
ROW_HEIGHT = 18
TOTAL_ROW_HEIGHT = 22


@dataclass(frozen=True)
class Column:
    label: str
    width: float
    align: str


COLUMNS = (
    Column("Line", 28, "center"),
    Column("Reference", 72, "left"),
    Column("Commercial names", 148, "left"),
    Column("Packaging", 67, "left"),
    Column("Qty (lb)", 58, "right"),
    Column("Price/lb USD", 68, "right"),
    Column("Total USD", 74, "right"),
)
TABLE_WIDTH = sum(c.width for c in COLUMNS)

# Overlay reference positions (A4 frame, top-left origin)
OVERLAY_ITEM_X = (44, 73, 145, 293, 360, 416, 478)
OVERLAY_INFO_COLUMN_WIDTH = 125
OVERLAY_TABLE_TOP = 358
OVERLAY_ROW_HEIGHT = 18

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_quantity(value: Optional[float]) -> str:
    return f"{value:,.2f}" if value else ""


def format_price(value: Optional[float]) -> str:
    return f"{value:.4f}" if value else ""


def format_amount(value: Optional[float]) -> str:
    return f"{value:,.2f}" if value else ""


def format_grand_total(total: float) -> str:
    return f"USD {total:,.2f}"


def line_total(item: LineItem) -> float:
    return (item.quantity_lb or 0) * (item.price_per_lb or 0)


def grand_total(items: Sequence[LineItem]) -> float:
    return sum(line_total(item) for item in items)


def row_values(item: LineItem, index: int) -> list[str]:
    """Cell texts for one table row, in column order."""
    return [
        str(item.line if item.line is not None else index + 1),
        item.reference or "",
        item.commercial_name or "",
        item.packaging or "",
        format_quantity(item.quantity_lb),
        format_price(item.price_per_lb),
        format_amount(line_total(item)),
    ]


def invoice_filename(invoice_number: Optional[str]) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", invoice_number or "invoice") + ".pdf"


@dataclass
class RenderedInvoice:
    content: bytes
    filename: str
    mode: str


# ---------------------------------------------------------------------------
# Overlay mode
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextPlacement:
    text: str
    x: float
    y: float  # distance from the top edge of the page
    size: float
    bold: bool = False
    color: Color = DARK


@dataclass(frozen=True)
class OverlayFrame:
    scale_x: float
    scale_y: float

    @classmethod
    def for_page(cls, width: float, height: float) -> "OverlayFrame":
        return cls(width / REFERENCE_WIDTH, height / REFERENCE_HEIGHT)

    def sx(self, x: float) -> float:
        return x * self.scale_x

    def sy(self, y: float) -> float:
        return y * self.scale_y


def first_page_placements(data: InvoiceData, frame: OverlayFrame) -> list[TextPlacement]:
    placements = [
        TextPlacement(data.invoice_number or "", frame.sx(45), frame.sy(155), 12, bold=True),
    ]

    info_col_w = OVERLAY_INFO_COLUMN_WIDTH * frame.scale_x
    info_values = (data.invoice_date, data.sq_number, data.ref_number, data.po_number)
    for i, value in enumerate(info_values):
        x = frame.sx(43) + i * (info_col_w + frame.sx(8))
        placements.append(TextPlacement(value or "", x, frame.sy(232), 9))

    placements.append(TextPlacement(data.contact_person or "", frame.sx(43), frame.sy(296), 10))
    placements.append(
        TextPlacement(data.client_name or "", frame.sx(300), frame.sy(296), 10, bold=True)
    )
    if data.billing_address:
        for i, line in enumerate(data.billing_address.split("\n")):
            placements.append(TextPlacement(line, frame.sx(300), frame.sy(310 + i * 12), 8.5))

    table_top = frame.sy(OVERLAY_TABLE_TOP)
    row_h = frame.sy(OVERLAY_ROW_HEIGHT)
    for idx, item in enumerate(data.items):
        row_y = table_top + idx * row_h + frame.sy(5)
        for x, text in zip(OVERLAY_ITEM_X, row_values(item, idx)):
            placements.append(TextPlacement(text, frame.sx(x), row_y, 8))

    total_y = table_top + len(data.items) * row_h + frame.sy(6)
    placements.append(
        TextPlacement(
            format_grand_total(grand_total(data.items)),
            frame.sx(470),
            total_y,
            9,
            bold=True,
            color=WHITE,
        )
    )
    return placements


def second_page_placements(data: InvoiceData, frame: OverlayFrame) -> list[TextPlacement]:
    """Terms and bank values. ``frame`` keeps page 1's X scale and page 2's Y scale."""
    terms = (
        data.payment_terms,
        data.description,
        data.incoterm,
        data.delivery,
        data.requested_delivery_date,
        data.remarks,
    )
    bank = (data.bank_name, data.iban, data.bic, data.bank_address)

    placements = [
        TextPlacement(value or "", frame.sx(180), frame.sy(70 + i * 18), 8.5)
        for i, value in enumerate(terms)
    ]
    placements.extend(
        TextPlacement(value or "", frame.sx(105), frame.sy(243 + i * 20), 9)
        for i, value in enumerate(bank)
    )
    return placements


def _overlay_page(width: float, height: float, placements: list[TextPlacement]) -> PageObject:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(width, height))
    for p in placements:
        if not p.text:
            continue
        c.setFont(FONT_BOLD if p.bold else FONT, p.size)
        c.setFillColor(p.color)
        c.drawString(p.x, height - p.y, p.text)
    c.showPage()
    c.save()
    buffer.seek(0)
    return PdfReader(buffer).pages[0]


def render_overlay(data: InvoiceData, template: bytes) -> bytes:
    reader = PdfReader(io.BytesIO(template))
    if not reader.pages:
        raise ValueError("Template PDF has no pages")

    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)

    page1 = writer.pages[0]
    w1, h1 = float(page1.mediabox.width), float(page1.mediabox.height)
    frame1 = OverlayFrame.for_page(w1, h1)
    page1.merge_page(_overlay_page(w1, h1, first_page_placements(data, frame1)))

    if len(writer.pages) >= 2:
        page2 = writer.pages[1]
        w2, h2 = float(page2.mediabox.width), float(page2.mediabox.height)
        frame2 = OverlayFrame(frame1.scale_x, h2 / REFERENCE_HEIGHT)
        page2.merge_page(_overlay_page(w2, h2, second_page_placements(data, frame2)))

    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


# ---------------------------------------------------------------------------
# Scratch mode
# ---------------------------------------------------------------------------

class _TopDownCanvas:
    """reportlab canvas addressed from the top-left corner, like the overlay frame."""

    def __init__(self):
        self.buffer = io.BytesIO()
        self.width, self.height = A4
        self.canvas = canvas.Canvas(self.buffer, pagesize=A4)

    def text(
        self,
        value: str,
        x: float,
        y: float,
        size: float,
        bold: bool = False,
        color: Color = DARK,
        width: Optional[float] = None,
        align: str = "left",
    ) -> None:
        if not value:
            return
        c = self.canvas
        c.setFont(FONT_BOLD if bold else FONT, size)
        c.setFillColor(color)
        baseline = self.height - y - size * ASCENT
        if width is None or align == "left":
            c.drawString(x, baseline, value)
        elif align == "right":
            c.drawRightString(x + width, baseline, value)
        else:
            c.drawCentredString(x + width / 2, baseline, value)

    def paragraph(self, value: str, x: float, y: float, size: float, color: Color, width: float) -> None:
        lines = []
        for raw in value.split("\n"):
            lines.extend(simpleSplit(raw, FONT, size, width) or [""])
        for i, line in enumerate(lines):
            self.text(line, x, y + i * size * 1.2, size, color=color)

    def rect(self, x: float, y: float, w: float, h: float, fill: Color) -> None:
        self.canvas.setFillColor(fill)
        self.canvas.rect(x, self.height - y - h, w, h, stroke=0, fill=1)

    def outline(self, x: float, y: float, w: float, h: float, color: Color, line_width: float) -> None:
        self.canvas.setStrokeColor(color)
        self.canvas.setLineWidth(line_width)
        self.canvas.rect(x, self.height - y - h, w, h, stroke=1, fill=0)

    def hline(self, x: float, y: float, w: float) -> None:
        c = self.canvas
        c.saveState()
        c.setStrokeColor(RULE)
        c.setLineWidth(0.5)
        c.line(x, self.height - y, x + w, self.height - y)
        c.restoreState()

    def new_page(self) -> None:
        self.canvas.showPage()

    def finish(self) -> bytes:
        self.canvas.showPage()
        self.canvas.save()
        return self.buffer.getvalue()


def _draw_table_header(pdf: _TopDownCanvas, y: float) -> float:
    pdf.rect(MARGIN_LEFT, y, TABLE_WIDTH, HEADER_ROW_HEIGHT, fill=TEAL)
    x = MARGIN_LEFT + 4
    for col in COLUMNS:
        pdf.text(col.label, x, y + 6, 7.5, bold=True, color=WHITE, width=col.width - 6, align=col.align)
        x += col.width
    return y + HEADER_ROW_HEIGHT


def _company_lines(data: InvoiceData) -> list[str]:
    lines = [
        data.company_address1 or "",
        data.company_address2 or "",
        f"Tel: {data.company_tel}" if data.company_tel else "",
        f"Email: {data.company_email}" if data.company_email else "",
        f"VAT: {data.company_vat}" if data.company_vat else "",
    ]
    return [line for line in lines if line]


def _draw_scratch_invoice_page(pdf: _TopDownCanvas, data: InvoiceData) -> None:
    left, width = MARGIN_LEFT, CONTENT_WIDTH
    y = PAGE_TOP

    pdf.text(data.company_name or DEFAULT_COMPANY_NAME, left, y, 22, bold=True, color=TEAL)
    company_lines = _company_lines(data)
    for i, line in enumerate(company_lines):
        pdf.text(line, left, y + 2 + i * 11, 8, width=width, align="right")
    y += max(32, 2 + len(company_lines) * 11) + 10
    pdf.hline(left, y, width)
    y += 14

    pdf.text("INVOICE", left, y, 28, bold=True, color=TEAL)
    pdf.text(data.invoice_number or "", left, y + 34, 11)
    y += 58
    pdf.hline(left, y, width)
    y += 12

    info_col_w = (width - 30) / 4
    info = (
        ("Date", data.invoice_date),
        ("SQ#", data.sq_number),
        ("Ref#", data.ref_number),
        ("PO#", data.po_number),
    )
    for i, (label, value) in enumerate(info):
        x = left + i * (info_col_w + 10)
        pdf.text(label, x, y, 7.5, bold=True, color=MID)
        pdf.text(value or "-", x, y + 11, 9.5)
    y += 34
    pdf.hline(left, y, width)
    y += 12

    half_w = (width - 16) / 2
    pdf.text("CONTACT PERSON", left, y, 8, bold=True, color=TEAL)
    pdf.text(data.contact_person or "-", left, y + 13, 10)
    right_col = left + half_w + 16
    pdf.text("BILLING TO", right_col, y, 8, bold=True, color=TEAL)
    pdf.text(data.client_name or "-", right_col, y + 13, 10)
    if data.billing_address:
        pdf.paragraph(data.billing_address, right_col, y + 27, 8.5, MID, half_w)
    y += 65

    y = _draw_table_header(pdf, y)
    for idx, item in enumerate(data.items):
        pdf.rect(left, y, TABLE_WIDTH, ROW_HEIGHT, fill=WHITE if idx % 2 == 0 else STRIPE)
        x = left + 4
        for col, value in zip(COLUMNS, row_values(item, idx)):
            pdf.text(value, x, y + 5, 8, width=col.width - 6, align=col.align)
            x += col.width
        y += ROW_HEIGHT

        if y > PAGE_BREAK_Y:
            pdf.new_page()
            y = _draw_table_header(pdf, PAGE_TOP)

    pdf.rect(left, y, TABLE_WIDTH, TOTAL_ROW_HEIGHT, fill=TEAL)
    pdf.text("TOTAL", left + 4, y + 6, 9.5, bold=True, color=WHITE, width=TABLE_WIDTH - 84, align="right")
    pdf.text(
        format_grand_total(grand_total(data.items)),
        MARGIN_RIGHT - 78,
        y + 6,
        9.5,
        bold=True,
        color=WHITE,
        width=74,
        align="right",
    )


def _draw_scratch_terms_page(pdf: _TopDownCanvas, data: InvoiceData) -> None:
    left, width = MARGIN_LEFT, CONTENT_WIDTH
    y = PAGE_TOP

    terms = (
        ("Payment terms", data.payment_terms),
        ("Description", data.description),
        ("Incoterm", data.incoterm),
        ("Delivery", data.delivery),
        ("Requested Delivery Date", data.requested_delivery_date),
        ("Remarks", data.remarks),
    )
    terms_h = 24 + len(terms) * 18 + 12
    pdf.rect(left, y, width, terms_h, fill=TERMS_FILL)
    pdf.text("TERMS & REMARKS", left + 12, y + 10, 11, bold=True)
    ty = y + 28
    for label, value in terms:
        pdf.text(label + ":", left + 12, ty, 8.5, bold=True, color=MID)
        pdf.text(value or "-", left + 170, ty, 8.5)
        ty += 18
    y += terms_h + 24

    bank = (
        ("Bank", data.bank_name),
        ("IBAN", data.iban),
        ("BIC", data.bic),
        ("Address", data.bank_address),
    )
    bank_h = 30 + len(bank) * 20 + 12
    pdf.outline(left, y, width, bank_h, TEAL, 1.5)
    pdf.text("PAYMENT DETAILS", left + 12, y + 10, 11, bold=True, color=TEAL)
    by = y + 32
    for label, value in bank:
        pdf.text(label + ":", left + 12, by, 9, bold=True, color=TEAL)
        pdf.text(value or "-", left + 96, by, 9)
        by += 20

    footer = " • ".join(
        (
            data.company_name or DEFAULT_COMPANY_NAME,
            data.company_address1 or "",
            data.company_address2 or "",
        )
    )
    pdf.text(footer, left, FOOTER_Y, 7.5, color=MID, width=width, align="center")


def render_scratch(data: InvoiceData) -> bytes:
    pdf = _TopDownCanvas()
    _draw_scratch_invoice_page(pdf, data)
    pdf.new_page()
    _draw_scratch_terms_page(pdf, data)
    return pdf.finish()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def render_invoice(data: InvoiceData, template_path: Optional[Path] = None) -> RenderedInvoice:
    """
    Render ``data`` to PDF bytes.

    Overlay mode is used only when ``data.use_template`` is set and
    ``template_path`` points at an existing PDF; otherwise scratch mode.
    """
    filename = invoice_filename(data.invoice_number)
    use_overlay = (
        data.use_template
        and template_path is not None
        and template_path.suffix.lower() == ".pdf"
        and template_path.exists()
    )

    if use_overlay:
        content = render_overlay(data, template_path.read_bytes())
        mode = "overlay"
    else:
        content = render_scratch(data)
        mode = "scratch"

    logger.info(
        "invoice_pdf_rendered",
        mode=mode,
        invoice_number=data.invoice_number,
        items=len(data.items),
        size=len(content),
    )
    return RenderedInvoice(content=content, filename=filename, mode=mode)
