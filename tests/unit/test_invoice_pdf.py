"""
Unit tests for circulerp/services/invoice_pdf.py

Tests: amount formatting, grand total, filename sanitising, overlay scaling
       against non-A4 templates, scratch pagination, mode selection.
"""

import io

import pdfplumber
import pytest
from pypdf import PdfReader
from reportlab.pdfgen import canvas

from circulerp.schemas.invoice_document import InvoiceData, LineItem
from circulerp.services.invoice_pdf import (
    OverlayFrame,
    first_page_placements,
    format_amount,
    format_grand_total,
    format_price,
    format_quantity,
    grand_total,
    invoice_filename,
    render_invoice,
    row_values,
    second_page_placements,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _items(n: int) -> list[LineItem]:
    return [
        LineItem(reference=f"R{i}", commercial_name=f"Product {i}", quantity_lb=10, price_per_lb=1.5)
        for i in range(n)
    ]


def _template_pdf(width: float, height: float, pages: int = 2) -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(width, height))
    for i in range(pages):
        c.drawString(20, height - 20, f"Template page {i + 1}")
        c.showPage()
    c.save()
    return buffer.getvalue()


def _page_count(content: bytes) -> int:
    return len(PdfReader(io.BytesIO(content)).pages)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def test_grand_total_sums_quantity_times_price():
    items = [
        LineItem(quantity_lb=2, price_per_lb=1.5),
        LineItem(quantity_lb=1000, price_per_lb=2.25),
        LineItem(quantity_lb=None, price_per_lb=9),
    ]
    assert grand_total(items) == pytest.approx(2253.0)
    assert format_grand_total(grand_total(items)) == "USD 2,253.00"


def test_empty_values_render_blank():
    assert format_quantity(0) == ""
    assert format_quantity(None) == ""
    assert format_price(None) == ""
    assert format_amount(0) == ""


def test_number_formats():
    assert format_quantity(12500) == "12,500.00"
    assert format_price(1.5) == "1.5000"
    assert format_amount(1234567.891) == "1,234,567.89"


def test_row_values_default_line_number_is_position():
    item = LineItem(reference="A-1", commercial_name="Resin", quantity_lb=100, price_per_lb=0.5)
    values = row_values(item, 2)
    assert values[0] == "3"
    assert values[1:4] == ["A-1", "Resin", ""]
    assert values[-1] == "50.00"


def test_row_values_explicit_line_number():
    assert row_values(LineItem(line=7), 0)[0] == "7"


def test_invoice_filename_is_sanitised():
    assert invoice_filename("INV/2024 01") == "INV_2024_01.pdf"
    assert invoice_filename(None) == "invoice.pdf"


# ---------------------------------------------------------------------------
# Overlay positions
# ---------------------------------------------------------------------------

def test_a4_frame_keeps_reference_positions():
    data = InvoiceData(invoice_number="INV-1", items=_items(1))
    placements = first_page_placements(data, OverlayFrame.for_page(595, 842))
    number = placements[0]
    assert (number.text, number.x, number.y) == ("INV-1", 45, 155)


def test_overlay_positions_scale_with_template_size():
    data = InvoiceData(
        invoice_number="INV-1",
        invoice_date="2024-05-01",
        client_name="Acme",
        billing_address="Street 1\nCity",
        items=_items(3),
    )
    a4 = first_page_placements(data, OverlayFrame.for_page(595, 842))
    letter = first_page_placements(data, OverlayFrame.for_page(612, 792))

    assert len(a4) == len(letter)
    for ref, scaled in zip(a4, letter):
        assert scaled.text == ref.text
        assert scaled.x == pytest.approx(ref.x * 612 / 595)
        assert scaled.y == pytest.approx(ref.y * 792 / 842)


def test_second_page_uses_given_frame():
    data = InvoiceData(payment_terms="Net 30", iban="NL91INGB0001234567")
    placements = second_page_placements(data, OverlayFrame(2.0, 0.5))
    terms = next(p for p in placements if p.text == "Net 30")
    iban = next(p for p in placements if p.text == "NL91INGB0001234567")
    assert (terms.x, terms.y) == (360, 35)
    assert (iban.x, iban.y) == (210, pytest.approx((243 + 20) * 0.5))


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def test_scratch_render_is_two_pages_with_total():
    data = InvoiceData(invoice_number="INV-42", items=_items(2))
    rendered = render_invoice(data)

    assert rendered.mode == "scratch"
    assert rendered.filename == "INV-42.pdf"
    assert rendered.content.startswith(b"%PDF")
    assert _page_count(rendered.content) == 2

    with pdfplumber.open(io.BytesIO(rendered.content)) as pdf:
        text = pdf.pages[0].extract_text()
    assert "INV-42" in text
    assert "USD 30.00" in text


def test_scratch_table_continues_on_new_page():
    assert _page_count(render_invoice(InvoiceData(items=_items(26))).content) == 2
    assert _page_count(render_invoice(InvoiceData(items=_items(40))).content) == 3


def test_use_template_without_template_falls_back_to_scratch():
    rendered = render_invoice(InvoiceData(use_template=True, items=_items(1)), None)
    assert rendered.mode == "scratch"
    assert _page_count(rendered.content) == 2


def test_overlay_keeps_template_pages(tmp_path):
    template = tmp_path / "invoice-template.pdf"
    template.write_bytes(_template_pdf(612, 792))

    data = InvoiceData(use_template=True, invoice_number="INV-9", items=_items(2))
    rendered = render_invoice(data, template)

    assert rendered.mode == "overlay"
    reader = PdfReader(io.BytesIO(rendered.content))
    assert len(reader.pages) == 2
    assert float(reader.pages[0].mediabox.width) == pytest.approx(612)
    assert float(reader.pages[0].mediabox.height) == pytest.approx(792)
    page_text = reader.pages[0].extract_text()
    assert "Template page 1" in page_text
    assert "INV-9" in page_text


def test_template_ignored_when_not_requested(tmp_path):
    template = tmp_path / "invoice-template.pdf"
    template.write_bytes(_template_pdf(595, 842))
    rendered = render_invoice(InvoiceData(use_template=False), template)
    assert rendered.mode == "scratch"


def test_docx_template_is_not_overlaid(tmp_path):
    template = tmp_path / "invoice-template.docx"
    template.write_bytes(b"not a pdf")
    rendered = render_invoice(InvoiceData(use_template=True), template)
    assert rendered.mode == "scratch"
