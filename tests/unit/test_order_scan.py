"""
Unit tests for circulerp/services/order_scan.py

The Anthropic client is replaced by an in-memory fake; customer, supplier and
product matching runs against the test database.
"""

import json

import pytest

from circulerp.models.customer import Customer
from circulerp.models.product import Product
from circulerp.models.supplier import Supplier
from circulerp.services import order_scan
from circulerp.services.order_scan import (
    OrderScanError,
    OrderScanNotConfigured,
    build_message_content,
    media_type_for,
    parse_model_response,
    scan_order,
    strip_fences,
)


class FakeClient:
    def __init__(self, payload):
        self.payload = payload
        self.content = None

    async def create_message(self, content):
        self.content = content
        text = self.payload if isinstance(self.payload, str) else json.dumps(self.payload)
        return {"content": [{"type": "text", "text": text}]}


def _response(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}]}


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def test_strip_fences():
    assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_model_response_reads_first_text_block():
    response = {"content": [{"type": "tool_use"}, {"type": "text", "text": '{"order_number": "PO-1"}'}]}
    assert parse_model_response(response) == {"order_number": "PO-1"}


def test_parse_model_response_without_text_block():
    with pytest.raises(OrderScanError, match="No text response"):
        parse_model_response({"content": []})


def test_parse_model_response_invalid_json():
    with pytest.raises(OrderScanError, match="Could not parse"):
        parse_model_response(_response("Sorry, I cannot read this document."))


def test_parse_model_response_non_object():
    with pytest.raises(OrderScanError):
        parse_model_response(_response("[1, 2, 3]"))


def test_media_type_for():
    assert media_type_for("scan.PNG") == "image/png"
    assert media_type_for("scan.webp") == "image/webp"
    assert media_type_for("scan.jpeg") == "image/jpeg"


@pytest.mark.asyncio
async def test_image_content_is_base64_block():
    content = await build_message_content(b"\x89PNG", "po.png")
    image, prompt = content
    assert image["source"]["media_type"] == "image/png"
    assert image["source"]["data"] == "iVBORw=="
    assert prompt["type"] == "text"


@pytest.mark.asyncio
async def test_unreadable_pdf_still_produces_prompt():
    content = await build_message_content(b"not really a pdf", "po.pdf")
    assert isinstance(content, str)
    assert "Text extraction failed" in content
    assert content.startswith(order_scan.EXTRACTION_PROMPT)


# ---------------------------------------------------------------------------
# scan_order
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_scan_order_matches_customer_and_products(db_session):
    db_session.add_all(
        [
            Customer(name="Acme Recycling GmbH"),
            Product(name="rPET Flakes Clear", sku="RPET-CL"),
        ]
    )
    await db_session.flush()

    client = FakeClient(
        "```json\n"
        + json.dumps(
            {
                "order_number": "PO-2024-17",
                "customer_or_supplier_name": "Acme Recycling",
                "order_date": "2024-03-01",
                "inco_terms": "FOB",
                "items": [
                    {"product_name": "rPET Flakes", "quantity": "24", "unit": "tons", "unit_price": 650},
                    {"product_name": "Mystery Resin", "quantity": None, "unit": "pallets"},
                    "not an item",
                ],
            }
        )
        + "\n```"
    )

    result = await scan_order(db_session, b"\x89PNG", "po.png", client=client)

    assert result.order_number == "PO-2024-17"
    assert result.type == "customer"
    assert result.customer_id is not None
    assert result.supplier_id is None
    assert result.inco_terms == "FOB"
    assert len(result.items) == 2

    matched, unmatched = result.items
    assert matched.product_id is not None
    assert matched.description == "rPET Flakes Clear"
    assert matched.client_product_name == "rPET Flakes"
    assert matched.quantity == 24
    assert matched.unit_price == 650
    assert matched.currency == "USD"

    assert unmatched.product_id is None
    assert unmatched.description == "Mystery Resin"
    assert unmatched.quantity == 1
    assert unmatched.unit == "tons"

    assert result.scan_file_name == "po.png"
    assert result.scan_file_path.startswith("order-")
    assert result.scan_file_path.endswith(".png")


@pytest.mark.asyncio
async def test_scan_order_falls_back_to_supplier(db_session):
    db_session.add(Supplier(name="Blendworks BV", category="blenders"))
    await db_session.flush()

    client = FakeClient({"customer_or_supplier_name": "Blendworks", "items": "none"})
    result = await scan_order(db_session, b"\xff\xd8", "po.jpg", client=client)

    assert result.type == "supplier"
    assert result.supplier_id is not None
    assert result.items == []


@pytest.mark.asyncio
async def test_scan_order_unknown_party_leaves_type_unset(db_session):
    result = await scan_order(db_session, b"\xff\xd8", "po.jpg", client=FakeClient({}))
    assert result.type is None
    assert result.customer_id is None


@pytest.mark.asyncio
async def test_scan_order_requires_api_key(db_session, monkeypatch):
    monkeypatch.setattr(order_scan.settings, "ANTHROPIC_API_KEY", None)
    assert order_scan.is_configured() is False
    with pytest.raises(OrderScanNotConfigured):
        await scan_order(db_session, b"\xff\xd8", "po.jpg")
