"""
Order scanning.

Sends an uploaded order document to the Anthropic Messages API, parses the
JSON it returns and maps names onto existing customers, suppliers and
products. The result is a draft for the order form; nothing is persisted
apart from a best-effort copy of the uploaded file.
"""

import base64
import json
import re
import time
from pathlib import Path
from typing import Any, Optional, Protocol, Union

import httpx
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.config import settings
from circulerp.models.customer import Customer
from circulerp.models.product import Product
from circulerp.models.supplier import Supplier
from circulerp.schemas.order_scan import OrderScanResult, ScannedOrderItem
from circulerp.services.document_text import extract_text_async
from circulerp.services.storage import InvalidFilename, storage

logger = structlog.get_logger()

ALLOWED_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".webp")
VALID_UNITS = {"tons", "kg", "lbs"}
PDF_TEXT_LIMIT = 8000
ANTHROPIC_VERSION = "2023-06-01"

_FENCE = re.compile(r"^```(?:json)?\s*\n?([\s\S]*?)\n?\s*```$")

EXTRACTION_PROMPT = """You are an order document extraction assistant. Analyze the provided purchase order or sales order document and extract as many fields as possible. Return ONLY valid JSON with no extra text or markdown fences.

{
  "order_number": "string or null",
  "customer_or_supplier_name": "string or null (the company name of the buyer or seller)",
  "order_date": "string or null (YYYY-MM-DD format: the date the order was placed)",
  "inco_terms": "string or null (e.g. FOB, CIF, DAP, DDP, EXW, CFR, FCA: extract the Incoterm if mentioned)",
  "destination": "string or null (delivery destination port, city, or country)",
  "transport": "string or null (mode of transport: Sea, Air, Road, Rail, or Multimodal)",
  "delivery_date": "string or null (YYYY-MM-DD format: requested or estimated delivery date)",
  "payment_terms": "string or null (e.g. Net 30, 30% advance 70% on BL, LC at sight)",
  "items": [
    {
      "product_name": "string (the TripleW catalog product name if identifiable, otherwise the product name as written)",
      "client_product_name": "string or null (the exact product name as written in the customer's order document, if different from catalog name)",
      "quantity": "number",
      "unit": "string (use 'tons' for metric tons, 'kg' for kilograms, 'lbs' for pounds; default to 'tons' if unclear)",
      "unit_price": "number or null",
      "currency": "string or null (USD or EUR)",
      "packaging": "string or null (e.g. 25kg bags, bulk, drums)"
    }
  ],
  "notes": "string or null (any relevant notes, special instructions, or remarks)"
}

Rules:
- Return only the JSON object, no markdown fences or extra text
- Extract every field you can find; each order format is different, do your best
- For quantities, return the numeric value only
- If items cannot be determined, return an empty array
- For units, only use: tons, kg, or lbs"""

MessageContent = Union[str, list]


class OrderScanError(Exception):
    pass


class OrderScanNotConfigured(OrderScanError):
    pass


class MessageClient(Protocol):
    async def create_message(self, content: MessageContent) -> dict: ...


class AnthropicClient:
    """Minimal Messages API client: one user turn, bounded by a timeout, no retries."""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        url: Optional[str] = None,
    ):
        self.api_key = api_key
        self.model = model or settings.ORDER_SCAN_MODEL
        self.max_tokens = max_tokens or settings.ORDER_SCAN_MAX_TOKENS
        self.timeout = timeout or settings.ORDER_SCAN_TIMEOUT_SECONDS
        self.url = url or settings.ANTHROPIC_API_URL

    async def create_message(self, content: MessageContent) -> dict:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": content}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise OrderScanError(f"Document service unreachable: {e}") from e

        if resp.status_code >= 400:
            logger.error("order_scan_api_error", status_code=resp.status_code, body=resp.text[:200])
            raise OrderScanError(f"Document service returned HTTP {resp.status_code}")
        return resp.json()


def is_configured() -> bool:
    return bool(settings.ANTHROPIC_API_KEY)


def media_type_for(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    if ext == ".png":
        return "image/png"
    if ext == ".webp":
        return "image/webp"
    return "image/jpeg"


async def build_message_content(file_bytes: bytes, filename: str) -> MessageContent:
    if Path(filename).suffix.lower() == ".pdf":
        try:
            text = (await extract_text_async(file_bytes, ".pdf"))[:PDF_TEXT_LIMIT]
        except Exception as e:
            logger.warning("order_scan_pdf_text_failed", filename=filename, error=str(e))
            text = f"[PDF file: {filename}, size: {len(file_bytes)} bytes. Text extraction failed.]"
        return f"{EXTRACTION_PROMPT}\n\nOrder document text:\n{text}"

    return [
        {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": media_type_for(filename),
                "data": base64.b64encode(file_bytes).decode("ascii"),
            },
        },
        {"type": "text", "text": EXTRACTION_PROMPT},
    ]


def strip_fences(text: str) -> str:
    text = text.strip()
    m = _FENCE.match(text)
    return m.group(1).strip() if m else text


def parse_model_response(response: dict) -> dict:
    block = next(
        (b for b in response.get("content") or [] if isinstance(b, dict) and b.get("type") == "text"),
        None,
    )
    if block is None:
        raise OrderScanError("No text response from document service")

    try:
        extracted = json.loads(strip_fences(block.get("text") or ""))
    except json.JSONDecodeError as e:
        raise OrderScanError(f"Could not parse extraction result: {e.msg}") from e
    if not isinstance(extracted, dict):
        raise OrderScanError("Extraction result is not a JSON object")
    return extracted


async def match_party(session: AsyncSession, name: str) -> dict:
    """Customers are preferred over suppliers when both match."""
    if not name:
        return {}
    term = f"%{name}%"
    customer_id = (
        await session.execute(
            select(Customer.id).where(Customer.name.ilike(term)).order_by(Customer.id).limit(1)
        )
    ).scalar()
    if customer_id is not None:
        return {"customer_id": customer_id, "type": "customer"}

    supplier_id = (
        await session.execute(
            select(Supplier.id).where(Supplier.name.ilike(term)).order_by(Supplier.id).limit(1)
        )
    ).scalar()
    if supplier_id is not None:
        return {"supplier_id": supplier_id, "type": "supplier"}
    return {}


async def match_product(session: AsyncSession, name: str) -> dict:
    if not name:
        return {"description": name}
    term = f"%{name}%"
    product = (
        await session.execute(
            select(Product.id, Product.name)
            .where(or_(Product.name.ilike(term), Product.sku.ilike(term)))
            .order_by(Product.id)
            .limit(1)
        )
    ).first()
    if product is not None:
        return {"product_id": product.id, "description": product.name}
    return {"description": name}


def _number(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


async def build_items(session: AsyncSession, raw_items: Any) -> list[ScannedOrderItem]:
    if not isinstance(raw_items, list):
        return []

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        product_name = _text(raw.get("product_name")) or ""
        matched = await match_product(session, product_name)
        unit = raw.get("unit")
        items.append(
            ScannedOrderItem(
                **matched,
                client_product_name=_text(raw.get("client_product_name")) or product_name or None,
                quantity=_number(raw.get("quantity"), 1),
                unit=unit if unit in VALID_UNITS else "tons",
                unit_price=_number(raw.get("unit_price"), 0),
                currency=_text(raw.get("currency")) or "USD",
                packaging=_text(raw.get("packaging")),
            )
        )
    return items


def save_scanned_file(file_bytes: bytes, filename: str) -> tuple[Optional[str], Optional[str]]:
    """Keep a copy under orders/; a failed write only drops the file reference."""
    ext = Path(filename).suffix.lower()
    try:
        stored = storage.save("orders", file_bytes, ext, name=f"order-{int(time.time() * 1000)}{ext}")
    except (OSError, InvalidFilename) as e:
        logger.warning("order_scan_file_save_failed", filename=filename, error=str(e))
        return None, None
    return stored, filename


async def scan_order(
    session: AsyncSession,
    file_bytes: bytes,
    filename: str,
    client: Optional[MessageClient] = None,
) -> OrderScanResult:
    if client is None:
        if not is_configured():
            raise OrderScanNotConfigured("Order scanning is not configured (missing API key)")
        client = AnthropicClient(settings.ANTHROPIC_API_KEY)

    content = await build_message_content(file_bytes, filename)
    extracted = parse_model_response(await client.create_message(content))

    party = await match_party(session, _text(extracted.get("customer_or_supplier_name")) or "")
    items = await build_items(session, extracted.get("items"))
    scan_file_path, scan_file_name = save_scanned_file(file_bytes, filename)

    logger.info(
        "order_scanned",
        filename=filename,
        items=len(items),
        matched_party=party.get("type"),
    )
    return OrderScanResult(
        order_number=_text(extracted.get("order_number")),
        order_date=_text(extracted.get("order_date")),
        inco_terms=_text(extracted.get("inco_terms")),
        destination=_text(extracted.get("destination")),
        transport=_text(extracted.get("transport")),
        delivery_date=_text(extracted.get("delivery_date")),
        payment_terms=_text(extracted.get("payment_terms")),
        notes=_text(extracted.get("notes")),
        scan_file_path=scan_file_path,
        scan_file_name=scan_file_name,
        items=items,
        **party,
    )
