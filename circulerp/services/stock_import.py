"""
Warehouse stock import.

A stock upload replaces the whole snapshot: every previous row is deleted and
the parsed rows are inserted in the same transaction, together with an audit
row in ``warehouse_stock_uploads``.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.models.warehouse_stock import WarehouseStock, WarehouseStockUpload
from circulerp.schemas.warehouse_stock import (
    StockRow,
    StockUploadHistory,
    WarehouseStockResponse,
)

logger = structlog.get_logger()

# CSV header (lower-cased) -> column attribute
STOCK_COLUMNS = {
    "whs": "whs",
    "location": "location",
    "principal": "principal",
    "article": "article",
    "searchname": "searchname",
    "description": "description",
    "stock": "stock",
    "pc": "pc",
    "gross weight": "gross_weight",
    "nett weight": "nett_weight",
}
TEXT_FIELDS = ("whs", "location", "principal", "searchname", "description", "pc")

HISTORY_LIMIT = 10

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


class StockImportError(ValueError):
    pass


@dataclass
class StockImportResult:
    inserted: int
    uploaded_at: datetime


def parse_int(value: Optional[str]) -> int:
    m = _LEADING_INT.match(value or "")
    return int(m.group(1)) if m else 0


def parse_weight(value: Optional[str]) -> Optional[float]:
    """Leading decimal number; blank, unparseable and zero all mean "no weight"."""
    m = _LEADING_FLOAT.match(value or "")
    if not m:
        return None
    number = float(m.group(1))
    return number or None


def parse_stock_csv(content: str) -> List[dict]:
    lines = [line.strip() for line in content.lstrip("\ufeff").split("\n")]
    lines = [line for line in lines if line]
    if len(lines) < 2:
        raise StockImportError("File is empty or has no data rows")

    delimiter = ";" if ";" in lines[0] else ","
    # each line stands alone; quotes are data, not field delimiters
    headers = [h.strip().lower() for h in lines[0].split(delimiter)]

    index = {}
    for header, field in STOCK_COLUMNS.items():
        if header in headers:
            index[field] = headers.index(header)
    if "article" not in index:
        raise StockImportError('CSV missing required column "article"')

    def cell(cols: List[str], field: str) -> Optional[str]:
        i = index.get(field)
        if i is None or i >= len(cols):
            return None
        return cols[i].strip() or None

    rows = []
    for line in lines[1:]:
        cols = line.split(delimiter)
        if len(cols) < 2:
            continue
        article = cell(cols, "article")
        if not article:
            continue
        row = {field: cell(cols, field) for field in TEXT_FIELDS}
        row["article"] = article
        row["stock"] = parse_int(cell(cols, "stock"))
        row["gross_weight"] = parse_weight(cell(cols, "gross_weight"))
        row["nett_weight"] = parse_weight(cell(cols, "nett_weight"))
        rows.append(row)
    return rows


async def import_stock_csv(
    session: AsyncSession,
    content: str,
    filename: Optional[str],
    uploaded_by: Optional[str],
    source: str = "manual",
) -> StockImportResult:
    """
    Replace the stock snapshot with the rows in ``content``.

    Parsing happens before anything is deleted, so a rejected file leaves the
    previous snapshot untouched. Caller owns the transaction.
    """
    rows = parse_stock_csv(content)
    uploaded_at = datetime.utcnow()

    await session.execute(delete(WarehouseStock))
    session.add_all([WarehouseStock(**row, uploaded_at=uploaded_at) for row in rows])
    session.add(
        WarehouseStockUpload(
            uploaded_at=uploaded_at,
            rows_imported=len(rows),
            filename=filename,
            uploaded_by=uploaded_by,
            source=source,
        )
    )
    await session.flush()

    logger.info(
        "warehouse_stock_imported",
        rows=len(rows),
        filename=filename,
        uploaded_by=uploaded_by,
        source=source,
    )
    return StockImportResult(inserted=len(rows), uploaded_at=uploaded_at)


async def get_stock_overview(session: AsyncSession) -> WarehouseStockResponse:
    """Stock aggregated per (article, pc) plus the most recent uploads."""
    description = func.max(WarehouseStock.description)
    q = (
        select(
            func.max(WarehouseStock.principal).label("principal"),
            WarehouseStock.article,
            func.max(WarehouseStock.searchname).label("searchname"),
            description.label("description"),
            func.sum(WarehouseStock.stock).label("stock"),
            WarehouseStock.pc,
            func.sum(WarehouseStock.gross_weight).label("gross_weight"),
            func.sum(WarehouseStock.nett_weight).label("nett_weight"),
        )
        .group_by(WarehouseStock.article, WarehouseStock.pc)
        .order_by(description.asc(), WarehouseStock.article.asc())
    )
    result = await session.execute(q)
    data = [
        StockRow(
            principal=r.principal,
            article=r.article,
            searchname=r.searchname,
            description=r.description,
            stock=int(r.stock or 0),
            pc=r.pc,
            gross_weight=r.gross_weight,
            nett_weight=r.nett_weight,
        )
        for r in result.all()
    ]

    history_q = (
        select(WarehouseStockUpload)
        .order_by(WarehouseStockUpload.uploaded_at.desc(), WarehouseStockUpload.id.desc())
        .limit(HISTORY_LIMIT)
    )
    history = [
        StockUploadHistory.model_validate(h) for h in (await session.execute(history_q)).scalars()
    ]
    return WarehouseStockResponse(data=data, history=history)
