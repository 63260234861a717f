from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.inventory import InventoryItem
from circulerp.models.supplier import Supplier
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemResponse,
    InventoryItemUpdate,
    StockAdjustment,
)
from circulerp.services.lookups import ensure_exists, ensure_unique, get_or_404

logger = structlog.get_logger()
router = APIRouter()

SKU_CONFLICT = "SKU already exists"


def _select_items():
    return select(InventoryItem, Supplier.name.label("supplier_name")).outerjoin(
        Supplier, InventoryItem.supplier_id == Supplier.id
    )


def _to_response(row) -> InventoryItemResponse:
    item, supplier_name = row
    resp = InventoryItemResponse.model_validate(item)
    resp.supplier_name = supplier_name
    return resp


async def _load_item(db: AsyncSession, item_id: int) -> InventoryItemResponse:
    row = (await db.execute(_select_items().where(InventoryItem.id == item_id))).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return _to_response(row)


@router.get("", response_model=PaginatedResponse[InventoryItemResponse])
async def list_items(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = _select_items()
    count_q = select(func.count(InventoryItem.id))
    if search:
        pattern = f"%{search}%"
        cond = or_(InventoryItem.name.ilike(pattern), InventoryItem.sku.ilike(pattern))
        q = q.where(cond)
        count_q = count_q.where(cond)
    if category:
        q = q.where(InventoryItem.category == category)
        count_q = count_q.where(InventoryItem.category == category)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(InventoryItem.name.asc()).offset((page - 1) * limit).limit(limit)
    )
    return build_page([_to_response(r) for r in result.all()], page, limit, total)


@router.get("/{item_id}", response_model=InventoryItemResponse)
async def get_item(
    item_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _load_item(db, item_id)


@router.post("", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(
    body: InventoryItemCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ensure_unique(db, InventoryItem.sku, body.sku, SKU_CONFLICT)
    await ensure_exists(db, Supplier, body.supplier_id, "Supplier not found")

    item = InventoryItem(**body.model_dump())
    db.add(item)
    await db.flush()

    logger.info("inventory_item_created", item_id=item.id, sku=item.sku)
    return await _load_item(db, item.id)


@router.put("/{item_id}", response_model=InventoryItemResponse)
async def update_item(
    item_id: int,
    body: InventoryItemUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    item = await get_or_404(db, InventoryItem, item_id, "Item not found")
    update_data = body.model_dump(exclude_unset=True)
    for field in list(update_data):
        if update_data[field] is None and field not in ("supplier_id", "notes"):
            update_data.pop(field)

    if "sku" in update_data:
        await ensure_unique(db, InventoryItem.sku, update_data["sku"], SKU_CONFLICT, exclude_id=item_id)
    await ensure_exists(db, Supplier, update_data.get("supplier_id"), "Supplier not found")

    for field, value in update_data.items():
        setattr(item, field, value)
    await db.flush()

    logger.info("inventory_item_updated", item_id=item_id, fields=sorted(update_data))
    return await _load_item(db, item_id)


@router.patch("/{item_id}/adjust", response_model=InventoryItemResponse)
async def adjust_stock(
    item_id: int,
    body: StockAdjustment,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Add (or, with a negative value, remove) stock."""
    item = await get_or_404(db, InventoryItem, item_id, "Item not found")
    new_quantity = item.quantity + body.adjustment
    if new_quantity < 0:
        raise HTTPException(status_code=400, detail="Stock cannot go below zero")

    old_quantity = item.quantity
    item.quantity = new_quantity
    await db.flush()

    logger.info(
        "inventory_adjusted",
        item_id=item_id,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        reason=body.reason,
        by=current_user["user_id"],
    )
    return await _load_item(db, item_id)


@router.delete("/{item_id}", response_model=MessageResponse)
async def delete_item(
    item_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    item = await get_or_404(db, InventoryItem, item_id, "Item not found")
    await db.delete(item)
    await db.flush()

    logger.info("inventory_item_deleted", item_id=item_id)
    return MessageResponse(message="Item deleted")
