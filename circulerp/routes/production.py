from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.customer import Customer
from circulerp.models.order import Order
from circulerp.models.production import ProductionBatch
from circulerp.models.supplier import Supplier
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.production import (
    ProductionBatchCreate,
    ProductionBatchDetailResponse,
    ProductionBatchResponse,
    ProductionBatchUpdate,
    ProductionStatusUpdate,
)
from circulerp.services.lookups import ensure_exists, ensure_unique, get_or_404
from circulerp.services.status_history import get_status_history, record_status_change

logger = structlog.get_logger()
router = APIRouter()

Toller = aliased(Supplier)


def _select_batches():
    return (
        select(
            ProductionBatch,
            Order.order_number,
            Customer.name.label("customer_name"),
            Toller.name.label("toller_name"),
        )
        .outerjoin(Order, ProductionBatch.order_id == Order.id)
        .outerjoin(Customer, ProductionBatch.customer_id == Customer.id)
        .outerjoin(Toller, ProductionBatch.toller_supplier_id == Toller.id)
    )


def _to_response(row) -> ProductionBatchResponse:
    batch, order_number, customer_name, toller_name = row
    resp = ProductionBatchResponse.model_validate(batch)
    resp.order_number = order_number
    resp.customer_name = customer_name
    resp.toller_name = toller_name
    return resp


async def _load_batch(db: AsyncSession, batch_id: int) -> ProductionBatchResponse:
    row = (await db.execute(_select_batches().where(ProductionBatch.id == batch_id))).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Batch not found")
    return _to_response(row)


async def _check_references(db: AsyncSession, data: dict) -> None:
    await ensure_exists(db, Order, data.get("order_id"), "Order not found")
    await ensure_exists(db, Customer, data.get("customer_id"), "Customer not found")
    await ensure_exists(db, Supplier, data.get("toller_supplier_id"), "Toller not found")


@router.get("", response_model=PaginatedResponse[ProductionBatchResponse])
async def list_batches(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    batch_status: Optional[str] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = _select_batches()
    count_q = select(func.count(ProductionBatch.id)).outerjoin(
        Customer, ProductionBatch.customer_id == Customer.id
    )

    if search:
        pattern = f"%{search}%"
        cond = or_(
            ProductionBatch.lot_number.ilike(pattern),
            ProductionBatch.product_name.ilike(pattern),
            Customer.name.ilike(pattern),
        )
        q = q.where(cond)
        count_q = count_q.where(cond)
    if batch_status:
        q = q.where(ProductionBatch.status == batch_status)
        count_q = count_q.where(ProductionBatch.status == batch_status)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(ProductionBatch.created_at.desc(), ProductionBatch.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return build_page([_to_response(r) for r in result.all()], page, limit, total)


@router.get("/{batch_id}", response_model=ProductionBatchDetailResponse)
async def get_batch(
    batch_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    batch = await _load_batch(db, batch_id)
    return ProductionBatchDetailResponse(
        **batch.model_dump(),
        status_history=await get_status_history(db, "production", batch_id),
    )


@router.post("", response_model=ProductionBatchResponse, status_code=status.HTTP_201_CREATED)
async def create_batch(
    body: ProductionBatchCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ensure_unique(db, ProductionBatch.lot_number, body.lot_number, "Lot number already exists")
    data = body.model_dump()
    await _check_references(db, data)

    batch = ProductionBatch(**data, status="new_order")
    db.add(batch)
    await db.flush()
    await record_status_change(
        db, "production", batch.id, "new_order", changed_by=current_user["user_id"]
    )

    logger.info("production_batch_created", batch_id=batch.id, lot_number=batch.lot_number)
    return await _load_batch(db, batch.id)


@router.put("/{batch_id}", response_model=ProductionBatchResponse)
async def update_batch(
    batch_id: int,
    body: ProductionBatchUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    batch = await get_or_404(db, ProductionBatch, batch_id, "Batch not found")
    update_data = body.model_dump(exclude_unset=True)
    for required in ("lot_number", "product_name", "ingredients_at_toller", "quantity", "unit"):
        if update_data.get(required) is None:
            update_data.pop(required, None)

    if "lot_number" in update_data:
        await ensure_unique(
            db,
            ProductionBatch.lot_number,
            update_data["lot_number"],
            "Lot number already exists",
            exclude_id=batch_id,
        )
    await _check_references(db, update_data)

    for field, value in update_data.items():
        setattr(batch, field, value)
    await db.flush()

    logger.info("production_batch_updated", batch_id=batch_id, fields=sorted(update_data))
    return await _load_batch(db, batch_id)


@router.patch("/{batch_id}/status", response_model=ProductionBatchResponse)
async def update_batch_status(
    batch_id: int,
    body: ProductionStatusUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    batch = await get_or_404(db, ProductionBatch, batch_id, "Batch not found")
    old_status = batch.status
    if old_status != body.status:
        batch.status = body.status
        await db.flush()
        await record_status_change(
            db,
            "production",
            batch_id,
            body.status,
            changed_by=current_user["user_id"],
            old_status=old_status,
            notes=body.notes,
        )
    return await _load_batch(db, batch_id)


@router.delete("/{batch_id}", response_model=MessageResponse)
async def delete_batch(
    batch_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    batch = await get_or_404(db, ProductionBatch, batch_id, "Batch not found")
    lot_number = batch.lot_number
    await db.delete(batch)
    await db.flush()

    logger.info("production_batch_deleted", batch_id=batch_id, lot_number=lot_number)
    return MessageResponse(message="Batch deleted")
