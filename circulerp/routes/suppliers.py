from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.supplier import Supplier
from circulerp.models.invoice import Invoice
from circulerp.models.order import Order
from circulerp.models.shipment import Shipment
from circulerp.routes.invoices import invoice_to_response, select_invoices
from circulerp.routes.orders import order_to_response, select_orders
from circulerp.routes.shipments import select_shipments, shipment_to_response
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.supplier import SupplierCreate, SupplierResponse, SupplierUpdate
from circulerp.schemas.invoice import InvoiceResponse
from circulerp.schemas.order import OrderResponse
from circulerp.schemas.shipment import ShipmentResponse
from circulerp.services.lookups import get_or_404

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=PaginatedResponse[SupplierResponse])
async def list_suppliers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Supplier)
    count_q = select(func.count(Supplier.id))
    if search:
        pattern = f"%{search}%"
        cond = or_(
            Supplier.name.ilike(pattern),
            Supplier.email.ilike(pattern),
        )
        q = q.where(cond)
        count_q = count_q.where(cond)
    if category:
        q = q.where(Supplier.category == category)
        count_q = count_q.where(Supplier.category == category)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(q.order_by(Supplier.name).offset((page - 1) * limit).limit(limit))
    items = [SupplierResponse.model_validate(s) for s in result.scalars().all()]
    return build_page(items, page, limit, total)


@router.get("/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    supplier_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    supplier = await get_or_404(db, Supplier, supplier_id, "Supplier not found")
    return SupplierResponse.model_validate(supplier)


@router.post("", response_model=SupplierResponse, status_code=status.HTTP_201_CREATED)
async def create_supplier(
    body: SupplierCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    supplier = Supplier(**body.model_dump())
    db.add(supplier)
    await db.flush()
    await db.refresh(supplier)

    logger.info("supplier_created", supplier_id=supplier.id)
    return SupplierResponse.model_validate(supplier)


@router.put("/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: int,
    body: SupplierUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    supplier = await get_or_404(db, Supplier, supplier_id, "Supplier not found")
    for field, value in body.model_dump().items():
        setattr(supplier, field, value)
    await db.flush()
    await db.refresh(supplier)

    logger.info("supplier_updated", supplier_id=supplier_id)
    return SupplierResponse.model_validate(supplier)


@router.delete("/{supplier_id}", response_model=MessageResponse)
async def delete_supplier(
    supplier_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    supplier = await get_or_404(db, Supplier, supplier_id, "Supplier not found")
    name = supplier.name
    await db.delete(supplier)
    await db.flush()

    logger.info("supplier_deleted", supplier_id=supplier_id, name=name)
    return MessageResponse(message="Supplier deleted")


@router.get("/{supplier_id}/invoices", response_model=list[InvoiceResponse])
async def list_supplier_invoices(
    supplier_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_or_404(db, Supplier, supplier_id, "Supplier not found")
    result = await db.execute(
        select_invoices()
        .where(Invoice.supplier_id == supplier_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
    )
    return [invoice_to_response(r) for r in result.all()]


@router.get("/{supplier_id}/orders", response_model=list[OrderResponse])
async def list_supplier_orders(
    supplier_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_or_404(db, Supplier, supplier_id, "Supplier not found")
    result = await db.execute(
        select_orders()
        .where(Order.supplier_id == supplier_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return [order_to_response(r) for r in result.all()]


@router.get("/{supplier_id}/shipments", response_model=list[ShipmentResponse])
async def list_supplier_shipments(
    supplier_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_or_404(db, Supplier, supplier_id, "Supplier not found")
    result = await db.execute(
        select_shipments()
        .where(Shipment.supplier_id == supplier_id)
        .order_by(Shipment.created_at.desc(), Shipment.id.desc())
    )
    return [shipment_to_response(r) for r in result.all()]
