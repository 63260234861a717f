from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.customer import Customer
from circulerp.models.order import Order
from circulerp.models.shipment import Shipment
from circulerp.models.supplier import Supplier
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.shipment import (
    ShipmentCreate,
    ShipmentDetailResponse,
    ShipmentResponse,
    ShipmentStatusUpdate,
    ShipmentUpdate,
)
from circulerp.services.lookups import ensure_exists, ensure_party_exists, get_or_404, merge_party
from circulerp.services.notification_service import notify_admin
from circulerp.services.status_history import get_status_history, record_status_change

logger = structlog.get_logger()
router = APIRouter()


def select_shipments():
    return (
        select(
            Shipment,
            Order.order_number,
            Customer.name.label("customer_name"),
            Supplier.name.label("supplier_name"),
        )
        .outerjoin(Order, Shipment.order_id == Order.id)
        .outerjoin(Customer, Shipment.customer_id == Customer.id)
        .outerjoin(Supplier, Shipment.supplier_id == Supplier.id)
    )


def shipment_to_response(row) -> ShipmentResponse:
    shipment, order_number, customer_name, supplier_name = row
    resp = ShipmentResponse.model_validate(shipment)
    resp.order_number = order_number
    resp.customer_name = customer_name
    resp.supplier_name = supplier_name
    return resp


async def _load_shipment(db: AsyncSession, shipment_id: int) -> ShipmentResponse:
    row = (await db.execute(select_shipments().where(Shipment.id == shipment_id))).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Shipment not found")
    return shipment_to_response(row)


def _label(shipment: ShipmentResponse) -> str:
    return shipment.tracking_number or f"#{shipment.id}"


@router.get("", response_model=PaginatedResponse[ShipmentResponse])
async def list_shipments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    shipment_status: Optional[str] = Query(None, alias="status"),
    shipment_type: Optional[str] = Query(None, alias="type"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select_shipments()
    count_q = (
        select(func.count(Shipment.id))
        .outerjoin(Order, Shipment.order_id == Order.id)
        .outerjoin(Customer, Shipment.customer_id == Customer.id)
        .outerjoin(Supplier, Shipment.supplier_id == Supplier.id)
    )

    if search:
        pattern = f"%{search}%"
        cond = or_(
            Shipment.tracking_number.ilike(pattern),
            Shipment.carrier.ilike(pattern),
            Order.order_number.ilike(pattern),
            Customer.name.ilike(pattern),
            Supplier.name.ilike(pattern),
        )
        q = q.where(cond)
        count_q = count_q.where(cond)
    if shipment_status:
        q = q.where(Shipment.status == shipment_status)
        count_q = count_q.where(Shipment.status == shipment_status)
    if shipment_type:
        q = q.where(Shipment.type == shipment_type)
        count_q = count_q.where(Shipment.type == shipment_type)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Shipment.created_at.desc(), Shipment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return build_page([shipment_to_response(r) for r in result.all()], page, limit, total)


@router.get("/{shipment_id}", response_model=ShipmentDetailResponse)
async def get_shipment(
    shipment_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    shipment = await _load_shipment(db, shipment_id)
    return ShipmentDetailResponse(
        **shipment.model_dump(),
        status_history=await get_status_history(db, "shipment", shipment_id),
    )


@router.post("", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment(
    body: ShipmentCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ensure_exists(db, Order, body.order_id, "Order not found")
    await ensure_party_exists(db, body.customer_id, body.supplier_id)

    shipment = Shipment(**body.model_dump())
    db.add(shipment)
    await db.flush()
    await record_status_change(
        db, "shipment", shipment.id, shipment.status, changed_by=current_user["user_id"]
    )

    resp = await _load_shipment(db, shipment.id)
    logger.info("shipment_created", shipment_id=shipment.id)
    await notify_admin(
        db, background_tasks, "created", "Shipment", _label(resp), current_user["display_name"]
    )
    return resp


@router.put("/{shipment_id}", response_model=ShipmentResponse)
async def update_shipment(
    shipment_id: int,
    body: ShipmentUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    shipment = await get_or_404(db, Shipment, shipment_id, "Shipment not found")
    update_data = body.model_dump(exclude_unset=True)
    if "order_id" in update_data:
        await ensure_exists(db, Order, update_data["order_id"], "Order not found")
    update_data.update(merge_party(shipment, update_data))
    await ensure_party_exists(db, update_data["customer_id"], update_data["supplier_id"])

    for field, value in update_data.items():
        setattr(shipment, field, value)
    await db.flush()

    resp = await _load_shipment(db, shipment_id)
    logger.info("shipment_updated", shipment_id=shipment_id, fields=sorted(body.model_fields_set))
    await notify_admin(
        db, background_tasks, "updated", "Shipment", _label(resp), current_user["display_name"]
    )
    return resp


@router.patch("/{shipment_id}/status", response_model=ShipmentResponse)
async def update_shipment_status(
    shipment_id: int,
    body: ShipmentStatusUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    shipment = await get_or_404(db, Shipment, shipment_id, "Shipment not found")
    old_status = shipment.status
    if old_status != body.status:
        shipment.status = body.status
        await db.flush()
        await record_status_change(
            db,
            "shipment",
            shipment_id,
            body.status,
            changed_by=current_user["user_id"],
            old_status=old_status,
            notes=body.notes,
        )

    resp = await _load_shipment(db, shipment_id)
    if old_status != body.status:
        await notify_admin(
            db,
            background_tasks,
            "status changed",
            "Shipment",
            _label(resp),
            current_user["display_name"],
            detail=f"{old_status} → {body.status}",
        )
    return resp


@router.delete("/{shipment_id}", response_model=MessageResponse)
async def delete_shipment(
    shipment_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    resp = await _load_shipment(db, shipment_id)
    shipment = await get_or_404(db, Shipment, shipment_id, "Shipment not found")
    await db.delete(shipment)
    await db.flush()

    logger.info("shipment_deleted", shipment_id=shipment_id)
    await notify_admin(
        db, background_tasks, "deleted", "Shipment", _label(resp), current_user["display_name"]
    )
    return MessageResponse(message="Shipment deleted")
