from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.customer import Customer
from circulerp.models.invoice import Invoice
from circulerp.models.order import Order
from circulerp.models.shipment import Shipment
from circulerp.routes.invoices import invoice_to_response, select_invoices
from circulerp.routes.orders import order_to_response, select_orders
from circulerp.routes.shipments import select_shipments, shipment_to_response
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.customer import CustomerCreate, CustomerResponse, CustomerUpdate
from circulerp.schemas.invoice import InvoiceResponse
from circulerp.schemas.order import OrderResponse
from circulerp.schemas.shipment import ShipmentResponse
from circulerp.services.lookups import get_or_404
from circulerp.services.notification_service import notify_admin

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=PaginatedResponse[CustomerResponse])
async def list_customers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select(Customer)
    count_q = select(func.count(Customer.id))
    if search:
        pattern = f"%{search}%"
        cond = or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.company.ilike(pattern),
        )
        q = q.where(cond)
        count_q = count_q.where(cond)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(q.order_by(Customer.name).offset((page - 1) * limit).limit(limit))
    items = [CustomerResponse.model_validate(c) for c in result.scalars().all()]
    return build_page(items, page, limit, total)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    customer = await get_or_404(db, Customer, customer_id, "Customer not found")
    return CustomerResponse.model_validate(customer)


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    body: CustomerCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    customer = Customer(**body.model_dump())
    db.add(customer)
    await db.flush()
    await db.refresh(customer)

    logger.info("customer_created", customer_id=customer.id)
    await notify_admin(
        db, background_tasks, "created", "Customer", customer.name, current_user["display_name"]
    )
    return CustomerResponse.model_validate(customer)


@router.put("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    body: CustomerUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    customer = await get_or_404(db, Customer, customer_id, "Customer not found")
    for field, value in body.model_dump().items():
        setattr(customer, field, value)
    await db.flush()
    await db.refresh(customer)

    logger.info("customer_updated", customer_id=customer_id)
    await notify_admin(
        db, background_tasks, "updated", "Customer", customer.name, current_user["display_name"]
    )
    return CustomerResponse.model_validate(customer)


@router.delete("/{customer_id}", response_model=MessageResponse)
async def delete_customer(
    customer_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    customer = await get_or_404(db, Customer, customer_id, "Customer not found")
    name = customer.name
    await db.delete(customer)
    await db.flush()

    logger.info("customer_deleted", customer_id=customer_id)
    await notify_admin(db, background_tasks, "deleted", "Customer", name, current_user["display_name"])
    return MessageResponse(message="Customer deleted")


@router.get("/{customer_id}/invoices", response_model=list[InvoiceResponse])
async def list_customer_invoices(
    customer_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_or_404(db, Customer, customer_id, "Customer not found")
    result = await db.execute(
        select_invoices()
        .where(Invoice.customer_id == customer_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
    )
    return [invoice_to_response(r) for r in result.all()]


@router.get("/{customer_id}/orders", response_model=list[OrderResponse])
async def list_customer_orders(
    customer_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_or_404(db, Customer, customer_id, "Customer not found")
    result = await db.execute(
        select_orders()
        .where(Order.customer_id == customer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return [order_to_response(r) for r in result.all()]


@router.get("/{customer_id}/shipments", response_model=list[ShipmentResponse])
async def list_customer_shipments(
    customer_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_or_404(db, Customer, customer_id, "Customer not found")
    result = await db.execute(
        select_shipments()
        .where(Shipment.customer_id == customer_id)
        .order_by(Shipment.created_at.desc(), Shipment.id.desc())
    )
    return [shipment_to_response(r) for r in result.all()]
