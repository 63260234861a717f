from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.customer import Customer
from circulerp.models.invoice import Invoice
from circulerp.models.order import Order
from circulerp.models.payment import Payment
from circulerp.models.shipment import Shipment
from circulerp.models.supplier import Supplier
from circulerp.routes.invoices import invoice_to_response, select_invoices
from circulerp.routes.orders import order_to_response, select_orders
from circulerp.routes.shipments import select_shipments, shipment_to_response
from circulerp.schemas.dashboard import DashboardStats
from circulerp.schemas.invoice import InvoiceResponse
from circulerp.schemas.order import OrderResponse
from circulerp.schemas.shipment import ShipmentResponse

router = APIRouter()

RECENT_LIMIT = 10
CLOSED_ORDER_STATUSES = ("completed", "cancelled")
OPEN_INVOICE_STATUSES = ("draft", "sent", "overdue")
CLOSED_SHIPMENT_STATUSES = ("delivered", "returned", "failed")


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    # AsyncSession does not allow concurrent statements; run them in turn
    async def scalar(query):
        return (await db.execute(query)).scalar_one()

    return DashboardStats(
        customers=await scalar(select(func.count(Customer.id))),
        suppliers=await scalar(select(func.count(Supplier.id))),
        totalOrders=await scalar(select(func.count(Order.id))),
        activeOrders=await scalar(
            select(func.count(Order.id)).where(Order.status.notin_(CLOSED_ORDER_STATUSES))
        ),
        totalInvoices=await scalar(select(func.count(Invoice.id))),
        pendingInvoiceAmount=await scalar(
            select(func.coalesce(func.sum(Invoice.amount), 0)).where(
                Invoice.status.in_(OPEN_INVOICE_STATUSES)
            )
        ),
        paidInvoiceAmount=await scalar(
            select(func.coalesce(func.sum(Invoice.amount), 0)).where(Invoice.status == "paid")
        ),
        totalPayments=await scalar(select(func.coalesce(func.sum(Payment.amount), 0))),
        activeShipments=await scalar(
            select(func.count(Shipment.id)).where(Shipment.status.notin_(CLOSED_SHIPMENT_STATUSES))
        ),
    )


@router.get("/recent-orders", response_model=list[OrderResponse])
async def get_recent_orders(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select_orders().order_by(Order.created_at.desc(), Order.id.desc()).limit(RECENT_LIMIT)
    return [order_to_response(row) for row in (await db.execute(query)).all()]


@router.get("/pending-invoices", response_model=list[InvoiceResponse])
async def get_pending_invoices(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = (
        select_invoices()
        .where(Invoice.status.in_(OPEN_INVOICE_STATUSES))
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(RECENT_LIMIT)
    )
    return [invoice_to_response(row) for row in (await db.execute(query)).all()]


@router.get("/shipping-overview", response_model=list[ShipmentResponse])
async def get_shipping_overview(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Shipments still on the move, newest first."""
    query = (
        select_shipments()
        .where(Shipment.status.notin_(CLOSED_SHIPMENT_STATUSES))
        .order_by(Shipment.created_at.desc(), Shipment.id.desc())
        .limit(RECENT_LIMIT)
    )
    return [shipment_to_response(row) for row in (await db.execute(query)).all()]
