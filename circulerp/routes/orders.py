from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    HTTPException,
    Query,
    UploadFile,
    status,
)
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.customer import Customer
from circulerp.models.order import Order, OrderItem
from circulerp.models.product import Product
from circulerp.models.supplier import Supplier
from circulerp.routes.files import read_validated_upload
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.order import (
    OrderCreate,
    OrderDetailResponse,
    OrderItemCreate,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderUpdate,
)
from circulerp.schemas.order_scan import OrderScanResult
from circulerp.services import order_scan
from circulerp.services.lookups import (
    ensure_exists,
    ensure_party_exists,
    ensure_unique,
    get_or_404,
    merge_party,
)
from circulerp.services.notification_service import notify_admin
from circulerp.services.status_history import get_status_history, record_status_change
from circulerp.services.storage import is_safe_filename, storage

logger = structlog.get_logger()
router = APIRouter()


def select_orders():
    return (
        select(
            Order,
            Customer.name.label("customer_name"),
            Supplier.name.label("supplier_name"),
        )
        .outerjoin(Customer, Order.customer_id == Customer.id)
        .outerjoin(Supplier, Order.supplier_id == Supplier.id)
    )


def order_to_response(row) -> OrderResponse:
    order, customer_name, supplier_name = row
    resp = OrderResponse.model_validate(order)
    resp.customer_name = customer_name
    resp.supplier_name = supplier_name
    return resp


async def _load_order(db: AsyncSession, order_id: int) -> OrderResponse:
    row = (await db.execute(select_orders().where(Order.id == order_id))).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order_to_response(row)


async def _replace_items(db: AsyncSession, order: Order, items: list[OrderItemCreate]) -> None:
    """Swap the order's lines for ``items`` and recompute ``total_amount``."""
    for item in items:
        await ensure_exists(db, Product, item.product_id, f"Product {item.product_id} not found")

    await db.execute(delete(OrderItem).where(OrderItem.order_id == order.id))
    total_amount = 0.0
    for item in items:
        line_total = item.quantity * item.unit_price
        total_amount += line_total
        db.add(OrderItem(order_id=order.id, total=line_total, **item.model_dump()))
    order.total_amount = total_amount
    await db.flush()


def _check_scan_file(file_path: Optional[str]) -> None:
    if file_path and not is_safe_filename(file_path):
        raise HTTPException(status_code=400, detail="Invalid file_path")


@router.get("", response_model=PaginatedResponse[OrderResponse])
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    order_status: Optional[str] = Query(None, alias="status"),
    order_type: Optional[str] = Query(None, alias="type"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select_orders()
    count_q = (
        select(func.count(Order.id))
        .outerjoin(Customer, Order.customer_id == Customer.id)
        .outerjoin(Supplier, Order.supplier_id == Supplier.id)
    )

    if search:
        pattern = f"%{search}%"
        cond = or_(
            Order.order_number.ilike(pattern),
            Order.description.ilike(pattern),
            Customer.name.ilike(pattern),
            Supplier.name.ilike(pattern),
        )
        q = q.where(cond)
        count_q = count_q.where(cond)
    if order_status:
        q = q.where(Order.status == order_status)
        count_q = count_q.where(Order.status == order_status)
    if order_type:
        q = q.where(Order.type == order_type)
        count_q = count_q.where(Order.type == order_type)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return build_page([order_to_response(r) for r in result.all()], page, limit, total)


@router.post("/scan", response_model=OrderScanResult)
async def scan_order_document(
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Extract an order draft from an uploaded PDF or image."""
    if not order_scan.is_configured():
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Order scanning is not configured (missing API key)",
        )

    file_bytes, _ = await read_validated_upload(file, order_scan.ALLOWED_EXTENSIONS)
    try:
        return await order_scan.scan_order(db, file_bytes, file.filename)
    except order_scan.OrderScanNotConfigured as e:
        raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail=str(e))
    except order_scan.OrderScanError as e:
        logger.error("order_scan_failed", filename=file.filename, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to scan order: {e}",
        )


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await _load_order(db, order_id)
    items = await db.execute(
        select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
    )
    return OrderDetailResponse(
        **order.model_dump(),
        items=[OrderItemResponse.model_validate(i) for i in items.scalars().all()],
        status_history=await get_status_history(db, "order", order_id),
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await ensure_unique(db, Order.order_number, body.order_number, "Order number already exists")
    await ensure_party_exists(db, body.customer_id, body.supplier_id)
    _check_scan_file(body.file_path)

    order = Order(**body.model_dump(exclude={"items"}), total_amount=0)
    db.add(order)
    await db.flush()
    await _replace_items(db, order, body.items)
    await record_status_change(db, "order", order.id, order.status, changed_by=current_user["user_id"])

    logger.info("order_created", order_id=order.id, order_number=order.order_number, items=len(body.items))
    await notify_admin(
        db, background_tasks, "created", "Order", order.order_number, current_user["display_name"]
    )
    return await _load_order(db, order.id)


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: int,
    body: OrderUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await get_or_404(db, Order, order_id, "Order not found")
    update_data = body.model_dump(exclude_unset=True, exclude={"items"})

    if update_data.get("order_number"):
        await ensure_unique(
            db,
            Order.order_number,
            update_data["order_number"],
            "Order number already exists",
            exclude_id=order_id,
        )
    elif "order_number" in update_data:
        update_data.pop("order_number")
    update_data.update(merge_party(order, update_data))
    await ensure_party_exists(db, update_data["customer_id"], update_data["supplier_id"])

    for field, value in update_data.items():
        setattr(order, field, value)
    await db.flush()
    if body.items is not None:
        await _replace_items(db, order, body.items)

    logger.info("order_updated", order_id=order_id, fields=sorted(body.model_fields_set))
    await notify_admin(
        db, background_tasks, "updated", "Order", order.order_number, current_user["display_name"]
    )
    return await _load_order(db, order_id)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await get_or_404(db, Order, order_id, "Order not found")
    old_status = order.status
    if old_status != body.status:
        order.status = body.status
        await db.flush()
        await record_status_change(
            db,
            "order",
            order_id,
            body.status,
            changed_by=current_user["user_id"],
            old_status=old_status,
            notes=body.notes,
        )
        await notify_admin(
            db,
            background_tasks,
            "status changed",
            "Order",
            order.order_number,
            current_user["display_name"],
            detail=f"{old_status} → {body.status}",
        )
    return await _load_order(db, order_id)


@router.delete("/{order_id}", response_model=MessageResponse)
async def delete_order(
    order_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    order = await get_or_404(db, Order, order_id, "Order not found")
    order_number = order.order_number
    file_path = order.file_path
    await db.delete(order)
    await db.flush()
    storage.delete("orders", file_path)

    logger.info("order_deleted", order_id=order_id, order_number=order_number)
    await notify_admin(
        db, background_tasks, "deleted", "Order", order_number, current_user["display_name"]
    )
    return MessageResponse(message="Order deleted")
