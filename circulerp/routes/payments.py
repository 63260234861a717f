from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
    status,
)
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.invoice import Invoice
from circulerp.models.payment import Payment
from circulerp.routes.files import parse_form, store_upload
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.payment import PaymentCreate, PaymentResponse, PaymentUpdate
from circulerp.services.lookups import ensure_exists, get_or_404
from circulerp.services.notification_service import notify_admin
from circulerp.services.storage import storage

logger = structlog.get_logger()
router = APIRouter()


def _select_payments():
    return select(Payment, Invoice.invoice_number).outerjoin(
        Invoice, Payment.invoice_id == Invoice.id
    )


def _to_response(row) -> PaymentResponse:
    payment, invoice_number = row
    resp = PaymentResponse.model_validate(payment)
    resp.invoice_number = invoice_number
    return resp


async def _load_payment(db: AsyncSession, payment_id: int) -> PaymentResponse:
    row = (await db.execute(_select_payments().where(Payment.id == payment_id))).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return _to_response(row)


def _label(payment: PaymentResponse) -> str:
    return f"{payment.amount:,.2f} for {payment.invoice_number or payment.invoice_id}"


@router.get("", response_model=PaginatedResponse[PaymentResponse])
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    invoice_id: Optional[int] = Query(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = _select_payments()
    count_q = select(func.count(Payment.id))
    if invoice_id is not None:
        q = q.where(Payment.invoice_id == invoice_id)
        count_q = count_q.where(Payment.invoice_id == invoice_id)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Payment.payment_date.desc(), Payment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return build_page([_to_response(r) for r in result.all()], page, limit, total)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _load_payment(db, payment_id)


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    background_tasks: BackgroundTasks,
    invoice_id: str = Form(...),
    amount: str = Form(...),
    payment_date: str = Form(...),
    payment_method: str = Form(...),
    reference: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    body = parse_form(
        PaymentCreate,
        {
            "invoice_id": invoice_id,
            "amount": amount,
            "payment_date": payment_date,
            "payment_method": payment_method,
            "reference": reference,
            "notes": notes,
        },
    )
    await ensure_exists(db, Invoice, body.invoice_id, "Invoice not found")

    file_path, file_name = await store_upload(file, "payments")
    payment = Payment(**body.model_dump(), file_path=file_path, file_name=file_name)
    db.add(payment)
    await db.flush()

    resp = await _load_payment(db, payment.id)
    logger.info("payment_created", payment_id=payment.id, invoice_id=payment.invoice_id)
    await notify_admin(
        db, background_tasks, "created", "Payment", _label(resp), current_user["display_name"]
    )
    return resp


@router.put("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: int,
    background_tasks: BackgroundTasks,
    invoice_id: Optional[str] = Form(None),
    amount: Optional[str] = Form(None),
    payment_date: Optional[str] = Form(None),
    payment_method: Optional[str] = Form(None),
    reference: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_or_404(db, Payment, payment_id, "Payment not found")
    body = parse_form(
        PaymentUpdate,
        {
            "invoice_id": invoice_id,
            "amount": amount,
            "payment_date": payment_date,
            "payment_method": payment_method,
            "reference": reference,
            "notes": notes,
        },
    )
    update_data = body.model_dump(exclude_unset=True)
    if "invoice_id" in update_data:
        await ensure_exists(db, Invoice, update_data["invoice_id"], "Invoice not found")

    file_path, file_name = await store_upload(file, "payments")
    if file_path:
        storage.delete("payments", payment.file_path)
        update_data["file_path"] = file_path
        update_data["file_name"] = file_name

    for field, value in update_data.items():
        setattr(payment, field, value)
    await db.flush()

    resp = await _load_payment(db, payment_id)
    logger.info("payment_updated", payment_id=payment_id, fields=sorted(update_data))
    await notify_admin(
        db, background_tasks, "updated", "Payment", _label(resp), current_user["display_name"]
    )
    return resp


@router.delete("/{payment_id}", response_model=MessageResponse)
async def delete_payment(
    payment_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    resp = await _load_payment(db, payment_id)
    payment = await get_or_404(db, Payment, payment_id, "Payment not found")

    await db.delete(payment)
    await db.flush()
    storage.delete("payments", resp.file_path)

    logger.info("payment_deleted", payment_id=payment_id)
    await notify_admin(
        db, background_tasks, "deleted", "Payment", _label(resp), current_user["display_name"]
    )
    return MessageResponse(message="Payment deleted")
