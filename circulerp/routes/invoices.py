from datetime import datetime
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
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.models.customer import Customer
from circulerp.models.invoice import Invoice, WireTransfer
from circulerp.models.payment import Payment
from circulerp.models.supplier import Supplier
from circulerp.models.user import User
from circulerp.routes.files import parse_form, store_upload
from circulerp.schemas.common import MessageResponse, PaginatedResponse, build_page
from circulerp.schemas.invoice import (
    InvoiceCreate,
    InvoiceDetailResponse,
    InvoiceResponse,
    InvoiceStatusUpdate,
    InvoiceUpdate,
    WireTransferCreate,
    WireTransferReject,
    WireTransferResponse,
)
from circulerp.schemas.payment import PaymentResponse
from circulerp.services import fx_service
from circulerp.services.lookups import (
    ensure_party_exists,
    ensure_unique,
    get_or_404,
    merge_party,
)
from circulerp.services.notification_service import notify_admin
from circulerp.services.status_history import get_status_history, record_status_change
from circulerp.services.storage import storage

logger = structlog.get_logger()
router = APIRouter()


def select_invoices():
    return (
        select(
            Invoice,
            Customer.name.label("customer_name"),
            Supplier.name.label("supplier_name"),
        )
        .outerjoin(Customer, Invoice.customer_id == Customer.id)
        .outerjoin(Supplier, Invoice.supplier_id == Supplier.id)
    )


def invoice_to_response(row) -> InvoiceResponse:
    invoice, customer_name, supplier_name = row
    resp = InvoiceResponse.model_validate(invoice)
    resp.customer_name = customer_name
    resp.supplier_name = supplier_name
    return resp


async def _load_invoice(db: AsyncSession, invoice_id: int) -> InvoiceResponse:
    row = (await db.execute(select_invoices().where(Invoice.id == invoice_id))).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice_to_response(row)


def _transfer_to_response(row) -> WireTransferResponse:
    transfer, approved_by_name = row
    resp = WireTransferResponse.model_validate(transfer)
    resp.approved_by_name = approved_by_name
    return resp


async def _list_transfers(db: AsyncSession, invoice_id: int) -> list[WireTransferResponse]:
    result = await db.execute(
        select(WireTransfer, User.display_name)
        .outerjoin(User, WireTransfer.approved_by == User.id)
        .where(WireTransfer.invoice_id == invoice_id)
        .order_by(WireTransfer.transfer_date.desc(), WireTransfer.id.desc())
    )
    return [_transfer_to_response(r) for r in result.all()]


async def _get_transfer(db: AsyncSession, invoice_id: int, transfer_id: int) -> WireTransfer:
    result = await db.execute(
        select(WireTransfer).where(
            WireTransfer.id == transfer_id, WireTransfer.invoice_id == invoice_id
        )
    )
    transfer = result.scalar_one_or_none()
    if not transfer:
        raise HTTPException(status_code=404, detail="Wire transfer not found")
    return transfer


async def _set_invoice_status(
    db: AsyncSession,
    invoice: Invoice,
    new_status: str,
    current_user: dict,
    notes: Optional[str] = None,
) -> Optional[str]:
    """Move an invoice to ``new_status`` with a history row. Returns the old status, or None if unchanged."""
    old_status = invoice.status
    if old_status == new_status:
        return None
    invoice.status = new_status
    await db.flush()
    await record_status_change(
        db,
        "invoice",
        invoice.id,
        new_status,
        changed_by=current_user["user_id"],
        old_status=old_status,
        notes=notes,
    )
    return old_status


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_invoices(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    invoice_status: Optional[str] = Query(None, alias="status"),
    invoice_type: Optional[str] = Query(None, alias="type"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    q = select_invoices()
    count_q = (
        select(func.count(Invoice.id))
        .outerjoin(Customer, Invoice.customer_id == Customer.id)
        .outerjoin(Supplier, Invoice.supplier_id == Supplier.id)
    )

    if search:
        pattern = f"%{search}%"
        cond = or_(
            Invoice.invoice_number.ilike(pattern),
            Customer.name.ilike(pattern),
            Supplier.name.ilike(pattern),
        )
        q = q.where(cond)
        count_q = count_q.where(cond)
    if invoice_status:
        q = q.where(Invoice.status == invoice_status)
        count_q = count_q.where(Invoice.status == invoice_status)
    if invoice_type:
        q = q.where(Invoice.type == invoice_type)
        count_q = count_q.where(Invoice.type == invoice_type)

    total = (await db.execute(count_q)).scalar() or 0
    result = await db.execute(
        q.order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [invoice_to_response(r) for r in result.all()]
    return build_page(items, page, limit, total)


@router.get("/{invoice_id}", response_model=InvoiceDetailResponse)
async def get_invoice(
    invoice_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice = await _load_invoice(db, invoice_id)

    payments_result = await db.execute(
        select(Payment)
        .where(Payment.invoice_id == invoice_id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
    )
    payments = []
    for p in payments_result.scalars().all():
        resp = PaymentResponse.model_validate(p)
        resp.invoice_number = invoice.invoice_number
        payments.append(resp)

    return InvoiceDetailResponse(
        **invoice.model_dump(),
        payments=payments,
        status_history=await get_status_history(db, "invoice", invoice_id),
        wire_transfers=await _list_transfers(db, invoice_id),
    )


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    background_tasks: BackgroundTasks,
    invoice_number: str = Form(...),
    type: str = Form(...),
    amount: str = Form(...),
    customer_id: Optional[str] = Form(None),
    supplier_id: Optional[str] = Form(None),
    currency: Optional[str] = Form(None),
    invoice_status: Optional[str] = Form(None, alias="status"),
    invoice_date: Optional[str] = Form(None),
    due_date: Optional[str] = Form(None),
    payment_date: Optional[str] = Form(None),
    our_ref: Optional[str] = Form(None),
    po_number: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    body = parse_form(
        InvoiceCreate,
        {
            "invoice_number": invoice_number,
            "type": type,
            "amount": amount,
            "customer_id": customer_id,
            "supplier_id": supplier_id,
            "currency": currency,
            "status": invoice_status,
            "invoice_date": invoice_date,
            "due_date": due_date,
            "payment_date": payment_date,
            "our_ref": our_ref,
            "po_number": po_number,
            "notes": notes,
        },
    )
    await ensure_unique(db, Invoice.invoice_number, body.invoice_number, "Invoice number already exists")
    await ensure_party_exists(db, body.customer_id, body.supplier_id)

    file_path, file_name = await store_upload(file, "invoices")
    invoice = Invoice(
        **body.model_dump(),
        file_path=file_path,
        file_name=file_name,
    )
    db.add(invoice)
    await db.flush()
    await record_status_change(
        db, "invoice", invoice.id, invoice.status, changed_by=current_user["user_id"]
    )

    logger.info("invoice_created", invoice_id=invoice.id, invoice_number=invoice.invoice_number)
    await notify_admin(
        db, background_tasks, "created", "Invoice", invoice.invoice_number, current_user["display_name"]
    )
    return await _load_invoice(db, invoice.id)


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    background_tasks: BackgroundTasks,
    invoice_number: Optional[str] = Form(None),
    type: Optional[str] = Form(None),
    amount: Optional[str] = Form(None),
    customer_id: Optional[str] = Form(None),
    supplier_id: Optional[str] = Form(None),
    currency: Optional[str] = Form(None),
    invoice_date: Optional[str] = Form(None),
    due_date: Optional[str] = Form(None),
    payment_date: Optional[str] = Form(None),
    our_ref: Optional[str] = Form(None),
    po_number: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice = await get_or_404(db, Invoice, invoice_id, "Invoice not found")
    body = parse_form(
        InvoiceUpdate,
        {
            "invoice_number": invoice_number,
            "type": type,
            "amount": amount,
            "customer_id": customer_id,
            "supplier_id": supplier_id,
            "currency": currency,
            "invoice_date": invoice_date,
            "due_date": due_date,
            "payment_date": payment_date,
            "our_ref": our_ref,
            "po_number": po_number,
            "notes": notes,
        },
    )
    update_data = body.model_dump(exclude_unset=True)

    if "invoice_number" in update_data:
        await ensure_unique(
            db,
            Invoice.invoice_number,
            update_data["invoice_number"],
            "Invoice number already exists",
            exclude_id=invoice_id,
        )
    update_data.update(merge_party(invoice, update_data))
    await ensure_party_exists(db, update_data["customer_id"], update_data["supplier_id"])

    file_path, file_name = await store_upload(file, "invoices")
    if file_path:
        storage.delete("invoices", invoice.file_path)
        update_data["file_path"] = file_path
        update_data["file_name"] = file_name

    for field, value in update_data.items():
        setattr(invoice, field, value)
    await db.flush()

    logger.info("invoice_updated", invoice_id=invoice_id, fields=sorted(update_data))
    await notify_admin(
        db, background_tasks, "updated", "Invoice", invoice.invoice_number, current_user["display_name"]
    )
    return await _load_invoice(db, invoice_id)


@router.patch("/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: int,
    body: InvoiceStatusUpdate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice = await get_or_404(db, Invoice, invoice_id, "Invoice not found")
    old_status = await _set_invoice_status(db, invoice, body.status, current_user, body.notes)

    if old_status is not None:
        await notify_admin(
            db,
            background_tasks,
            "status changed",
            "Invoice",
            invoice.invoice_number,
            current_user["display_name"],
            detail=f"{old_status} → {body.status}",
        )
    return await _load_invoice(db, invoice_id)


@router.delete("/{invoice_id}", response_model=MessageResponse)
async def delete_invoice(
    invoice_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invoice = await get_or_404(db, Invoice, invoice_id, "Invoice not found")

    # Attachments of rows removed by the cascade
    payment_files = (
        await db.execute(select(Payment.file_path).where(Payment.invoice_id == invoice_id))
    ).scalars().all()
    transfer_files = (
        await db.execute(select(WireTransfer.file_path).where(WireTransfer.invoice_id == invoice_id))
    ).scalars().all()

    invoice_number = invoice.invoice_number
    invoice_file = invoice.file_path
    await db.delete(invoice)
    await db.flush()

    storage.delete("invoices", invoice_file)
    for name in payment_files:
        storage.delete("payments", name)
    for name in transfer_files:
        storage.delete("wire-transfers", name)

    logger.info("invoice_deleted", invoice_id=invoice_id, invoice_number=invoice_number)
    await notify_admin(
        db, background_tasks, "deleted", "Invoice", invoice_number, current_user["display_name"]
    )
    return MessageResponse(message="Invoice deleted")


# ---------------------------------------------------------------------------
# Wire transfers
# ---------------------------------------------------------------------------

@router.get("/{invoice_id}/wire-transfers", response_model=list[WireTransferResponse])
async def list_wire_transfers(
    invoice_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await get_or_404(db, Invoice, invoice_id, "Invoice not found")
    return await _list_transfers(db, invoice_id)


@router.post(
    "/{invoice_id}/wire-transfers",
    response_model=WireTransferResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_wire_transfer(
    invoice_id: int,
    transfer_date: str = Form(...),
    amount: Optional[str] = Form(None),
    bank_reference: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record an incoming transfer against an invoice; it starts out pending."""
    invoice = await get_or_404(db, Invoice, invoice_id, "Invoice not found")
    body = parse_form(
        WireTransferCreate,
        {
            "transfer_date": transfer_date,
            "amount": amount,
            "bank_reference": bank_reference,
            "notes": notes,
        },
    )

    transfer_amount = body.amount if body.amount is not None else invoice.amount
    fx_rate = await fx_service.get_eur_rate(invoice.currency, body.transfer_date)
    file_path, file_name = await store_upload(file, "wire-transfers")

    transfer = WireTransfer(
        invoice_id=invoice_id,
        amount=transfer_amount,
        transfer_date=body.transfer_date,
        bank_reference=body.bank_reference,
        notes=body.notes,
        status="pending",
        fx_rate=fx_rate,
        eur_amount=round(transfer_amount * fx_rate, 2),
        file_path=file_path,
        file_name=file_name,
    )
    db.add(transfer)
    await db.flush()
    await db.refresh(transfer)

    logger.info(
        "wire_transfer_created",
        invoice_id=invoice_id,
        transfer_id=transfer.id,
        amount=transfer_amount,
        fx_rate=fx_rate,
    )
    return _transfer_to_response((transfer, None))


@router.post(
    "/{invoice_id}/wire-transfers/{transfer_id}/approve",
    response_model=WireTransferResponse,
)
async def approve_wire_transfer(
    invoice_id: int,
    transfer_id: int,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending transfer and mark its invoice paid."""
    invoice = await get_or_404(db, Invoice, invoice_id, "Invoice not found")
    transfer = await _get_transfer(db, invoice_id, transfer_id)
    if transfer.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only pending transfers can be approved (current: {transfer.status})",
        )

    transfer.status = "approved"
    transfer.approved_by = current_user["user_id"]
    transfer.approved_at = datetime.utcnow()
    if invoice.payment_date is None:
        invoice.payment_date = transfer.transfer_date

    old_status = await _set_invoice_status(
        db, invoice, "paid", current_user, notes=f"Wire transfer #{transfer.id} approved"
    )
    await db.flush()
    await db.refresh(transfer)

    logger.info("wire_transfer_approved", invoice_id=invoice_id, transfer_id=transfer_id)
    if old_status is not None:
        await notify_admin(
            db,
            background_tasks,
            "status changed",
            "Invoice",
            invoice.invoice_number,
            current_user["display_name"],
            detail=f"{old_status} → paid",
        )
    return _transfer_to_response((transfer, current_user["display_name"]))


@router.post(
    "/{invoice_id}/wire-transfers/{transfer_id}/reject",
    response_model=WireTransferResponse,
)
async def reject_wire_transfer(
    invoice_id: int,
    transfer_id: int,
    body: WireTransferReject,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    transfer = await _get_transfer(db, invoice_id, transfer_id)
    if transfer.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only pending transfers can be rejected (current: {transfer.status})",
        )

    transfer.status = "rejected"
    transfer.rejection_reason = body.reason
    await db.flush()
    await db.refresh(transfer)

    logger.info("wire_transfer_rejected", invoice_id=invoice_id, transfer_id=transfer_id)
    return _transfer_to_response((transfer, None))


@router.delete("/{invoice_id}/wire-transfers/{transfer_id}", response_model=MessageResponse)
async def delete_wire_transfer(
    invoice_id: int,
    transfer_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a transfer; removing an approved one reopens a paid invoice as sent."""
    invoice = await get_or_404(db, Invoice, invoice_id, "Invoice not found")
    transfer = await _get_transfer(db, invoice_id, transfer_id)

    if transfer.status == "approved" and invoice.status == "paid":
        await _set_invoice_status(
            db, invoice, "sent", current_user, notes=f"Wire transfer #{transfer.id} deleted"
        )

    file_path = transfer.file_path
    await db.delete(transfer)
    await db.flush()
    storage.delete("wire-transfers", file_path)

    logger.info("wire_transfer_deleted", invoice_id=invoice_id, transfer_id=transfer_id)
    return MessageResponse(message="Wire transfer deleted")
