from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from circulerp.schemas.common import PartyFields, PartyType, StatusHistoryResponse
from circulerp.schemas.payment import PaymentResponse

InvoiceStatus = Literal["draft", "sent", "paid", "overdue", "cancelled"]


class InvoiceCreate(PartyFields):
    invoice_number: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., gt=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    status: InvoiceStatus = "draft"
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_date: Optional[date] = None
    our_ref: Optional[str] = None
    po_number: Optional[str] = None
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    invoice_number: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[PartyType] = None
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    amount: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_date: Optional[date] = None
    our_ref: Optional[str] = None
    po_number: Optional[str] = None
    notes: Optional[str] = None


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus
    notes: Optional[str] = None


class WireTransferCreate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    transfer_date: date
    bank_reference: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class WireTransferResponse(BaseModel):
    id: int
    invoice_id: int
    amount: float
    transfer_date: date
    bank_reference: Optional[str] = None
    status: str
    approved_by: Optional[int] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    fx_rate: Optional[float] = None
    eur_amount: Optional[float] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WireTransferReject(BaseModel):
    reason: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: str
    type: str
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    customer_name: Optional[str] = None
    supplier_name: Optional[str] = None
    amount: float
    currency: str
    status: str
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_date: Optional[date] = None
    our_ref: Optional[str] = None
    po_number: Optional[str] = None
    notes: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InvoiceDetailResponse(InvoiceResponse):
    payments: List[PaymentResponse] = []
    status_history: List[StatusHistoryResponse] = []
    wire_transfers: List[WireTransferResponse] = []
