from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class PaymentCreate(BaseModel):
    invoice_id: int
    amount: float = Field(..., gt=0)
    payment_date: date
    payment_method: str = Field(..., min_length=1, max_length=50)
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    invoice_id: Optional[int] = None
    amount: Optional[float] = Field(None, gt=0)
    payment_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, min_length=1, max_length=50)
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    invoice_id: int
    invoice_number: Optional[str] = None
    amount: float
    payment_date: date
    payment_method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
