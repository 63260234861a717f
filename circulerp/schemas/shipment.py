from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from circulerp.schemas.common import PartyFields, PartyType, StatusHistoryResponse

ShipmentStatus = Literal[
    "pending", "picked_up", "in_transit", "out_for_delivery", "delivered", "returned", "failed"
]


class ShipmentCreate(PartyFields):
    order_id: Optional[int] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    carrier: Optional[str] = Field(None, max_length=100)
    status: ShipmentStatus = "pending"
    estimated_delivery: Optional[date] = None
    notes: Optional[str] = None


class ShipmentUpdate(BaseModel):
    order_id: Optional[int] = None
    type: Optional[PartyType] = None
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    carrier: Optional[str] = Field(None, max_length=100)
    estimated_delivery: Optional[date] = None
    notes: Optional[str] = None


class ShipmentStatusUpdate(BaseModel):
    status: ShipmentStatus
    notes: Optional[str] = None


class ShipmentResponse(BaseModel):
    id: int
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    type: str
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    customer_name: Optional[str] = None
    supplier_name: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    status: str
    estimated_delivery: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ShipmentDetailResponse(ShipmentResponse):
    status_history: List[StatusHistoryResponse] = []
