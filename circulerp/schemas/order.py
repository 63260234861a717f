from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from circulerp.schemas.common import PartyFields, PartyType, StatusHistoryResponse

OrderStatus = Literal[
    "order_placed", "confirmed", "processing", "shipped", "delivered", "completed", "cancelled"
]
OrderUnit = Literal["tons", "kg", "lbs"]


class OrderItemCreate(BaseModel):
    description: str = Field(..., min_length=1)
    client_product_name: Optional[str] = None
    product_id: Optional[int] = None
    quantity: float = Field(..., ge=0)
    unit: OrderUnit = "tons"
    unit_price: float = Field(0, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    packaging: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    product_id: Optional[int] = None
    description: str
    client_product_name: Optional[str] = None
    quantity: float
    unit: str
    unit_price: float
    currency: str
    packaging: Optional[str] = None
    total: float

    model_config = {"from_attributes": True}


class OrderCreate(PartyFields):
    order_number: str = Field(..., min_length=1, max_length=100)
    status: OrderStatus = "order_placed"
    description: Optional[str] = None
    notes: Optional[str] = None
    order_date: Optional[date] = None
    inco_terms: Optional[str] = None
    destination: Optional[str] = None
    transport: Optional[str] = None
    delivery_date: Optional[date] = None
    payment_terms: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    items: List[OrderItemCreate] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    order_number: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[PartyType] = None
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    order_date: Optional[date] = None
    inco_terms: Optional[str] = None
    destination: Optional[str] = None
    transport: Optional[str] = None
    delivery_date: Optional[date] = None
    payment_terms: Optional[str] = None
    items: Optional[List[OrderItemCreate]] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None


class OrderResponse(BaseModel):
    id: int
    order_number: str
    type: str
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    customer_name: Optional[str] = None
    supplier_name: Optional[str] = None
    status: str
    total_amount: float
    description: Optional[str] = None
    notes: Optional[str] = None
    order_date: Optional[date] = None
    inco_terms: Optional[str] = None
    destination: Optional[str] = None
    transport: Optional[str] = None
    delivery_date: Optional[date] = None
    payment_terms: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderDetailResponse(OrderResponse):
    items: List[OrderItemResponse] = []
    status_history: List[StatusHistoryResponse] = []
