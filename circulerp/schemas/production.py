from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from circulerp.schemas.common import StatusHistoryResponse

ProductionStatus = Literal[
    "new_order",
    "stock_check",
    "sufficient_stock",
    "lot_issued",
    "discussing_with_toller",
    "supplying_toller",
    "in_production",
    "production_complete",
    "sample_testing",
    "to_warehousing",
    "coa_received",
    "delivered",
    "cancelled",
]


class ProductionBatchCreate(BaseModel):
    lot_number: str = Field(..., min_length=1, max_length=100)
    product_name: str = Field(..., min_length=1, max_length=255)
    order_id: Optional[int] = None
    customer_id: Optional[int] = None
    toller_supplier_id: Optional[int] = None
    ingredients_at_toller: bool = False
    quantity: float = Field(0, ge=0)
    unit: str = "kg"
    notes: Optional[str] = None


class ProductionBatchUpdate(BaseModel):
    lot_number: Optional[str] = Field(None, min_length=1, max_length=100)
    product_name: Optional[str] = Field(None, min_length=1, max_length=255)
    order_id: Optional[int] = None
    customer_id: Optional[int] = None
    toller_supplier_id: Optional[int] = None
    ingredients_at_toller: Optional[bool] = None
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    notes: Optional[str] = None


class ProductionStatusUpdate(BaseModel):
    status: ProductionStatus
    notes: Optional[str] = None


class ProductionBatchResponse(BaseModel):
    id: int
    lot_number: str
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    product_name: str
    status: str
    toller_supplier_id: Optional[int] = None
    toller_name: Optional[str] = None
    ingredients_at_toller: bool
    quantity: float
    unit: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductionBatchDetailResponse(ProductionBatchResponse):
    status_history: List[StatusHistoryResponse] = []
