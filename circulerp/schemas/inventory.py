from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

InventoryCategory = Literal["raw_material", "packaging", "finished_product"]


class InventoryItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: str = Field(..., min_length=1, max_length=100)
    category: InventoryCategory
    quantity: float = Field(0, ge=0)
    unit: str = "pcs"
    min_stock_level: float = Field(0, ge=0)
    supplier_id: Optional[int] = None
    unit_cost: float = Field(0, ge=0)
    notes: Optional[str] = None


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[InventoryCategory] = None
    quantity: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    min_stock_level: Optional[float] = Field(None, ge=0)
    supplier_id: Optional[int] = None
    unit_cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class StockAdjustment(BaseModel):
    adjustment: float
    reason: Optional[str] = None


class InventoryItemResponse(BaseModel):
    id: int
    name: str
    sku: str
    category: str
    quantity: float
    unit: str
    min_stock_level: float
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    unit_cost: float
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
