from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

SupplierCategory = Literal["logistics", "blenders", "raw_materials", "shipping"]


class SupplierCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: SupplierCategory
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class SupplierUpdate(SupplierCreate):
    pass


class SupplierResponse(BaseModel):
    id: int
    name: str
    category: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
