import math
from datetime import datetime
from typing import Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")

PartyType = Literal["customer", "supplier"]


class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T] = Field(default_factory=list)  # type: ignore[assignment]
    total: int
    page: int
    limit: int
    totalPages: int


def build_page(items: list, page: int, limit: int, total: int) -> dict:
    return {
        "data": items,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


class MessageResponse(BaseModel):
    message: str


class StatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None


class StatusHistoryResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: int
    old_status: Optional[str] = None
    new_status: str
    changed_by: Optional[int] = None
    changed_by_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PartyFields(BaseModel):
    """Customer/supplier discriminator shared by invoices, orders and shipments."""

    type: PartyType
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None

    @model_validator(mode="after")
    def _match_party(self):
        if self.type == "customer":
            if self.customer_id is None:
                raise ValueError("customer_id is required when type is 'customer'")
            self.supplier_id = None
        else:
            if self.supplier_id is None:
                raise ValueError("supplier_id is required when type is 'supplier'")
            self.customer_id = None
        return self
