"""Shared row lookups and pre-write checks used by the CRUD routes."""

from typing import Any, Optional, Type, TypeVar

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from circulerp.database import Base
from circulerp.models.customer import Customer
from circulerp.models.supplier import Supplier
from circulerp.schemas.common import PartyFields

M = TypeVar("M", bound=Base)


async def get_or_404(db: AsyncSession, model: Type[M], pk: int, detail: str) -> M:
    row = await db.get(model, pk)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    return row


async def ensure_exists(db: AsyncSession, model: Type[Base], pk: Optional[int], detail: str) -> None:
    """400 when an optional foreign key points at nothing."""
    if pk is None:
        return
    if await db.get(model, pk) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


async def ensure_unique(
    db: AsyncSession,
    column: Any,
    value: Any,
    detail: str,
    exclude_id: Optional[int] = None,
) -> None:
    """409 when another row already holds ``value`` in a unique column."""
    model = column.class_
    q = select(model.id).where(column == value)
    if exclude_id is not None:
        q = q.where(model.id != exclude_id)
    if (await db.execute(q.limit(1))).scalar() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


async def ensure_party_exists(
    db: AsyncSession, customer_id: Optional[int], supplier_id: Optional[int]
) -> None:
    await ensure_exists(db, Customer, customer_id, "Customer not found")
    await ensure_exists(db, Supplier, supplier_id, "Supplier not found")


def merge_party(current: Any, updates: dict) -> dict:
    """
    Apply a partial update to an entity's (type, customer_id, supplier_id).

    The merged triple obeys the same rules as on create: the id matching
    ``type`` is required and the other one is cleared.
    """
    try:
        party = PartyFields(
            type=updates.get("type") or current.type,
            customer_id=updates.get("customer_id", current.customer_id),
            supplier_id=updates.get("supplier_id", current.supplier_id),
        )
    except ValidationError as e:
        message = e.errors()[0]["msg"].removeprefix("Value error, ")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
    return party.model_dump()
