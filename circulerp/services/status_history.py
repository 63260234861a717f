"""Status history ledger: one row per state transition of an invoice, order, shipment or batch."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.models.status_history import StatusHistory
from circulerp.models.user import User
from circulerp.schemas.common import StatusHistoryResponse

logger = structlog.get_logger()

ENTITY_TYPES = {"invoice", "order", "shipment", "production"}


async def record_status_change(
    session: AsyncSession,
    entity_type: str,
    entity_id: int,
    new_status: str,
    changed_by: Optional[int],
    old_status: Optional[str] = None,
    notes: Optional[str] = None,
) -> StatusHistory:
    """
    Append a status history row.

    Uses session.flush(); the caller owns the transaction.
    """
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity_type: {entity_type}")

    entry = StatusHistory(
        entity_type=entity_type,
        entity_id=entity_id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        notes=notes,
    )
    session.add(entry)
    await session.flush()

    logger.info(
        "status_changed",
        entity_type=entity_type,
        entity_id=entity_id,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
    )
    return entry


async def get_status_history(
    session: AsyncSession, entity_type: str, entity_id: int
) -> list[StatusHistoryResponse]:
    """Newest first, with the display name of whoever made the change."""
    result = await session.execute(
        select(StatusHistory, User.display_name)
        .outerjoin(User, StatusHistory.changed_by == User.id)
        .where(
            StatusHistory.entity_type == entity_type,
            StatusHistory.entity_id == entity_id,
        )
        .order_by(StatusHistory.created_at.desc(), StatusHistory.id.desc())
    )
    history = []
    for entry, changed_by_name in result.all():
        item = StatusHistoryResponse.model_validate(entry)
        item.changed_by_name = changed_by_name
        history.append(item)
    return history
