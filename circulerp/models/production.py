from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Float,
    Boolean,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from circulerp.database import Base

PRODUCTION_STATUSES = (
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
)


class ProductionBatch(Base):
    __tablename__ = "production_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lot_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="SET NULL")
    )
    customer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="SET NULL")
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="new_order")
    toller_supplier_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("suppliers.id", ondelete="SET NULL")
    )
    ingredients_at_toller: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in PRODUCTION_STATUSES)),
            name="chk_production_batches_status",
        ),
        Index("idx_production_batches_status", "status"),
    )
