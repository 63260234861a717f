from datetime import datetime, date
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Date, Text, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from circulerp.database import Base


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="SET NULL")
    )
    customer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="SET NULL")
    )
    supplier_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("suppliers.id", ondelete="SET NULL")
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100))
    carrier: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    estimated_delivery: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("type IN ('customer', 'supplier')", name="chk_shipments_type"),
        CheckConstraint(
            "status IN ('pending', 'picked_up', 'in_transit', 'out_for_delivery', "
            "'delivered', 'returned', 'failed')",
            name="chk_shipments_status",
        ),
        CheckConstraint(
            "(type = 'customer' AND supplier_id IS NULL) OR "
            "(type = 'supplier' AND customer_id IS NULL)",
            name="chk_shipments_party",
        ),
        Index("idx_shipments_order", "order_id"),
        Index("idx_shipments_status", "status"),
    )
