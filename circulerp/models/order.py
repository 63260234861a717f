from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    Float,
    Integer,
    DateTime,
    Date,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from circulerp.database import Base


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    customer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("customers.id", ondelete="SET NULL")
    )
    supplier_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("suppliers.id", ondelete="SET NULL")
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="order_placed")
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    order_date: Mapped[Optional[date]] = mapped_column(Date)
    inco_terms: Mapped[Optional[str]] = mapped_column(String(50))
    destination: Mapped[Optional[str]] = mapped_column(String(255))
    transport: Mapped[Optional[str]] = mapped_column(String(50))
    delivery_date: Mapped[Optional[date]] = mapped_column(Date)
    payment_terms: Mapped[Optional[str]] = mapped_column(String(255))
    file_path: Mapped[Optional[str]] = mapped_column(String(255))
    file_name: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("type IN ('customer', 'supplier')", name="chk_orders_type"),
        CheckConstraint(
            "status IN ('order_placed', 'confirmed', 'processing', 'shipped', "
            "'delivered', 'completed', 'cancelled')",
            name="chk_orders_status",
        ),
        CheckConstraint(
            "(type = 'customer' AND supplier_id IS NULL) OR "
            "(type = 'supplier' AND customer_id IS NULL)",
            name="chk_orders_party",
        ),
        Index("idx_orders_status", "status"),
        Index("idx_orders_customer", "customer_id"),
        Index("idx_orders_supplier", "supplier_id"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="SET NULL")
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    client_product_name: Mapped[Optional[str]] = mapped_column(String(255))
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(10), nullable=False, default="tons")
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    packaging: Mapped[Optional[str]] = mapped_column(String(100))
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint("unit IN ('tons', 'kg', 'lbs')", name="chk_order_items_unit"),
        Index("idx_order_items_order", "order_id"),
    )
