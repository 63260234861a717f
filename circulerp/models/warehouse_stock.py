from datetime import datetime
from typing import Optional

from sqlalchemy import String, Float, Integer, DateTime, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from circulerp.database import Base


class WarehouseStock(Base):
    __tablename__ = "warehouse_stock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    whs: Mapped[Optional[str]] = mapped_column(String(50))
    location: Mapped[Optional[str]] = mapped_column(String(100))
    principal: Mapped[Optional[str]] = mapped_column(String(255))
    article: Mapped[str] = mapped_column(String(100), nullable=False)
    searchname: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(String(500))
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pc: Mapped[Optional[str]] = mapped_column(String(50))
    gross_weight: Mapped[Optional[float]] = mapped_column(Float)
    nett_weight: Mapped[Optional[float]] = mapped_column(Float)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_warehouse_stock_article", "article", "pc"),
    )


class WarehouseStockUpload(Base):
    __tablename__ = "warehouse_stock_uploads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    rows_imported: Mapped[int] = mapped_column(Integer, nullable=False)
    filename: Mapped[Optional[str]] = mapped_column(String(255))
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(200))
    source: Mapped[str] = mapped_column(String(10), nullable=False, default="manual")

    __table_args__ = (
        CheckConstraint("source IN ('manual', 'email')", name="chk_stock_uploads_source"),
    )
