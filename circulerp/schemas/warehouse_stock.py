from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class StockRow(BaseModel):
    principal: Optional[str] = None
    article: str
    searchname: Optional[str] = None
    description: Optional[str] = None
    stock: int
    pc: Optional[str] = None
    gross_weight: Optional[float] = None
    nett_weight: Optional[float] = None


class StockUploadHistory(BaseModel):
    id: int
    uploaded_at: datetime
    rows_imported: int
    filename: Optional[str] = None
    uploaded_by: Optional[str] = None
    source: str

    model_config = {"from_attributes": True}


class WarehouseStockResponse(BaseModel):
    data: List[StockRow] = []
    history: List[StockUploadHistory] = []


class StockUploadResult(BaseModel):
    message: str
    inserted: int
    uploadedAt: datetime
