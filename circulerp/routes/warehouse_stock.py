from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.database import get_db
from circulerp.middleware.auth import get_current_user
from circulerp.routes.files import read_validated_upload
from circulerp.schemas.warehouse_stock import StockUploadResult, WarehouseStockResponse
from circulerp.services.stock_import import StockImportError, get_stock_overview, import_stock_csv

logger = structlog.get_logger()
router = APIRouter()

STOCK_FILE_EXTENSIONS = (".csv", ".txt")


@router.get("", response_model=WarehouseStockResponse)
async def get_warehouse_stock(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_stock_overview(db)


@router.post("/upload", response_model=StockUploadResult)
async def upload_warehouse_stock(
    file: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Replace the stock snapshot with a semicolon-delimited CSV export."""
    file_bytes, _ = await read_validated_upload(file, STOCK_FILE_EXTENSIONS)
    content = file_bytes.decode("utf-8-sig", errors="replace")

    try:
        result = await import_stock_csv(
            db,
            content,
            filename=file.filename,
            uploaded_by=current_user.get("display_name") or "Unknown",
            source="manual",
        )
    except StockImportError as e:
        logger.warning("warehouse_stock_upload_rejected", filename=file.filename, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return StockUploadResult(
        message=f"Imported {result.inserted} rows",
        inserted=result.inserted,
        uploadedAt=result.uploaded_at,
    )
