from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
import structlog

from circulerp.config import settings
from circulerp.middleware.auth import get_current_user
from circulerp.routes.files import read_validated_upload
from circulerp.schemas.invoice_document import TemplateStatus
from circulerp.services.template_extractor import extract_config_from_document
from circulerp.services.template_store import TEMPLATE_EXTENSIONS, template_store

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=TemplateStatus)
async def get_template(current_user: dict = Depends(get_current_user)):
    return template_store.status()


@router.post("", response_model=TemplateStatus)
async def upload_template(
    template: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
):
    """Store a new invoice template and extract company and bank details from it."""
    file_bytes, ext = await read_validated_upload(
        template, TEMPLATE_EXTENSIONS, max_size=settings.MAX_TEMPLATE_SIZE
    )
    config = await extract_config_from_document(file_bytes, ext)
    try:
        template_store.save(file_bytes, ext, config)
    except OSError as e:
        logger.error("invoice_template_save_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store template",
        )

    logger.info("invoice_template_uploaded", filename=template.filename, by=current_user["user_id"])
    return template_store.status()


@router.delete("", response_model=TemplateStatus)
async def delete_template(current_user: dict = Depends(get_current_user)):
    template_store.delete()
    return TemplateStatus(exists=False)
