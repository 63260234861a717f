# circulerp/routes/files.py
from pathlib import Path
from typing import Iterable, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, HTTPException, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from pydantic import BaseModel, ValidationError
import structlog

from circulerp.config import settings
from circulerp.middleware.auth import get_current_user
from circulerp.services.storage import SUBFOLDERS, InvalidFilename, is_safe_filename, storage

logger = structlog.get_logger()
router = APIRouter()

DOCUMENT_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".webp")

F = TypeVar("F", bound=BaseModel)


def file_extension(filename: Optional[str]) -> str:
    return Path(filename or "").suffix.lower()


async def read_validated_upload(
    file: Optional[UploadFile],
    allowed_extensions: Iterable[str] = DOCUMENT_EXTENSIONS,
    max_size: Optional[int] = None,
) -> tuple[bytes, str]:
    """Read an upload after checking its extension and size. Returns (bytes, ext)."""
    if file is None or not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    allowed = tuple(allowed_extensions)
    ext = file_extension(file.filename)
    if ext not in allowed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {ext or 'none'}. Allowed: {', '.join(allowed)}",
        )

    limit = max_size or settings.MAX_UPLOAD_SIZE
    file_bytes = await file.read()
    if len(file_bytes) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Max size: {limit // (1024 * 1024)} MB",
        )
    return file_bytes, ext


def parse_form(model: Type[F], fields: dict) -> F:
    """Validate multipart form fields against ``model``; blank strings count as absent."""
    cleaned = {k: v for k, v in fields.items() if v not in (None, "")}
    try:
        return model.model_validate(cleaned)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))


async def store_upload(file: Optional[UploadFile], subfolder: str) -> tuple[Optional[str], Optional[str]]:
    """Validate and save an optional attachment. Returns (stored name, original name)."""
    if file is None or not file.filename:
        return None, None
    file_bytes, ext = await read_validated_upload(file)
    try:
        stored = storage.save(subfolder, file_bytes, ext)
    except OSError as e:
        logger.error("file_upload_failed", folder=subfolder, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store uploaded file",
        )
    return stored, file.filename


@router.get("/{folder}/{filename:path}")
async def get_file(
    folder: str,
    filename: str,
    current_user: dict = Depends(get_current_user),
):
    """Download a stored attachment."""
    if folder not in SUBFOLDERS:
        raise HTTPException(status_code=404, detail="File not found")
    if not is_safe_filename(filename):
        raise HTTPException(status_code=400, detail="Invalid filename")

    try:
        path = storage.resolve(folder, filename)
    except InvalidFilename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, filename=filename)
