# circulerp/services/storage.py
import re
import secrets
import time
from pathlib import Path
from typing import Optional

import structlog

from circulerp.config import settings

logger = structlog.get_logger()

SUBFOLDERS = ("invoices", "payments", "wire-transfers", "orders")
SAFE_FILENAME = re.compile(r"^[a-zA-Z0-9._-]+$")


class InvalidFilename(ValueError):
    pass


def is_safe_filename(filename: str) -> bool:
    return bool(filename) and ".." not in filename and bool(SAFE_FILENAME.match(filename))


class LocalStorage:
    """Uploaded documents on local disk, one subfolder per document kind."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.UPLOADS_PATH)

    def folder(self, subfolder: str) -> Path:
        if subfolder not in SUBFOLDERS:
            raise InvalidFilename(f"Unknown folder: {subfolder}")
        path = self.root / subfolder
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def random_name(ext: str) -> str:
        return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{ext.lower()}"

    def save(self, subfolder: str, data: bytes, ext: str, name: Optional[str] = None) -> str:
        """Write ``data`` and return the stored filename (random unless ``name`` is given)."""
        stored_name = name or self.random_name(ext)
        if not is_safe_filename(stored_name):
            raise InvalidFilename(stored_name)
        (self.folder(subfolder) / stored_name).write_bytes(data)
        logger.info("file_stored", folder=subfolder, filename=stored_name, size=len(data))
        return stored_name

    def resolve(self, subfolder: str, filename: str) -> Path:
        if not is_safe_filename(filename):
            raise InvalidFilename(filename)
        return self.folder(subfolder) / filename

    def delete(self, subfolder: str, filename: Optional[str]) -> None:
        if not filename:
            return
        try:
            self.resolve(subfolder, filename).unlink(missing_ok=True)
            logger.info("file_deleted", folder=subfolder, filename=filename)
        except (InvalidFilename, OSError) as e:
            logger.warning("file_delete_failed", folder=subfolder, filename=filename, error=str(e))


storage = LocalStorage()
