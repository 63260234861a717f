# circulerp/services/template_store.py
import json
from pathlib import Path
from typing import Dict, Optional

import structlog

from circulerp.config import settings
from circulerp.schemas.invoice_document import TEMPLATE_CONFIG_FIELDS, TemplateStatus

logger = structlog.get_logger()

TEMPLATE_BASENAME = "invoice-template"
CONFIG_FILENAME = "invoice-template-config.json"
TEMPLATE_EXTENSIONS = (".pdf", ".docx")


class TemplateStore:
    """The single active invoice template plus its extracted config."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.UPLOADS_PATH)

    def template_path(self, ext: str) -> Path:
        return self.root / f"{TEMPLATE_BASENAME}{ext}"

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    def current(self) -> Optional[Path]:
        for ext in TEMPLATE_EXTENSIONS:
            path = self.template_path(ext)
            if path.exists():
                return path
        return None

    def pdf_template(self) -> Optional[Path]:
        path = self.template_path(".pdf")
        return path if path.exists() else None

    def load_config(self) -> Dict[str, str]:
        if not self.config_path.exists():
            return {}
        try:
            raw = json.loads(self.config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("template_config_unreadable", error=str(e))
            return {}
        if not isinstance(raw, dict):
            return {}
        return {
            k: str(v) for k, v in raw.items() if k in TEMPLATE_CONFIG_FIELDS and v not in (None, "")
        }

    def save(self, file_bytes: bytes, ext: str, config: Dict[str, str]) -> None:
        ext = ext.lower()
        if ext not in TEMPLATE_EXTENSIONS:
            raise ValueError(f"Unsupported template type: {ext}")

        self.root.mkdir(parents=True, exist_ok=True)
        for other in TEMPLATE_EXTENSIONS:
            if other != ext:
                self.template_path(other).unlink(missing_ok=True)
        self.template_path(ext).write_bytes(file_bytes)
        self.config_path.write_text(json.dumps(config, indent=2), encoding="utf-8")
        logger.info("invoice_template_saved", ext=ext, size=len(file_bytes), fields=sorted(config))

    def delete(self) -> None:
        for ext in TEMPLATE_EXTENSIONS:
            self.template_path(ext).unlink(missing_ok=True)
        self.config_path.unlink(missing_ok=True)
        logger.info("invoice_template_deleted")

    def status(self) -> TemplateStatus:
        path = self.current()
        if path is None:
            return TemplateStatus(exists=False)
        return TemplateStatus(exists=True, filename=path.name, config=self.load_config())


template_store = TemplateStore()
