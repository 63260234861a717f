# circulerp/services/document_text.py
import asyncio
import io
from functools import partial

import docx
import pdfplumber
import structlog

logger = structlog.get_logger()


def extract_pdf_text(file_bytes: bytes) -> str:
    parts = []
    with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
        for page in pdf.pages:
            parts.append(page.extract_text() or "")
    return "\n".join(parts)


def extract_docx_text(file_bytes: bytes) -> str:
    """Paragraph text followed by table cell text, one per line."""
    document = docx.Document(io.BytesIO(file_bytes))
    parts = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                parts.append(cell.text)
    return "\n".join(parts)


def extract_text(file_bytes: bytes, ext: str) -> str:
    ext = ext.lower()
    if ext == ".pdf":
        return extract_pdf_text(file_bytes)
    if ext == ".docx":
        return extract_docx_text(file_bytes)
    raise ValueError(f"Unsupported document type: {ext}")


async def extract_text_async(file_bytes: bytes, ext: str) -> str:
    """Async wrapper: runs the parser in the default thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(extract_text, file_bytes, ext))
