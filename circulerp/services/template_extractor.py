"""
Invoice template config extraction.

Pulls company and bank details out of the plain text of an uploaded template:
labelled lines ("Tel: ...", "IBAN ...") map to their field, and the first
three free-text lines become the company name and address lines.
"""

import re
from typing import Dict

import structlog

from circulerp.services.document_text import extract_text_async

logger = structlog.get_logger()

# Checked in order; first match wins for a line.
LABEL_FIELDS = (
    ("tel", "company_tel"),
    ("phone", "company_tel"),
    ("email", "company_email"),
    ("vat", "company_vat"),
    ("iban", "iban"),
    ("bic", "bic"),
    ("swift", "bic"),
    ("bank", "bank_name"),
)

COMPANY_FIELDS = ("company_name", "company_address1", "company_address2")

NON_COMPANY_LINE = re.compile(
    r"^(tel|phone|email|vat|iban|bic|swift|bank|invoice|billing|contact|line|"
    r"reference|commercial|packaging|quantity|price|total|terms|payment|details|"
    r"date|sq#|ref#|po#|fax|remark|incoterm|delivery)",
    re.IGNORECASE,
)


def _is_company_candidate(line: str) -> bool:
    return (
        len(line) > 3
        and not NON_COMPANY_LINE.match(line)
        and not line[0].isdigit()
        and line != line.upper()
    )


def extract_template_config(text: str) -> Dict[str, str]:
    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]

    config: Dict[str, str] = {}
    for line in lines:
        lowered = line.lower()
        for label, field in LABEL_FIELDS:
            if lowered.startswith(label + ":") or lowered.startswith(label + " "):
                value = re.sub(rf"^{label}[: ]*", "", line, flags=re.IGNORECASE).strip()
                config[field] = value
                break

    candidates = [line for line in lines if _is_company_candidate(line)]
    for field, value in zip(COMPANY_FIELDS, candidates):
        config[field] = value

    return config


async def extract_config_from_document(file_bytes: bytes, ext: str) -> Dict[str, str]:
    """Extract config from a PDF or DOCX upload; an unreadable document yields ``{}``."""
    try:
        text = await extract_text_async(file_bytes, ext)
    except Exception as e:
        logger.warning("template_text_extraction_failed", ext=ext, error=str(e))
        return {}

    config = extract_template_config(text)
    logger.info("template_config_extracted", fields=sorted(config))
    return config
