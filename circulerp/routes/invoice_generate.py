from fastapi import APIRouter, Depends, HTTPException, Response, status
import structlog

from circulerp.middleware.auth import get_current_user
from circulerp.schemas.invoice_document import InvoiceData
from circulerp.services.invoice_pdf import render_invoice
from circulerp.services.template_store import template_store

logger = structlog.get_logger()
router = APIRouter()


def apply_template_config(data: InvoiceData, config: dict) -> InvoiceData:
    """Fill company and bank fields the caller left blank from the template config."""
    missing = {k: v for k, v in config.items() if not getattr(data, k, None)}
    return data.model_copy(update=missing) if missing else data


@router.post("", response_class=Response)
async def generate_invoice_pdf(
    body: InvoiceData,
    current_user: dict = Depends(get_current_user),
):
    data = body
    template_path = None
    if body.use_template:
        data = apply_template_config(body, template_store.load_config())
        template_path = template_store.pdf_template()

    try:
        rendered = render_invoice(data, template_path)
    except Exception as e:
        logger.error("invoice_pdf_failed", invoice_number=data.invoice_number, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate PDF: {str(e) or 'unknown error'}",
        )

    return Response(
        content=rendered.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{rendered.filename}"'},
    )
