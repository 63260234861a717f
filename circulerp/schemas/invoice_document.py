from typing import Dict, List, Optional

from pydantic import BaseModel, Field

# Keys the template extractor may produce; nothing else is persisted.
TEMPLATE_CONFIG_FIELDS = (
    "company_name",
    "company_address1",
    "company_address2",
    "company_tel",
    "company_email",
    "company_vat",
    "bank_name",
    "iban",
    "bic",
)


class LineItem(BaseModel):
    line: Optional[int] = None
    reference: Optional[str] = None
    commercial_name: Optional[str] = None
    packaging: Optional[str] = None
    quantity_lb: Optional[float] = None
    price_per_lb: Optional[float] = None


class InvoiceData(BaseModel):
    use_template: bool = False

    company_name: Optional[str] = None
    company_address1: Optional[str] = None
    company_address2: Optional[str] = None
    company_tel: Optional[str] = None
    company_email: Optional[str] = None
    company_vat: Optional[str] = None

    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    sq_number: Optional[str] = None
    ref_number: Optional[str] = None
    po_number: Optional[str] = None

    client_name: Optional[str] = None
    contact_person: Optional[str] = None
    billing_address: Optional[str] = None

    items: List[LineItem] = Field(default_factory=list)

    payment_terms: Optional[str] = None
    description: Optional[str] = None
    incoterm: Optional[str] = None
    delivery: Optional[str] = None
    requested_delivery_date: Optional[str] = None
    remarks: Optional[str] = None

    bank_name: Optional[str] = None
    iban: Optional[str] = None
    bic: Optional[str] = None
    bank_address: Optional[str] = None


class TemplateStatus(BaseModel):
    exists: bool
    filename: Optional[str] = None
    config: Dict[str, str] = Field(default_factory=dict)
