from typing import List, Optional

from pydantic import BaseModel


class ScannedOrderItem(BaseModel):
    product_id: Optional[int] = None
    description: str
    client_product_name: Optional[str] = None
    quantity: float = 1
    unit: str = "tons"
    unit_price: float = 0
    currency: str = "USD"
    packaging: Optional[str] = None


class OrderScanResult(BaseModel):
    order_number: Optional[str] = None
    order_date: Optional[str] = None
    inco_terms: Optional[str] = None
    destination: Optional[str] = None
    transport: Optional[str] = None
    delivery_date: Optional[str] = None
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    type: Optional[str] = None
    customer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    scan_file_path: Optional[str] = None
    scan_file_name: Optional[str] = None
    items: List[ScannedOrderItem] = []
