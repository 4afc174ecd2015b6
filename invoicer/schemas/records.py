from typing import List, Optional

from pydantic import BaseModel, Field


class StoredLineItem(BaseModel):
    description: str
    quantity: float
    rate: float
    amount: float
    sort_order: int = 0


class InvoiceRecord(BaseModel):
    id: str
    user_id: str
    invoice_number: str
    status: str
    created_at: str
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_address: Optional[str] = None
    po_number: Optional[str] = None
    issue_date: Optional[str] = None
    due_date: Optional[str] = None
    subtotal: float = 0.0
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    discount_amount: float = 0.0
    shipping: float = 0.0
    total: float = 0.0
    notes: Optional[str] = None
    updated_at: Optional[str] = None
    hubspot_deal_id: Optional[str] = None
    line_items: List[StoredLineItem] = Field(default_factory=list)


class InvoiceSummary(BaseModel):
    id: str
    invoice_number: str
    client_name: Optional[str] = None
    total: float
    status: str
    created_at: str


class InvoiceListResponse(BaseModel):
    total: int
    items: List[InvoiceSummary]


class SaveInvoiceRequest(BaseModel):
    user_id: str


class SaveInvoiceResponse(BaseModel):
    invoice_id: str
    status: str = "draft"
