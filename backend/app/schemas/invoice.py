"""
Invoice schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from backend.app.models.billing_enums import InvoiceStatus


class InvoiceResponse(BaseModel):
    """Schema for displaying an invoice."""
    id: int
    trip_id: int
    team_id: int
    subtotal: float
    tax_amount: float
    total: float
    status: InvoiceStatus
    external_invoice_id: Optional[str]
    series: Optional[str]
    folio: Optional[str]
    uuid: Optional[str]
    external_pdf_url: Optional[str]
    external_xml_url: Optional[str]
    local_pdf_url: Optional[str]
    local_xml_url: Optional[str]
    last_error: Optional[str]
    cancellation_reason: Optional[str]
    stamped_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceResponse]
    total: int
    page: int
    page_size: int


class InvoiceCancelRequest(BaseModel):
    """SAT cancellation motive, "01" to "04"."""
    reason: str = Field("01", pattern=r"^0[1-4]$")
