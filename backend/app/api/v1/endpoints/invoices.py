"""
Invoice API Endpoints.

Draft creation, stamping, retry and cancellation of trip invoices.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from backend.app.core.dependencies import get_current_user, get_invoice_issuer
from backend.app.domain.invoicing.invoice_issuer import InvoiceIssuer
from backend.app.schemas.invoice import (
    InvoiceCancelRequest,
    InvoiceListResponse,
    InvoiceResponse,
)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    team_id: int = Query(..., description="Team whose invoices are listed"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    issuer: InvoiceIssuer = Depends(get_invoice_issuer),
):
    invoices, total = await issuer.list_for_team(
        team_id, current_user["user_id"], page=page, page_size=page_size
    )
    return InvoiceListResponse(
        invoices=[InvoiceResponse.model_validate(invoice) for invoice in invoices],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
    issuer: InvoiceIssuer = Depends(get_invoice_issuer),
):
    return await issuer.get(invoice_id, current_user["user_id"])


@router.post(
    "/create-from-trip/{trip_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice_from_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    issuer: InvoiceIssuer = Depends(get_invoice_issuer),
):
    """Create the draft invoice of a trip. Returns 409 if it already exists."""
    return await issuer.create_from_trip(trip_id, current_user["user_id"])


@router.post("/{invoice_id}/stamp", response_model=InvoiceResponse)
async def stamp_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
    issuer: InvoiceIssuer = Depends(get_invoice_issuer),
):
    """
    Stamp a draft invoice with the tax authority.

    On failure the invoice is left in ERROR and can be retried.
    """
    return await issuer.stamp(invoice_id, current_user["user_id"])


@router.post("/{invoice_id}/retry", response_model=InvoiceResponse)
async def retry_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
    issuer: InvoiceIssuer = Depends(get_invoice_issuer),
):
    """Move an ERROR invoice back to DRAFT."""
    return await issuer.retry_stamp(invoice_id, current_user["user_id"])


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    cancel_request: Optional[InvoiceCancelRequest] = None,
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(get_current_user),
    issuer: InvoiceIssuer = Depends(get_invoice_issuer),
):
    """Cancel a stamped invoice. The SAT motive defaults to "01"."""
    reason = cancel_request.reason if cancel_request else "01"
    return await issuer.cancel(invoice_id, reason, current_user["user_id"])
