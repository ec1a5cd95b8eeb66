"""
Invoice Issuer (Domain Logic).

Draft creation from a trip, stamping through the fiscal document service,
retry after a failed stamp, and cancellation.

Status flow:
    DRAFT -> PENDING -> STAMPED -> CANCELLED
                    \\-> ERROR -> DRAFT (retry)
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.db import base  # noqa: F401  (registers every model before loader options are built)
from backend.app.core.clock import utcnow
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    DuplicateInvoiceError,
    InvalidRequestError,
    InvalidStateError,
    ResourceNotFoundError,
)
from backend.app.domain.invoicing.fiscal_payload import build_fiscal_invoice
from backend.app.domain.state_machine import ensure_invoice_transition
from backend.app.models.billing_enums import InvoiceStatus
from backend.app.models.invoice import Invoice
from backend.app.models.team import TeamFiscalProfile
from backend.app.models.trip import Trip
from backend.app.services.audit import AuditAction, AuditEntity, AuditLogger
from backend.app.services.authorization import TeamAuthorizer
from backend.app.services.fiscal_documents import FiscalDocumentService
from backend.app.services.object_storage import ObjectStorage

logger = logging.getLogger(__name__)

_INVOICE_DETAILS = (
    selectinload(Invoice.trip).selectinload(Trip.client),
    selectinload(Invoice.trip).selectinload(Trip.driver),
    selectinload(Invoice.trip).selectinload(Trip.vehicle),
    selectinload(Invoice.trip).selectinload(Trip.route),
    selectinload(Invoice.trip).selectinload(Trip.cargos),
)


def compute_amounts(price: float, tax_rate: float) -> Tuple[float, float, float]:
    """
    Single-rate tax model.

    Returns:
        (subtotal, tax_amount, total) rounded to cents
    """
    subtotal = round(price, 2)
    tax_amount = round(price * tax_rate, 2)
    total = round(price * (1 + tax_rate), 2)
    return subtotal, tax_amount, total


class InvoiceIssuer:

    def __init__(
        self,
        db: AsyncSession,
        fiscal_service: FiscalDocumentService,
        storage: ObjectStorage,
        audit: AuditLogger,
        authorizer: TeamAuthorizer,
        tax_rate: float = settings.invoice_tax_rate,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.fiscal_service = fiscal_service
        self.storage = storage
        self.audit = audit
        self.authorizer = authorizer
        self.tax_rate = tax_rate
        self.clock = clock

    async def _ensure_visible(self, team_id: int, actor_id: Optional[int], resource: str, resource_id: int):
        # actor_id None means the call comes from inside the system
        if actor_id is not None and not await self.authorizer.has_role(actor_id, team_id):
            raise ResourceNotFoundError(resource, resource_id)

    async def _load(self, invoice_id: int, actor_id: Optional[int]) -> Invoice:
        result = await self.db.execute(
            select(Invoice)
            .options(*_INVOICE_DETAILS)
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise ResourceNotFoundError("Invoice", invoice_id)
        await self._ensure_visible(invoice.team_id, actor_id, "Invoice", invoice_id)
        return invoice

    async def _fiscal_profile(self, team_id: int) -> Optional[TeamFiscalProfile]:
        result = await self.db.execute(
            select(TeamFiscalProfile).where(TeamFiscalProfile.team_id == team_id)
        )
        return result.scalar_one_or_none()

    async def create_from_trip(self, trip_id: int, actor_id: Optional[int] = None) -> Invoice:
        """
        Create the DRAFT invoice of a trip.

        A team without a fiscal profile still gets its draft; the profile is
        only required for stamping.

        Raises:
            ResourceNotFoundError: Unknown trip (or not visible to the actor)
            DuplicateInvoiceError: The trip already has an invoice
        """
        result = await self.db.execute(
            select(Trip.team_id, Trip.price).where(Trip.id == trip_id)
        )
        row = result.one_or_none()
        if row is None:
            raise ResourceNotFoundError("Trip", trip_id)
        team_id, price = row
        await self._ensure_visible(team_id, actor_id, "Trip", trip_id)

        existing = await self.db.execute(select(Invoice.id).where(Invoice.trip_id == trip_id))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateInvoiceError(trip_id)

        if await self._fiscal_profile(team_id) is None:
            logger.warning(
                "Team %s does not have fiscal data configured. Invoice will be created as draft.",
                team_id,
            )

        subtotal, tax_amount, total = compute_amounts(price, self.tax_rate)
        invoice = Invoice(
            trip_id=trip_id,
            team_id=team_id,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total=total,
            status=InvoiceStatus.DRAFT,
        )
        self.db.add(invoice)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race on the unique trip_id
            await self.db.rollback()
            raise DuplicateInvoiceError(trip_id)
        await self.db.refresh(invoice)

        logger.info("Created invoice %s for trip %s", invoice.id, trip_id)
        await self.audit.record(
            AuditAction.INVOICE_CREATED, AuditEntity.INVOICE, invoice.id,
            actor_id=actor_id, team_id=team_id,
            metadata={"trip_id": trip_id, "total": total},
        )
        return invoice

    async def stamp(self, invoice_id: int, actor_id: Optional[int] = None) -> Invoice:
        """
        Issue the fiscal document for a DRAFT invoice.

        PENDING is committed before the external call. On any failure the
        invoice is moved to ERROR and the exception re-raised; amounts are
        never touched.

        Raises:
            ResourceNotFoundError: Unknown invoice
            InvalidStateError: Invoice is not DRAFT
            InvalidRequestError: Team has no fiscal profile (invoice left in ERROR)
            ExternalServiceError: Fiscal service or storage failure (invoice left in ERROR)
        """
        invoice = await self._load(invoice_id, actor_id)
        ensure_invoice_transition(invoice.status, InvoiceStatus.PENDING)
        team_id = invoice.team_id

        claimed = await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.DRAFT)
            .values(status=InvoiceStatus.PENDING, submitted_at=self.clock(), last_error=None)
        )
        if claimed.rowcount != 1:
            await self.db.rollback()
            raise InvalidStateError("Invoice is already being stamped", details={"invoice_id": invoice_id})
        await self.db.commit()

        try:
            profile = await self._fiscal_profile(team_id)
            if profile is None:
                raise InvalidRequestError(
                    f"Team {team_id} has no fiscal profile configured",
                    details={"team_id": team_id},
                )

            payload = build_fiscal_invoice(invoice.trip, profile, self.tax_rate)
            document = await self.fiscal_service.create_invoice(payload)

            pdf_bytes = await self.fiscal_service.download(document.id, "pdf")
            xml_bytes = await self.fiscal_service.download(document.id, "xml")

            pdf_url = await self.storage.put(f"invoices/{invoice_id}/invoice.pdf", pdf_bytes, "application/pdf")
            xml_url = await self.storage.put(f"invoices/{invoice_id}/invoice.xml", xml_bytes, "application/xml")

            invoice.status = InvoiceStatus.STAMPED
            invoice.external_invoice_id = document.id
            invoice.external_pdf_url = document.pdf_url
            invoice.external_xml_url = document.xml_url
            invoice.local_pdf_url = pdf_url
            invoice.local_xml_url = xml_url
            invoice.series = document.series
            invoice.folio = document.folio
            invoice.uuid = document.uuid
            invoice.stamped_at = self.clock()
            await self.db.commit()
        except Exception as exc:
            await self._mark_error(invoice_id, team_id, actor_id, exc)
            raise

        logger.info("Successfully stamped invoice %s (document %s)", invoice_id, invoice.external_invoice_id)
        await self.audit.record(
            AuditAction.INVOICE_STAMPED, AuditEntity.INVOICE, invoice_id,
            actor_id=actor_id, team_id=invoice.team_id,
            metadata={"external_invoice_id": invoice.external_invoice_id, "uuid": invoice.uuid},
        )
        return invoice

    async def _mark_error(self, invoice_id: int, team_id: int, actor_id: Optional[int], exc: Exception) -> None:
        await self.db.rollback()
        message = f"{type(exc).__name__}: {exc}"[:1000]
        await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.PENDING)
            .values(status=InvoiceStatus.ERROR, last_error=message)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.error("Error stamping invoice %s: %s", invoice_id, message)
        await self.audit.record(
            AuditAction.INVOICE_STAMP_FAILED, AuditEntity.INVOICE, invoice_id,
            actor_id=actor_id, team_id=team_id, metadata={"error": message},
        )

    async def retry_stamp(self, invoice_id: int, actor_id: Optional[int] = None) -> Invoice:
        """Return an ERROR invoice to DRAFT so it can be stamped again."""
        invoice = await self._load(invoice_id, actor_id)
        ensure_invoice_transition(invoice.status, InvoiceStatus.DRAFT)

        invoice.status = InvoiceStatus.DRAFT
        invoice.submitted_at = None
        await self.db.commit()

        await self.audit.record(
            AuditAction.INVOICE_RETRY, AuditEntity.INVOICE, invoice_id,
            actor_id=actor_id, team_id=invoice.team_id,
            metadata={"previous_error": invoice.last_error},
        )
        return invoice

    async def cancel(self, invoice_id: int, reason: str = "01", actor_id: Optional[int] = None) -> Invoice:
        """
        Cancel a STAMPED invoice with the tax authority.

        If the fiscal service rejects the cancellation the invoice stays
        STAMPED and the error propagates.
        """
        invoice = await self._load(invoice_id, actor_id)
        if invoice.status != InvoiceStatus.STAMPED:
            raise InvalidStateError(
                "Only stamped invoices can be cancelled",
                details={"current": invoice.status.value},
            )

        if invoice.external_invoice_id:
            try:
                await self.fiscal_service.cancel_invoice(invoice.external_invoice_id, reason)
            except Exception:
                logger.error("Error cancelling invoice %s with the fiscal service", invoice_id)
                raise

        invoice.status = InvoiceStatus.CANCELLED
        invoice.cancelled_at = self.clock()
        invoice.cancellation_reason = reason
        await self.db.commit()

        logger.info("Cancelled invoice %s (reason %s)", invoice_id, reason)
        await self.audit.record(
            AuditAction.INVOICE_CANCELLED, AuditEntity.INVOICE, invoice_id,
            actor_id=actor_id, team_id=invoice.team_id, metadata={"reason": reason},
        )
        return invoice

    async def get(self, invoice_id: int, actor_id: Optional[int] = None) -> Invoice:
        return await self._load(invoice_id, actor_id)

    async def list_for_team(
        self, team_id: int, actor_id: int, page: int = 1, page_size: int = 10
    ) -> Tuple[List[Invoice], int]:
        if not await self.authorizer.has_role(actor_id, team_id):
            raise InvalidRequestError("User does not belong to the team", details={"team_id": team_id})

        total_result = await self.db.execute(
            select(func.count(Invoice.id)).where(Invoice.team_id == team_id)
        )
        total = total_result.scalar()

        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.team_id == team_id)
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total
