"""
Invoice issuer tests.

Draft creation, stamping (success and failure), retry and cancellation.
"""

from datetime import datetime

import pytest
from sqlalchemy import select

from backend.app.core.exceptions import (
    DuplicateInvoiceError,
    ExternalServiceError,
    InvalidRequestError,
    InvalidStateError,
    ResourceNotFoundError,
)
from backend.app.domain.invoicing.invoice_issuer import compute_amounts
from backend.app.models.audit_log import AuditLog
from backend.app.models.billing_enums import InvoiceStatus
from backend.app.models.invoice import Invoice
from backend.app.models.trip import Trip
from backend.app.schemas.trip import TripCreate

DISPATCHER_ID = 1
OUTSIDER_ID = 99


@pytest.fixture
async def trip_with_invoice(db_session, seeded, make_manager, trip_payload):
    """A trip whose DRAFT invoice was created on trip creation."""
    trip = await make_manager(db_session).create(TripCreate(**trip_payload(seeded)), DISPATCHER_ID)
    result = await db_session.execute(select(Invoice).where(Invoice.trip_id == trip.id))
    return trip, result.scalar_one()


async def _invoice(db, invoice_id):
    return await db.get(Invoice, invoice_id, populate_existing=True)


def test_compute_amounts_uses_sixteen_percent():
    assert compute_amounts(1000, 0.16) == (1000, 160.0, 1160.0)
    assert compute_amounts(99.99, 0.16) == (99.99, 16.0, 115.99)


@pytest.mark.asyncio
async def test_create_from_trip_is_draft(db_session, seeded, make_issuer):
    trip = Trip(
        team_id=seeded.team_id,
        client_id=seeded.client_id,
        driver_id=seeded.driver_ids[0],
        vehicle_id=seeded.vehicle_ids[0],
        route_id=seeded.route_id,
        price=2500.0,
        start_date=datetime(2026, 1, 10, 8, 0),
        end_date=datetime(2026, 1, 10, 18, 0),
    )
    db_session.add(trip)
    await db_session.commit()

    invoice = await make_issuer(db_session).create_from_trip(trip.id)

    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.subtotal == 2500.0
    assert invoice.tax_amount == 400.0
    assert invoice.total == 2900.0
    assert invoice.team_id == seeded.team_id


@pytest.mark.asyncio
async def test_create_twice_is_rejected(db_session, trip_with_invoice, make_issuer):
    trip, invoice = trip_with_invoice
    trip_id, invoice_id = trip.id, invoice.id

    with pytest.raises(DuplicateInvoiceError):
        await make_issuer(db_session).create_from_trip(trip_id)

    original = await _invoice(db_session, invoice_id)
    assert original.status == InvoiceStatus.DRAFT
    assert original.total == 1160.0


@pytest.mark.asyncio
async def test_create_for_unknown_trip(db_session, seeded, make_issuer):
    with pytest.raises(ResourceNotFoundError):
        await make_issuer(db_session).create_from_trip(4242)


@pytest.mark.asyncio
async def test_create_without_fiscal_profile_still_drafts(
    db_session, seeded_without_profile, make_manager, trip_payload
):
    trip = await make_manager(db_session).create(
        TripCreate(**trip_payload(seeded_without_profile)), DISPATCHER_ID
    )

    result = await db_session.execute(select(Invoice).where(Invoice.trip_id == trip.id))
    assert result.scalar_one().status == InvoiceStatus.DRAFT


@pytest.mark.asyncio
async def test_stamp_stores_documents(db_session, trip_with_invoice, make_issuer, fiscal_service, object_storage):
    _, invoice = trip_with_invoice

    stamped = await make_issuer(db_session).stamp(invoice.id, DISPATCHER_ID)

    assert stamped.status == InvoiceStatus.STAMPED
    assert stamped.external_invoice_id == "inv_1"
    assert stamped.uuid == "0000-uuid-1"
    assert stamped.series == "F"
    assert stamped.folio == "1"
    assert stamped.stamped_at is not None
    assert stamped.local_pdf_url == f"http://test/files/invoices/{invoice.id}/invoice.pdf"
    assert stamped.local_xml_url == f"http://test/files/invoices/{invoice.id}/invoice.xml"
    assert await object_storage.get(f"invoices/{invoice.id}/invoice.pdf") == b"pdf:inv_1"
    assert await object_storage.get(f"invoices/{invoice.id}/invoice.xml") == b"xml:inv_1"

    # Amounts are fixed at creation
    assert stamped.subtotal == 1000.0
    assert stamped.total == 1160.0


@pytest.mark.asyncio
async def test_stamp_payload_is_built_from_trip(db_session, trip_with_invoice, make_issuer, fiscal_service):
    _, invoice = trip_with_invoice

    await make_issuer(db_session).stamp(invoice.id, DISPATCHER_ID)

    payload = fiscal_service.created[0]
    assert payload["customer"]["legal_name"] == "Abarrotes La Esperanza"
    assert payload["customer"]["tax_id"] == "AES020202BBB"
    assert payload["customer"]["address"]["zip"] == "64010"
    assert payload["use"] == "G03"
    assert payload["payment_form"] == "03"
    assert payload["payment_method"] == "PUE"

    items = payload["items"]
    assert [item["product"]["description"] for item in items] == ["Pallets de agua", "Cajas de galletas"]
    assert all(item["product"]["price"] == 500.0 for item in items)
    assert all(item["product"]["product_key"] == "78101800" for item in items)
    assert items[0]["product"]["taxes"] == [{"type": "IVA", "rate": 0.16}]

    section = payload["pdf_custom_section"]
    assert "Driver 1" in section
    assert "ABC-101" in section
    assert "Monterrey - Saltillo" in section


@pytest.mark.asyncio
async def test_stamp_trip_without_cargo_uses_default_item(
    db_session, seeded, make_manager, make_issuer, trip_payload, fiscal_service
):
    trip = await make_manager(db_session).create(
        TripCreate(**trip_payload(seeded, cargos=[])), DISPATCHER_ID
    )
    result = await db_session.execute(select(Invoice).where(Invoice.trip_id == trip.id))
    invoice = result.scalar_one()

    await make_issuer(db_session).stamp(invoice.id, DISPATCHER_ID)

    items = fiscal_service.created[0]["items"]
    assert len(items) == 1
    assert items[0]["product"]["description"] == "Servicio de transporte de carga"
    assert items[0]["product"]["price"] == 1000.0


@pytest.mark.asyncio
async def test_stamp_failure_moves_to_error(db_session, trip_with_invoice, make_issuer, fiscal_service):
    _, invoice = trip_with_invoice
    invoice_id = invoice.id
    fiscal_service.fail_with = ExternalServiceError("facturapi", "POST /invoices returned 500")

    with pytest.raises(ExternalServiceError):
        await make_issuer(db_session).stamp(invoice_id, DISPATCHER_ID)

    failed = await _invoice(db_session, invoice_id)
    assert failed.status == InvoiceStatus.ERROR
    assert "POST /invoices returned 500" in failed.last_error
    assert failed.external_invoice_id is None
    assert failed.subtotal == 1000.0
    assert failed.total == 1160.0

    audit = await db_session.execute(
        select(AuditLog).where(AuditLog.action == "INVOICE_STAMP_FAILED", AuditLog.entity_id == invoice_id)
    )
    assert audit.scalar_one() is not None


@pytest.mark.asyncio
async def test_stamp_without_fiscal_profile_moves_to_error(
    db_session, seeded_without_profile, make_manager, make_issuer, trip_payload, fiscal_service
):
    trip = await make_manager(db_session).create(
        TripCreate(**trip_payload(seeded_without_profile)), DISPATCHER_ID
    )
    result = await db_session.execute(select(Invoice).where(Invoice.trip_id == trip.id))
    invoice_id = result.scalar_one().id

    with pytest.raises(InvalidRequestError):
        await make_issuer(db_session).stamp(invoice_id, DISPATCHER_ID)

    assert (await _invoice(db_session, invoice_id)).status == InvoiceStatus.ERROR
    assert fiscal_service.created == []


@pytest.mark.asyncio
async def test_stamp_requires_draft(db_session, trip_with_invoice, make_issuer):
    _, invoice = trip_with_invoice
    issuer = make_issuer(db_session)
    await issuer.stamp(invoice.id, DISPATCHER_ID)

    with pytest.raises(InvalidStateError):
        await issuer.stamp(invoice.id, DISPATCHER_ID)


@pytest.mark.asyncio
async def test_retry_after_error_then_stamp(db_session, trip_with_invoice, make_issuer, fiscal_service):
    _, invoice = trip_with_invoice
    invoice_id = invoice.id
    issuer = make_issuer(db_session)
    fiscal_service.fail_with = ExternalServiceError("facturapi", "timeout")

    with pytest.raises(ExternalServiceError):
        await issuer.stamp(invoice_id, DISPATCHER_ID)

    retried = await issuer.retry_stamp(invoice_id, DISPATCHER_ID)
    assert retried.status == InvoiceStatus.DRAFT

    fiscal_service.fail_with = None
    stamped = await issuer.stamp(invoice_id, DISPATCHER_ID)
    assert stamped.status == InvoiceStatus.STAMPED
    assert stamped.last_error is None


@pytest.mark.asyncio
async def test_retry_requires_error(db_session, trip_with_invoice, make_issuer):
    _, invoice = trip_with_invoice

    with pytest.raises(InvalidStateError):
        await make_issuer(db_session).retry_stamp(invoice.id, DISPATCHER_ID)


@pytest.mark.asyncio
async def test_cancel_stamped_invoice(db_session, trip_with_invoice, make_issuer, fiscal_service):
    _, invoice = trip_with_invoice
    issuer = make_issuer(db_session)
    await issuer.stamp(invoice.id, DISPATCHER_ID)

    cancelled = await issuer.cancel(invoice.id, "02", DISPATCHER_ID)

    assert cancelled.status == InvoiceStatus.CANCELLED
    assert cancelled.cancellation_reason == "02"
    assert cancelled.cancelled_at is not None
    assert fiscal_service.cancelled == [("inv_1", "02")]


@pytest.mark.asyncio
async def test_cancel_draft_is_rejected(db_session, trip_with_invoice, make_issuer, fiscal_service):
    _, invoice = trip_with_invoice

    with pytest.raises(InvalidStateError):
        await make_issuer(db_session).cancel(invoice.id, "01", DISPATCHER_ID)

    assert fiscal_service.cancelled == []


@pytest.mark.asyncio
async def test_cancel_rejected_by_provider_keeps_stamped(db_session, trip_with_invoice, make_issuer, fiscal_service):
    _, invoice = trip_with_invoice
    invoice_id = invoice.id
    issuer = make_issuer(db_session)
    await issuer.stamp(invoice_id, DISPATCHER_ID)
    fiscal_service.cancel_fail_with = ExternalServiceError("facturapi", "cancellation refused")

    with pytest.raises(ExternalServiceError):
        await issuer.cancel(invoice_id, "01", DISPATCHER_ID)

    assert (await _invoice(db_session, invoice_id)).status == InvoiceStatus.STAMPED


@pytest.mark.asyncio
async def test_invoice_hidden_from_outsider(db_session, trip_with_invoice, make_issuer):
    _, invoice = trip_with_invoice
    issuer = make_issuer(db_session)

    with pytest.raises(ResourceNotFoundError):
        await issuer.get(invoice.id, OUTSIDER_ID)
    with pytest.raises(ResourceNotFoundError):
        await issuer.stamp(invoice.id, OUTSIDER_ID)
    with pytest.raises(InvalidRequestError):
        await issuer.list_for_team(invoice.team_id, OUTSIDER_ID)


@pytest.mark.asyncio
async def test_list_for_team(db_session, seeded, trip_with_invoice, make_issuer):
    invoices, total = await make_issuer(db_session).list_for_team(seeded.team_id, DISPATCHER_ID)

    assert total == 1
    assert invoices[0].id == trip_with_invoice[1].id
