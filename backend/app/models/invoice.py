"""
Invoice database model.

One invoice per trip (unique trip_id). Amounts are fixed at creation; the
fiscal identifiers and stored artifact URLs are filled in on stamping.
"""

from sqlalchemy import Column, Integer, Float, String, Text, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.billing_enums import InvoiceStatus


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, unique=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)

    # Financials
    subtotal = Column(Float, nullable=False)
    tax_amount = Column(Float, nullable=False)
    total = Column(Float, nullable=False)

    status = Column(Enum(InvoiceStatus), default=InvoiceStatus.DRAFT, nullable=False, index=True)

    # Fiscal document identifiers (set once stamped)
    external_invoice_id = Column(String(100), nullable=True, index=True)
    series = Column(String(25), nullable=True)
    folio = Column(String(40), nullable=True)
    uuid = Column(String(64), nullable=True)
    external_pdf_url = Column(String(500), nullable=True)
    external_xml_url = Column(String(500), nullable=True)

    # Copies kept in our own storage
    local_pdf_url = Column(String(500), nullable=True)
    local_xml_url = Column(String(500), nullable=True)

    last_error = Column(Text, nullable=True)
    cancellation_reason = Column(String(10), nullable=True)

    submitted_at = Column(DateTime, nullable=True)
    stamped_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    trip = relationship("Trip", back_populates="invoice")

    def __repr__(self):
        return f"<Invoice(id={self.id}, trip_id={self.trip_id}, status='{self.status.value}')>"
