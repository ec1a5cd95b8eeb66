"""
Audit logging service.

Every successful mutating operation on trips and invoices leaves an
AuditLog row. Audit writes run after the business transaction committed
and never fail the operation they describe.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Standardized audit action constants."""
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_UPDATED = "TRIP_UPDATED"
    TRIP_STATUS_CHANGED = "TRIP_STATUS_CHANGED"
    TRIP_CANCELLED = "TRIP_CANCELLED"
    TRIPS_RECONCILED = "TRIPS_RECONCILED"

    INVOICE_CREATED = "INVOICE_CREATED"
    INVOICE_STAMPED = "INVOICE_STAMPED"
    INVOICE_STAMP_FAILED = "INVOICE_STAMP_FAILED"
    INVOICE_RETRY = "INVOICE_RETRY"
    INVOICE_CANCELLED = "INVOICE_CANCELLED"


class AuditEntity:
    TRIP = "TRIP"
    INVOICE = "INVOICE"


class AuditLogger:
    """Writes audit rows through the request's session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: str,
        entity: str,
        entity_id: Optional[int] = None,
        actor_id: Optional[int] = None,
        team_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Persist one audit entry in its own commit.

        Args:
            action: One of the AuditAction constants
            entity: AuditEntity constant
            entity_id: ID of the trip or invoice
            actor_id: Acting user, None for system actions
            team_id: Owning team
            metadata: Additional context as JSON

        Returns:
            The AuditLog row, or None if it could not be written
        """
        audit_log = AuditLog(
            actor_id=actor_id,
            team_id=team_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            meta_data=metadata,
        )
        try:
            self.db.add(audit_log)
            await self.db.commit()
            await self.db.refresh(audit_log)
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to write audit log %s for %s %s", action, entity, entity_id)
            return None
        return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity:
        query = query.where(AuditLog.entity == entity)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
