"""
Trip Lifecycle Manager (Domain Logic).

Creation with atomic driver/vehicle reservation, manual status changes,
edits and cancellation. Every status write that ends a trip releases its
resources in the same transaction.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import (
    InvalidRequestError,
    InvalidStateError,
    ResourceNotFoundError,
)
from backend.app.domain.dispatch.resource_registry import ResourceRegistry
from backend.app.domain.dispatch.trip_store import TripStore
from backend.app.domain.invoicing.invoice_issuer import InvoiceIssuer
from backend.app.domain.state_machine import ensure_trip_transition, is_terminal
from backend.app.models.client import Client
from backend.app.models.driver import Driver
from backend.app.models.route import Route
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus
from backend.app.models.vehicle import Vehicle
from backend.app.schemas.trip import TripCreate, TripUpdate
from backend.app.services.audit import AuditAction, AuditEntity, AuditLogger
from backend.app.services.authorization import TeamAuthorizer

logger = logging.getLogger(__name__)


class TripLifecycleManager:

    def __init__(
        self,
        db: AsyncSession,
        registry: ResourceRegistry,
        store: TripStore,
        authorizer: TeamAuthorizer,
        invoice_issuer: InvoiceIssuer,
        audit: AuditLogger,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry
        self.store = store
        self.authorizer = authorizer
        self.invoice_issuer = invoice_issuer
        self.audit = audit
        self.clock = clock

    async def _ensure_member(self, team_id: int, actor_id: int) -> None:
        if not await self.authorizer.has_role(actor_id, team_id):
            raise InvalidRequestError("User does not belong to the team", details={"team_id": team_id})

    async def _ensure_team_resources(self, request: TripCreate) -> None:
        """Client, driver, vehicle and route must all exist inside the trip's team."""
        references = (
            ("Client", Client, request.client_id),
            ("Driver", Driver, request.driver_id),
            ("Vehicle", Vehicle, request.vehicle_id),
            ("Route", Route, request.route_id),
        )
        for name, model, resource_id in references:
            result = await self.db.execute(
                select(model.id).where(model.id == resource_id, model.team_id == request.team_id)
            )
            if result.scalar_one_or_none() is None:
                raise ResourceNotFoundError(name, resource_id)

    async def _get_visible(self, trip_id: int, actor_id: int) -> Trip:
        trip = await self.store.get_for_actor(trip_id, actor_id)
        if trip is None:
            raise ResourceNotFoundError("Trip", trip_id)
        return trip

    async def create(self, request: TripCreate, actor_id: int) -> Trip:
        """
        Create a trip and commit its driver and vehicle to it.

        The trip row, its cargo rows and both reservations are one
        transaction. Invoice creation runs afterwards and cannot undo the
        trip.

        Raises:
            InvalidRequestError: Actor is not a member of the team
            ResourceNotFoundError: A referenced record is missing from the team
            ResourceUnavailableError: Driver or vehicle is not available
        """
        await self._ensure_member(request.team_id, actor_id)
        await self._ensure_team_resources(request)

        now = self.clock()
        initial_status = TripStatus.IN_PROGRESS if request.start_date <= now else TripStatus.NOT_STARTED

        trip = Trip(
            team_id=request.team_id,
            client_id=request.client_id,
            driver_id=request.driver_id,
            vehicle_id=request.vehicle_id,
            route_id=request.route_id,
            price=request.price,
            start_date=request.start_date,
            end_date=request.end_date,
            notes=request.notes,
            status=initial_status,
        )

        try:
            await self.store.add(trip, [cargo.model_dump() for cargo in request.cargos])
            await self.registry.reserve_driver(request.driver_id, trip.id)
            await self.registry.reserve_vehicle(request.vehicle_id, trip.id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        trip_id = trip.id
        logger.info(
            "Created trip %s (driver=%s, vehicle=%s, status=%s)",
            trip_id, request.driver_id, request.vehicle_id, initial_status.value,
        )
        await self.audit.record(
            AuditAction.TRIP_CREATED, AuditEntity.TRIP, trip_id,
            actor_id=actor_id, team_id=request.team_id,
            metadata={
                "driver_id": request.driver_id,
                "vehicle_id": request.vehicle_id,
                "status": initial_status.value,
            },
        )

        try:
            await self.invoice_issuer.create_from_trip(trip_id)
        except Exception:
            logger.exception("Error creating invoice for trip %s", trip_id)

        return await self.store.get(trip_id)

    async def _transition(self, trip: Trip, target: TripStatus, actor_id: int, action: str) -> Trip:
        previous = trip.status
        if not ensure_trip_transition(previous, target):
            logger.debug("Trip %s already %s", trip.id, target.value)
            return trip

        trip_id = trip.id
        try:
            applied = await self.store.transition_if(trip_id, previous, target)
            if applied and is_terminal(target):
                await self.registry.release_trip_resources(trip)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if not applied:
            # Another request moved the trip first; the same outcome is not a conflict
            current = await self.store.get(trip_id)
            if current is not None and current.status == target:
                return current
            raise InvalidStateError(
                "Trip status changed concurrently",
                details={"trip_id": trip_id, "expected": previous.value},
            )

        logger.info("Trip %s moved %s -> %s", trip_id, previous.value, target.value)
        await self.audit.record(
            action, AuditEntity.TRIP, trip_id,
            actor_id=actor_id, team_id=trip.team_id,
            metadata={"from": previous.value, "to": target.value},
        )
        return await self.store.get(trip_id)

    async def update_status(self, trip_id: int, new_status: TripStatus, actor_id: int) -> Trip:
        """
        Manually change a trip's status.

        Writing the current status again is a no-op. A finished trip can be
        corrected to another terminal status. Moving to a terminal
        status releases the driver and vehicle atomically with the write.

        Raises:
            ResourceNotFoundError: Trip missing or not visible to the actor
            InvalidStateError: A finished trip would be reactivated
        """
        trip = await self._get_visible(trip_id, actor_id)
        action = AuditAction.TRIP_CANCELLED if new_status == TripStatus.CANCELLED else AuditAction.TRIP_STATUS_CHANGED
        return await self._transition(trip, new_status, actor_id, action)

    async def update(self, trip_id: int, patch: TripUpdate, actor_id: int) -> Trip:
        """Edit notes and/or replace the cargo list."""
        trip = await self._get_visible(trip_id, actor_id)
        changed = sorted(patch.model_dump(exclude_unset=True))

        try:
            if "notes" in changed:
                trip.notes = patch.notes
            if patch.cargos is not None:
                await self.store.replace_cargos(trip, [cargo.model_dump() for cargo in patch.cargos])
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.audit.record(
            AuditAction.TRIP_UPDATED, AuditEntity.TRIP, trip_id,
            actor_id=actor_id, team_id=trip.team_id, metadata={"fields": changed},
        )
        return await self.store.get(trip_id)

    async def remove(self, trip_id: int, actor_id: int) -> Trip:
        """
        Cancel a trip. Trips are never deleted.

        Cancelling an already cancelled trip succeeds without changes.
        """
        trip = await self._get_visible(trip_id, actor_id)
        return await self._transition(trip, TripStatus.CANCELLED, actor_id, AuditAction.TRIP_CANCELLED)

    async def get(self, trip_id: int, actor_id: int) -> Trip:
        return await self._get_visible(trip_id, actor_id)

    async def list(
        self,
        team_id: int,
        actor_id: int,
        search: Optional[str] = None,
        status: Optional[TripStatus] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Trip], int]:
        await self._ensure_member(team_id, actor_id)
        return await self.store.list_for_team(team_id, search=search, status=status, page=page, page_size=page_size)
