"""
Trip persistence.

Queries and writes for trips and their cargo rows. Like the registry, the
store only flushes; the lifecycle manager and the reconciler decide when a
transaction commits.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.db import base  # noqa: F401  (registers every model before loader options are built)
from backend.app.models.cargo import Cargo
from backend.app.models.client import Client
from backend.app.models.driver import Driver
from backend.app.models.team import TeamMember
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import TripStatus
from backend.app.models.vehicle import Vehicle

_DETAILS = (
    selectinload(Trip.client),
    selectinload(Trip.driver),
    selectinload(Trip.vehicle),
    selectinload(Trip.route),
    selectinload(Trip.cargos),
    selectinload(Trip.invoice),
)


class TripStore:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, trip: Trip, cargos: Iterable[dict] = ()) -> Trip:
        trip.cargos = [Cargo(**item) for item in cargos]
        self.db.add(trip)
        await self.db.flush()  # assigns trip.id
        return trip

    async def get(self, trip_id: int) -> Optional[Trip]:
        result = await self.db.execute(
            select(Trip)
            .options(*_DETAILS)
            .where(Trip.id == trip_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_actor(self, trip_id: int, actor_id: int) -> Optional[Trip]:
        """
        Load a trip only if the actor is a member of the trip's team.

        Returns:
            The trip with its relations loaded, or None
        """
        result = await self.db.execute(
            select(Trip)
            .options(*_DETAILS)
            .join(TeamMember, TeamMember.team_id == Trip.team_id)
            .where(Trip.id == trip_id, TeamMember.user_id == actor_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_team(
        self,
        team_id: int,
        search: Optional[str] = None,
        status: Optional[TripStatus] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Trip], int]:
        """
        Page through a team's trips, newest first.

        ``search`` matches client name, driver name or vehicle plate
        (case-insensitive).
        """
        conditions = [Trip.team_id == team_id]
        if status:
            conditions.append(Trip.status == status)
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                Client.name.ilike(pattern),
                Driver.name.ilike(pattern),
                Vehicle.plate.ilike(pattern),
            ))

        base = (
            select(Trip.id)
            .join(Client, Client.id == Trip.client_id)
            .join(Driver, Driver.id == Trip.driver_id)
            .join(Vehicle, Vehicle.id == Trip.vehicle_id)
            .where(*conditions)
        )

        total_result = await self.db.execute(select(func.count()).select_from(base.subquery()))
        total = total_result.scalar()

        offset = (page - 1) * page_size
        trip_result = await self.db.execute(
            select(Trip)
            .options(*_DETAILS)
            .where(Trip.id.in_(base))
            .order_by(Trip.created_at.desc(), Trip.id.desc())
            .offset(offset)
            .limit(page_size)
        )
        return list(trip_result.scalars().all()), total

    async def replace_cargos(self, trip: Trip, cargos: Iterable[dict]) -> None:
        """Delete every cargo row of the trip and insert the new list."""
        trip.cargos = [Cargo(**item) for item in cargos]
        await self.db.flush()

    async def transition_where(self, status_from: TripStatus, status_to: TripStatus, *predicates) -> int:
        """
        Conditional batch status write.

        The current status is re-checked in the UPDATE itself, so a trip that
        moved on between a scan and the write is never overwritten.

        Returns:
            Number of trips transitioned
        """
        result = await self.db.execute(
            update(Trip)
            .where(Trip.status == status_from, *predicates)
            .values(status=status_to)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def start_due_trips(self, now: datetime) -> int:
        """Move every NOT_STARTED trip whose start time has passed to IN_PROGRESS."""
        return await self.transition_where(
            TripStatus.NOT_STARTED, TripStatus.IN_PROGRESS, Trip.start_date <= now
        )

    async def find_overdue(self, now: datetime) -> List[Trip]:
        result = await self.db.execute(
            select(Trip).where(Trip.status == TripStatus.IN_PROGRESS, Trip.end_date < now)
        )
        return list(result.scalars().all())

    async def transition_if(self, trip_id: int, expected: TripStatus, target: TripStatus) -> bool:
        """Single-trip conditional write; False if the trip is no longer in ``expected``."""
        return await self.transition_where(expected, target, Trip.id == trip_id) == 1
