"""
Resource registry for drivers and vehicles.

Reservation is a single conditional UPDATE (check and write in one
statement), so two transactions racing for the same driver cannot both
win. The registry never commits: reservations and releases ride on the
caller's transaction together with the paired trip write.
"""

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ResourceUnavailableError
from backend.app.models.driver import Driver
from backend.app.models.trip import Trip
from backend.app.models.trip_enums import DriverStatus, VehicleStatus
from backend.app.models.vehicle import Vehicle

logger = logging.getLogger(__name__)


class ResourceRegistry:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve_driver(self, driver_id: int, trip_id: int) -> None:
        """
        Commit an available driver to a trip.

        Args:
            driver_id: Driver to reserve
            trip_id: Trip taking the driver

        Raises:
            ResourceUnavailableError: If the driver is not AVAILABLE
        """
        result = await self.db.execute(
            update(Driver)
            .where(Driver.id == driver_id, Driver.status == DriverStatus.AVAILABLE)
            .values(status=DriverStatus.ON_TRIP, current_trip_id=trip_id)
        )
        if result.rowcount != 1:
            raise ResourceUnavailableError("Driver", driver_id)

    async def reserve_vehicle(self, vehicle_id: int, trip_id: int) -> None:
        """
        Commit an available vehicle to a trip.

        Raises:
            ResourceUnavailableError: If the vehicle is not AVAILABLE
        """
        result = await self.db.execute(
            update(Vehicle)
            .where(Vehicle.id == vehicle_id, Vehicle.status == VehicleStatus.AVAILABLE)
            .values(status=VehicleStatus.IN_USE, current_trip_id=trip_id)
        )
        if result.rowcount != 1:
            raise ResourceUnavailableError("Vehicle", vehicle_id)

    async def release_driver(self, driver_id: int, trip_id: int) -> bool:
        """
        Make a driver available again if it is still held by this trip.

        Idempotent: a driver that was already released (or reassigned) is
        left untouched.

        Returns:
            True if the driver was released by this call
        """
        result = await self.db.execute(
            update(Driver)
            .where(Driver.id == driver_id, Driver.current_trip_id == trip_id)
            .values(status=DriverStatus.AVAILABLE, current_trip_id=None)
        )
        return result.rowcount > 0

    async def release_vehicle(self, vehicle_id: int, trip_id: int) -> bool:
        result = await self.db.execute(
            update(Vehicle)
            .where(Vehicle.id == vehicle_id, Vehicle.current_trip_id == trip_id)
            .values(status=VehicleStatus.AVAILABLE, current_trip_id=None)
        )
        return result.rowcount > 0

    async def release_trip_resources(self, trip: Trip) -> None:
        driver_released = await self.release_driver(trip.driver_id, trip.id)
        vehicle_released = await self.release_vehicle(trip.vehicle_id, trip.id)
        logger.debug(
            "Released resources of trip %s (driver=%s, vehicle=%s)",
            trip.id, driver_released, vehicle_released,
        )
