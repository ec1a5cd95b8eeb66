"""
Trip and resource enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    NOT_STARTED = "NOT_STARTED"  # Scheduled, start time not reached
    IN_PROGRESS = "IN_PROGRESS"  # Start time reached, resources in use
    COMPLETED_ON_TIME = "COMPLETED_ON_TIME"  # Closed manually before end time
    COMPLETED_LATE = "COMPLETED_LATE"  # End time passed while still in progress
    CANCELLED = "CANCELLED"  # Cancelled, trips are never deleted


class DriverStatus(str, enum.Enum):
    """Driver availability enumeration."""
    AVAILABLE = "AVAILABLE"
    ON_TRIP = "ON_TRIP"
    INACTIVE = "INACTIVE"


class VehicleStatus(str, enum.Enum):
    """Vehicle availability enumeration."""
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"
    DECOMMISSIONED = "DECOMMISSIONED"


# Trips in these states hold their driver and vehicle
ACTIVE_TRIP_STATUSES = frozenset({TripStatus.NOT_STARTED, TripStatus.IN_PROGRESS})

TERMINAL_TRIP_STATUSES = frozenset({
    TripStatus.COMPLETED_ON_TIME,
    TripStatus.COMPLETED_LATE,
    TripStatus.CANCELLED,
})
