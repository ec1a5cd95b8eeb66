"""
Trip API Endpoints.

Create, inspect, edit and cancel trips. All routes are scoped to the
teams the authenticated user belongs to.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from backend.app.core.dependencies import get_current_user, get_trip_manager
from backend.app.domain.dispatch.trip_lifecycle import TripLifecycleManager
from backend.app.models.trip_enums import TripStatus
from backend.app.schemas.trip import (
    TripCreate,
    TripListResponse,
    TripResponse,
    TripStatusUpdate,
    TripUpdate,
)

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.get("", response_model=TripListResponse)
async def list_trips(
    team_id: int = Query(..., description="Team whose trips are listed"),
    search: Optional[str] = Query(None, description="Client name, driver name or vehicle plate"),
    status_filter: Optional[TripStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    """List a team's trips, newest first."""
    trips, total = await manager.list(
        team_id,
        current_user["user_id"],
        search=search,
        status=status_filter,
        page=page,
        page_size=page_size,
    )
    return TripListResponse(
        trips=[TripResponse.model_validate(trip) for trip in trips],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    return await manager.get(trip_id, current_user["user_id"])


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: dict = Depends(get_current_user),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    """
    Create a trip.

    Reserves the driver and the vehicle; returns 409 if either is already
    committed elsewhere. A draft invoice is created for the trip when
    possible.
    """
    return await manager.create(trip_data, current_user["user_id"])


@router.patch("/{trip_id}/status", response_model=TripResponse)
async def update_trip_status(
    status_update: TripStatusUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    """
    Change a trip's status manually.

    Completing or cancelling a trip makes its driver and vehicle available
    again. Finished and cancelled trips cannot be reopened.
    """
    return await manager.update_status(trip_id, status_update.status, current_user["user_id"])


@router.put("/{trip_id}", response_model=TripResponse)
async def update_trip(
    trip_update: TripUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    """Update notes and/or replace the cargo list."""
    return await manager.update(trip_id, trip_update, current_user["user_id"])


@router.delete("/{trip_id}", response_model=TripResponse)
async def cancel_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(get_current_user),
    manager: TripLifecycleManager = Depends(get_trip_manager),
):
    """Cancel a trip. Trips are kept for history, never deleted."""
    return await manager.remove(trip_id, current_user["user_id"])
