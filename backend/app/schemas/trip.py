"""
Trip schemas.

Request bodies for trip creation and edits, and the trip views returned by
the API. Datetimes carrying an offset are normalized to naive UTC.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime

from backend.app.core.clock import to_naive_utc
from backend.app.models.trip_enums import TripStatus


class CargoIn(BaseModel):
    """One cargo item carried on a trip."""
    name: str = Field(..., min_length=1, max_length=200)
    weight_kg: float = Field(..., ge=0)
    image_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class CargoResponse(BaseModel):
    id: int
    name: str
    weight_kg: float
    image_url: Optional[str]
    notes: Optional[str]

    class Config:
        from_attributes = True


class TripCreate(BaseModel):
    """Schema for creating a trip."""
    team_id: int
    client_id: int
    driver_id: int
    vehicle_id: int
    route_id: int
    price: float = Field(..., ge=0)
    start_date: datetime
    end_date: datetime
    notes: Optional[str] = None
    cargos: List[CargoIn] = []

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_dates(self) -> "TripCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class TripStatusUpdate(BaseModel):
    status: TripStatus


class TripUpdate(BaseModel):
    """
    Editable trip fields.

    Only notes and the cargo list can change after creation. A cargo list,
    when given, replaces the existing one entirely.
    """
    notes: Optional[str] = None
    cargos: Optional[List[CargoIn]] = None


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    team_id: int
    client_id: int
    driver_id: int
    vehicle_id: int
    route_id: int
    price: float
    start_date: datetime
    end_date: datetime
    notes: Optional[str]
    status: TripStatus
    created_at: datetime
    updated_at: datetime
    cargos: List[CargoResponse] = []

    class Config:
        from_attributes = True


class TripListResponse(BaseModel):
    """Schema for paginated trip list."""
    trips: List[TripResponse]
    total: int
    page: int
    page_size: int

