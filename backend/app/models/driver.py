"""
Driver model.

A driver is committed to at most one active trip at a time. The commitment
is the pair (status=ON_TRIP, current_trip_id) and is only written through
the resource registry.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.trip_enums import DriverStatus


class Driver(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False, index=True)
    license_number = Column(String(50), nullable=True)

    status = Column(Enum(DriverStatus), default=DriverStatus.AVAILABLE, nullable=False, index=True)
    # Plain column: trips already reference drivers, a second FK would be circular
    current_trip_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.name}', status='{self.status.value}')>"
