"""
Trip database model.

A trip books one driver and one vehicle for a client journey on a route.
Trips are never deleted; cancelling is a status transition.
"""

from sqlalchemy import Column, Integer, Float, String, Text, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.trip_enums import TripStatus


class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)

    price = Column(Float, nullable=False)
    start_date = Column(DateTime, nullable=False, index=True)
    end_date = Column(DateTime, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    status = Column(Enum(TripStatus), default=TripStatus.NOT_STARTED, nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    team = relationship("Team")
    client = relationship("Client")
    driver = relationship("Driver")
    vehicle = relationship("Vehicle")
    route = relationship("Route")
    cargos = relationship(
        "Cargo",
        back_populates="trip",
        order_by="Cargo.id",
        cascade="all, delete-orphan",
    )
    invoice = relationship("Invoice", uselist=False, back_populates="trip")

    def __repr__(self):
        return f"<Trip(id={self.id}, driver_id={self.driver_id}, status='{self.status.value}')>"
