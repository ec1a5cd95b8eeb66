"""
Cargo item model.

Belongs to exactly one trip; doubles as invoice line-item input.
"""

from sqlalchemy import Column, Integer, Float, String, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Cargo(Base):
    __tablename__ = "cargos"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    weight_kg = Column(Float, nullable=False)
    image_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    trip = relationship("Trip", back_populates="cargos")

    def __repr__(self):
        return f"<Cargo(id={self.id}, trip_id={self.trip_id}, name='{self.name}')>"
