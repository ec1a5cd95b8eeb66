"""
Client model.

The customer a trip is billed to. Address fields are flattened because
they are only ever read as the invoice recipient address.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    tax_id = Column(String(20), nullable=True)
    tax_system = Column(String(10), nullable=True)

    zip_code = Column(String(10), nullable=True)
    street = Column(String(255), nullable=True)
    exterior_number = Column(String(20), nullable=True)
    interior_number = Column(String(20), nullable=True)
    neighborhood = Column(String(120), nullable=True)
    city = Column(String(120), nullable=True)
    state = Column(String(120), nullable=True)
    country = Column(String(3), nullable=True, default="MEX")

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}', team_id={self.team_id})>"
