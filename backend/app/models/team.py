"""
Team, membership and fiscal profile models.

Teams own every other record. Membership is what the authorization check
consults; the fiscal profile feeds invoice stamping.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import TeamRole


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    fiscal_profile = relationship("TeamFiscalProfile", uselist=False, back_populates="team")

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}')>"


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    role = Column(Enum(TeamRole), default=TeamRole.MEMBER, nullable=False)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )

    def __repr__(self):
        return f"<TeamMember(team_id={self.team_id}, user_id={self.user_id}, role='{self.role.value}')>"


class TeamFiscalProfile(Base):
    """
    Issuer data and invoice defaults for a team.

    A team without a profile can still create draft invoices, it just
    cannot stamp them.
    """
    __tablename__ = "team_fiscal_profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, unique=True, index=True)

    legal_name = Column(String(255), nullable=False)
    tax_id = Column(String(20), nullable=False)
    tax_system = Column(String(10), nullable=False)
    zip_code = Column(String(10), nullable=False)

    # Defaults used when assembling invoice line items
    default_product_key = Column(String(20), nullable=False, default="78101800")
    default_product_description = Column(String(255), nullable=False, default="Servicio de transporte de carga")
    default_cfdi_use = Column(String(10), nullable=False, default="G03")
    default_payment_form = Column(String(10), nullable=False, default="03")
    default_payment_method = Column(String(10), nullable=False, default="PUE")

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    team = relationship("Team", back_populates="fiscal_profile")

    def __repr__(self):
        return f"<TeamFiscalProfile(team_id={self.team_id}, tax_id='{self.tax_id}')>"
