"""
Audit Log Database Model.

Records every successful mutating operation on trips and invoices.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log entry.

    actor_id is None for system actions (reconciler, automatic invoice
    creation).
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    actor_id = Column(Integer, index=True, nullable=True)
    team_id = Column(Integer, index=True, nullable=True)

    action = Column(String(100), nullable=False, index=True)
    entity = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, nullable=True, index=True)

    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity='{self.entity}', entity_id={self.entity_id})>"
