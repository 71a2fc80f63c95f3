"""
Audit Log Database Model.

Tracks every mutating operation on deployments and maintenance windows.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from fleetops.app.core.clock import utcnow
from fleetops.app.db.session import Base


class AuditLog(Base):
    """
    Audit log entry.

    Events logged:
    - DEPLOYMENT_CREATED / DEPLOYMENT_STATUS_CHANGED
    - DEPLOYMENT_INCIDENT_REPORTED / DEPLOYMENT_INCIDENT_RESOLVED
    - MAINTENANCE_CREATED / MAINTENANCE_STATUS_CHANGED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which record it was performed on
    entity_type = Column(String(50), nullable=False, index=True)
    entity_code = Column(String(50), nullable=False, index=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_code}, actor={self.actor_id})>"
