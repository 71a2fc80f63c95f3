"""
Audit logging service for tracking deployment and maintenance operations.

Provides a persistent trail of who changed what, for compliance and incident review.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from fleetops.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    DEPLOYMENT_CREATED = "DEPLOYMENT_CREATED"
    DEPLOYMENT_STATUS_CHANGED = "DEPLOYMENT_STATUS_CHANGED"
    DEPLOYMENT_EXPIRED = "DEPLOYMENT_EXPIRED"

    DEPLOYMENT_INCIDENT_REPORTED = "DEPLOYMENT_INCIDENT_REPORTED"
    DEPLOYMENT_INCIDENT_RESOLVED = "DEPLOYMENT_INCIDENT_RESOLVED"
    DEPLOYMENT_MESSAGE_SENT = "DEPLOYMENT_MESSAGE_SENT"

    MAINTENANCE_CREATED = "MAINTENANCE_CREATED"
    MAINTENANCE_STATUS_CHANGED = "MAINTENANCE_STATUS_CHANGED"
    MAINTENANCE_DIAGNOSTIC_ADDED = "MAINTENANCE_DIAGNOSTIC_ADDED"
    MAINTENANCE_PART_ADDED = "MAINTENANCE_PART_ADDED"
    MAINTENANCE_QUALITY_CHECKED = "MAINTENANCE_QUALITY_CHECKED"


class AuditEntity:
    DEPLOYMENT = "deployment"
    MAINTENANCE = "maintenance"


async def log_event(
    db: AsyncSession,
    action: str,
    entity_type: str,
    entity_code: str,
    actor_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an operation to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        entity_type: Kind of record acted on (use AuditEntity constants)
        entity_code: Business identifier of the record (DEP_..., MAINT_...)
        actor_id: ID of user performing the action, None for system actions
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_code=entity_code,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_code: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        entity_code: Filter by record identifier
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_code:
        query = query.where(AuditLog.entity_code == entity_code)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
