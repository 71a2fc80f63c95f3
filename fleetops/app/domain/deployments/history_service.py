"""
Deployment History Recorder.

Append-only event log per deployment: status changes, location pings,
incidents and communications. Keeps the data-quality counters current on
every ping and derives the metrics snapshot from the raw pings on demand.

The ``append_status_change`` / ``append_location_ping`` writers do not
commit; they run inside the transaction of the lifecycle operation that
triggered them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.clock import utcnow, to_naive_utc
from fleetops.app.core.config import settings
from fleetops.app.core.exceptions import ValidationError, NotFoundError
from fleetops.app.models.deployment import Deployment
from fleetops.app.models.deployment_enums import (
    DeploymentStatus, IncidentType, IncidentSeverity,
    CommunicationType, CommunicationPriority
)
from fleetops.app.models.deployment_history import (
    DeploymentHistory, DeploymentStatusChange, DeploymentLocationPing,
    DeploymentIncident, DeploymentCommunication, DeploymentDataGap
)
from fleetops.app.services.audit import log_event, AuditAction, AuditEntity
from fleetops.app.services.geo_metrics import (
    as_ping, compute_ping_metrics, running_mean, grade_signal_quality
)

logger = logging.getLogger(__name__)

REASON_INSUFFICIENT_PINGS = "insufficient_pings"
GAP_REASON_NO_TELEMETRY = "no_telemetry"


@dataclass
class MetricsResult:
    """Outcome of a metrics computation. ``metrics`` is None when unavailable."""
    available: bool
    reason: Optional[str] = None
    metrics: Optional[dict] = None
    computed_at: Optional[datetime] = None


@dataclass
class HistoryView:
    """Full event log of one deployment, ordered oldest first."""
    deployment_code: str
    history: DeploymentHistory
    status_changes: List[DeploymentStatusChange] = field(default_factory=list)
    location_pings: List[DeploymentLocationPing] = field(default_factory=list)
    incidents: List[DeploymentIncident] = field(default_factory=list)
    communications: List[DeploymentCommunication] = field(default_factory=list)
    data_gaps: List[DeploymentDataGap] = field(default_factory=list)


class HistoryService:

    @staticmethod
    async def get_or_create(db: AsyncSession, deployment: Deployment) -> DeploymentHistory:
        """Return the history header, creating it if it is missing."""
        result = await db.execute(
            select(DeploymentHistory).where(DeploymentHistory.deployment_id == deployment.id)
        )
        history = result.scalar_one_or_none()
        if history is None:
            history = DeploymentHistory(deployment_id=deployment.id)
            db.add(history)
            await db.flush()
        return history

    @staticmethod
    async def append_status_change(
        db: AsyncSession,
        deployment: Deployment,
        previous_status: Optional[DeploymentStatus],
        new_status: DeploymentStatus,
        changed_by: Optional[int],
        reason: Optional[str] = None,
        system_generated: bool = False
    ) -> DeploymentStatusChange:
        """Record one status change. ``changed_at`` is always server time."""
        history = await HistoryService.get_or_create(db, deployment)
        entry = DeploymentStatusChange(
            history_id=history.id,
            previous_status=previous_status,
            new_status=new_status,
            changed_by=changed_by,
            changed_at=utcnow(),
            reason=reason,
            system_generated=system_generated
        )
        db.add(entry)
        return entry

    @staticmethod
    async def append_location_ping(
        db: AsyncSession,
        deployment: Deployment,
        latitude: float,
        longitude: float,
        recorded_at: Optional[datetime] = None,
        address: Optional[str] = None,
        battery_level: Optional[float] = None,
        speed: Optional[float] = None,
        accuracy: Optional[float] = None,
        altitude: Optional[float] = None
    ) -> DeploymentLocationPing:
        """
        Append a ping and update the data-quality counters.

        ``recorded_at`` is device time and defaults to server time. Callers
        must hold the deployment lock so the ordering check and the running
        mean see every earlier ping.

        Raises:
            ValidationError: ping is older than the last stored one
        """
        recorded_at = to_naive_utc(recorded_at) or utcnow()
        history = await HistoryService.get_or_create(db, deployment)

        previous_at = history.last_ping_at
        if previous_at is not None and recorded_at < previous_at:
            logger.warning(
                "Rejected out-of-order ping for %s: %s < %s",
                deployment.deployment_code, recorded_at, previous_at
            )
            raise ValidationError(
                f"Ping recorded at {recorded_at.isoformat()} is older than the last ping "
                f"({previous_at.isoformat()})",
                field="recorded_at",
                details={"reason": "out_of_order"}
            )

        ping = DeploymentLocationPing(
            history_id=history.id,
            latitude=latitude,
            longitude=longitude,
            address=address,
            battery_level=battery_level,
            speed=speed,
            accuracy=accuracy,
            altitude=altitude,
            recorded_at=recorded_at
        )
        db.add(ping)

        # Data quality
        if previous_at is not None:
            gap_minutes = (recorded_at - previous_at).total_seconds() / 60
            if gap_minutes > settings.data_gap_threshold_minutes:
                db.add(DeploymentDataGap(
                    history_id=history.id,
                    start_time=previous_at,
                    end_time=recorded_at,
                    duration_minutes=gap_minutes,
                    reason=GAP_REASON_NO_TELEMETRY
                ))
                logger.info("Data gap of %.1f min on %s", gap_minutes, deployment.deployment_code)

        history.location_updates = (history.location_updates or 0) + 1
        if accuracy is not None:
            history.average_location_accuracy = running_mean(
                history.average_location_accuracy, history.accuracy_samples or 0, accuracy
            )
            history.accuracy_samples = (history.accuracy_samples or 0) + 1
            history.signal_quality = grade_signal_quality(history.average_location_accuracy)
        history.last_ping_at = recorded_at

        return ping

    @staticmethod
    async def _metrics_from_pings(db: AsyncSession, history_id: Optional[int]) -> MetricsResult:
        pings = []
        if history_id is not None:
            result = await db.execute(
                select(DeploymentLocationPing)
                .where(DeploymentLocationPing.history_id == history_id)
                .order_by(DeploymentLocationPing.recorded_at, DeploymentLocationPing.id)
            )
            pings = [as_ping(row) for row in result.scalars().all()]

        metrics = compute_ping_metrics(pings, carbon_factor=settings.carbon_factor_kg_per_km)
        if metrics is None:
            return MetricsResult(available=False, reason=REASON_INSUFFICIENT_PINGS)
        return MetricsResult(available=True, metrics=metrics.to_dict(), computed_at=utcnow())

    @staticmethod
    async def refresh_metrics(db: AsyncSession, deployment: Deployment) -> MetricsResult:
        """Recompute the snapshot from the stored pings and save it on the header."""
        history = await HistoryService.get_or_create(db, deployment)
        metrics = await HistoryService._metrics_from_pings(db, history.id)
        if metrics.available:
            history.metrics = metrics.metrics
            history.metrics_computed_at = metrics.computed_at
        return metrics

    @staticmethod
    async def compute_metrics(db: AsyncSession, deployment: Deployment) -> MetricsResult:
        """
        Derive trip metrics from the raw ping sequence.

        Read-only: nothing is written, not even a missing history header.
        Fewer than two pings gives ``available=False`` with reason
        ``insufficient_pings``.
        """
        result = await db.execute(
            select(DeploymentHistory.id).where(DeploymentHistory.deployment_id == deployment.id)
        )
        return await HistoryService._metrics_from_pings(db, result.scalar_one_or_none())

    @staticmethod
    async def store_metrics(db: AsyncSession, deployment: Deployment) -> MetricsResult:
        """Recompute and persist the snapshot on the history header."""
        metrics = await HistoryService.refresh_metrics(db, deployment)
        await db.commit()
        return metrics

    @staticmethod
    async def append_incident(
        db: AsyncSession,
        deployment: Deployment,
        incident_type: IncidentType,
        description: str,
        reported_by: int,
        severity: IncidentSeverity = IncidentSeverity.MEDIUM,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        address: Optional[str] = None
    ) -> DeploymentIncident:
        history = await HistoryService.get_or_create(db, deployment)
        incident = DeploymentIncident(
            history_id=history.id,
            incident_type=incident_type,
            description=description,
            severity=severity,
            latitude=latitude,
            longitude=longitude,
            address=address,
            reported_by=reported_by,
            reported_at=utcnow()
        )
        db.add(incident)
        await db.commit()
        await db.refresh(incident)

        logger.info(
            "Incident %s (%s) reported on %s",
            incident.incident_type.value, incident.severity.value, deployment.deployment_code
        )
        await log_event(
            db=db,
            action=AuditAction.DEPLOYMENT_INCIDENT_REPORTED,
            entity_type=AuditEntity.DEPLOYMENT,
            entity_code=deployment.deployment_code,
            actor_id=reported_by,
            metadata={
                "incident_id": incident.id,
                "incident_type": incident.incident_type.value,
                "severity": incident.severity.value
            }
        )
        return incident

    @staticmethod
    async def resolve_incident(
        db: AsyncSession,
        deployment: Deployment,
        incident_id: int,
        resolved_by: int,
        resolution_notes: Optional[str] = None
    ) -> DeploymentIncident:
        """
        Mark an incident resolved. Resolving twice keeps the first resolution.

        Raises:
            NotFoundError: incident does not belong to this deployment
        """
        history = await HistoryService.get_or_create(db, deployment)
        incident = await db.get(DeploymentIncident, incident_id)
        if not incident or incident.history_id != history.id:
            raise NotFoundError("Incident", incident_id)

        if incident.resolved:
            return incident

        incident.resolved = True
        incident.resolution_notes = resolution_notes
        incident.resolved_by = resolved_by
        incident.resolved_at = utcnow()
        await db.commit()
        await db.refresh(incident)

        await log_event(
            db=db,
            action=AuditAction.DEPLOYMENT_INCIDENT_RESOLVED,
            entity_type=AuditEntity.DEPLOYMENT,
            entity_code=deployment.deployment_code,
            actor_id=resolved_by,
            metadata={"incident_id": incident.id}
        )
        return incident

    @staticmethod
    async def append_communication(
        db: AsyncSession,
        deployment: Deployment,
        communication_type: CommunicationType,
        message: str,
        sender_id: Optional[int] = None,
        recipient_id: Optional[int] = None,
        priority: CommunicationPriority = CommunicationPriority.MEDIUM
    ) -> DeploymentCommunication:
        history = await HistoryService.get_or_create(db, deployment)
        communication = DeploymentCommunication(
            history_id=history.id,
            communication_type=communication_type,
            message=message,
            sender_id=sender_id,
            recipient_id=recipient_id,
            priority=priority,
            sent_at=utcnow()
        )
        db.add(communication)
        await db.commit()
        await db.refresh(communication)

        await log_event(
            db=db,
            action=AuditAction.DEPLOYMENT_MESSAGE_SENT,
            entity_type=AuditEntity.DEPLOYMENT,
            entity_code=deployment.deployment_code,
            actor_id=sender_id,
            metadata={
                "communication_id": communication.id,
                "communication_type": communication.communication_type.value,
                "priority": communication.priority.value
            }
        )
        return communication

    @staticmethod
    async def mark_communication_read(
        db: AsyncSession,
        deployment: Deployment,
        communication_id: int
    ) -> DeploymentCommunication:
        history = await HistoryService.get_or_create(db, deployment)
        communication = await db.get(DeploymentCommunication, communication_id)
        if not communication or communication.history_id != history.id:
            raise NotFoundError("Communication", communication_id)

        if not communication.is_read:
            communication.is_read = True
            await db.commit()
            await db.refresh(communication)
        return communication

    @staticmethod
    async def get_history(db: AsyncSession, deployment: Deployment) -> HistoryView:
        """Load the header and every child list of a deployment."""
        history = await HistoryService.get_or_create(db, deployment)

        async def _children(model, order_column):
            result = await db.execute(
                select(model).where(model.history_id == history.id).order_by(order_column, model.id)
            )
            return list(result.scalars().all())

        return HistoryView(
            deployment_code=deployment.deployment_code,
            history=history,
            status_changes=await _children(DeploymentStatusChange, DeploymentStatusChange.changed_at),
            location_pings=await _children(DeploymentLocationPing, DeploymentLocationPing.recorded_at),
            incidents=await _children(DeploymentIncident, DeploymentIncident.reported_at),
            communications=await _children(DeploymentCommunication, DeploymentCommunication.sent_at),
            data_gaps=await _children(DeploymentDataGap, DeploymentDataGap.start_time),
        )
