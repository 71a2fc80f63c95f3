"""
Deployment history models.

One header row per deployment plus append-only child tables for status
changes, location pings, incidents, communications and data gaps.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime, Enum, JSON
from fleetops.app.core.clock import utcnow
from fleetops.app.db.session import Base
from fleetops.app.models.enums import enum_values
from fleetops.app.models.deployment_enums import (
    DeploymentStatus, IncidentType, IncidentSeverity,
    CommunicationType, CommunicationPriority, SignalQuality
)


class DeploymentHistory(Base):
    """
    History header.

    ``metrics`` is a recomputable snapshot, never the source of truth.
    ``location_updates`` / ``average_location_accuracy`` are maintained
    incrementally on every ping.
    """
    __tablename__ = "deployment_histories"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    deployment_id = Column(Integer, ForeignKey('deployments.id'), unique=True, nullable=False, index=True)

    # Metrics snapshot
    metrics = Column(JSON, nullable=True)
    metrics_computed_at = Column(DateTime, nullable=True)

    # Data quality
    location_updates = Column(Integer, default=0, nullable=False)
    accuracy_samples = Column(Integer, default=0, nullable=False)
    average_location_accuracy = Column(Float, nullable=True)
    signal_quality = Column(
        Enum(SignalQuality, values_callable=enum_values, name="signal_quality"),
        default=SignalQuality.GOOD,
        nullable=False
    )
    last_ping_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<DeploymentHistory(deployment_id={self.deployment_id}, pings={self.location_updates})>"


class DeploymentStatusChange(Base):
    __tablename__ = "deployment_status_changes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    history_id = Column(Integer, ForeignKey('deployment_histories.id'), nullable=False, index=True)

    previous_status = Column(Enum(DeploymentStatus, values_callable=enum_values, name="deployment_status"), nullable=True)
    new_status = Column(Enum(DeploymentStatus, values_callable=enum_values, name="deployment_status"), nullable=False)
    changed_by = Column(Integer, nullable=True)  # None for system transitions
    changed_at = Column(DateTime, default=utcnow, nullable=False, index=True)  # Server time
    reason = Column(String(500), nullable=True)
    system_generated = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<DeploymentStatusChange({self.previous_status} -> {self.new_status}, system={self.system_generated})>"


class DeploymentLocationPing(Base):
    """
    One telemetry ping.

    ``recorded_at`` is device time; rows are appended in non-decreasing
    ``recorded_at`` order per history.
    """
    __tablename__ = "deployment_location_pings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    history_id = Column(Integer, ForeignKey('deployment_histories.id'), nullable=False, index=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String(200), nullable=True)
    battery_level = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)  # meters
    altitude = Column(Float, nullable=True)

    recorded_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<DeploymentLocationPing(lat={self.latitude}, lng={self.longitude}, at={self.recorded_at})>"


class DeploymentIncident(Base):
    __tablename__ = "deployment_incidents"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    history_id = Column(Integer, ForeignKey('deployment_histories.id'), nullable=False, index=True)

    incident_type = Column(Enum(IncidentType, values_callable=enum_values, name="incident_type"), nullable=False)
    description = Column(Text, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String(200), nullable=True)
    severity = Column(
        Enum(IncidentSeverity, values_callable=enum_values, name="incident_severity"),
        default=IncidentSeverity.MEDIUM,
        nullable=False
    )
    reported_by = Column(Integer, nullable=False)
    reported_at = Column(DateTime, default=utcnow, nullable=False)

    resolved = Column(Boolean, default=False, nullable=False)
    resolution_notes = Column(Text, nullable=True)
    resolved_by = Column(Integer, nullable=True)
    resolved_at = Column(DateTime, nullable=True)


class DeploymentCommunication(Base):
    __tablename__ = "deployment_communications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    history_id = Column(Integer, ForeignKey('deployment_histories.id'), nullable=False, index=True)

    communication_type = Column(
        Enum(CommunicationType, values_callable=enum_values, name="communication_type"),
        nullable=False
    )
    message = Column(String(500), nullable=False)
    sender_id = Column(Integer, nullable=True)
    recipient_id = Column(Integer, nullable=True)
    priority = Column(
        Enum(CommunicationPriority, values_callable=enum_values, name="communication_priority"),
        default=CommunicationPriority.MEDIUM,
        nullable=False
    )
    is_read = Column(Boolean, default=False, nullable=False)
    sent_at = Column(DateTime, default=utcnow, nullable=False)


class DeploymentDataGap(Base):
    """Interval between consecutive pings longer than the gap threshold."""
    __tablename__ = "deployment_data_gaps"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    history_id = Column(Integer, ForeignKey('deployment_histories.id'), nullable=False, index=True)

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Float, nullable=False)
    reason = Column(String(100), nullable=True)
