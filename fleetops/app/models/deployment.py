"""
Deployment database model.

A deployment reserves one vehicle and one pilot for a time window and tracks
the trip through its lifecycle.
"""

from sqlalchemy import (
    Column, Integer, String, Float, Text, ForeignKey, DateTime, Enum, Index, text
)
from fleetops.app.core.clock import utcnow
from fleetops.app.db.session import Base
from fleetops.app.models.enums import enum_values
from fleetops.app.models.deployment_enums import (
    DeploymentStatus, DeploymentPurpose, DeploymentPriority, EndReason
)

# IN_PROGRESS and EMERGENCY_STOP keep the vehicle and pilot on the road
_ON_ROAD = text("status IN ('in_progress', 'emergency_stop')")


class Deployment(Base):
    """
    Deployment model.

    Window is [start_time, estimated_end_time). While SCHEDULED, IN_PROGRESS or
    EMERGENCY_STOP the window blocks the vehicle and the pilot.
    """
    __tablename__ = "deployments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    deployment_code = Column(String(30), unique=True, nullable=False, index=True)  # DEP_001_250101

    # Assignment
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)
    pilot_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Timing
    start_time = Column(DateTime, nullable=False, index=True)
    estimated_end_time = Column(DateTime, nullable=False)
    actual_end_time = Column(DateTime, nullable=True)

    # Route
    start_lat = Column(Float, nullable=False)
    start_lng = Column(Float, nullable=False)
    start_address = Column(String(200), nullable=False)
    end_lat = Column(Float, nullable=True)
    end_lng = Column(Float, nullable=True)
    end_address = Column(String(200), nullable=True)

    # Trip details
    purpose = Column(Enum(DeploymentPurpose, values_callable=enum_values, name="deployment_purpose"), nullable=False)
    trip_distance_km = Column(Float, nullable=True)
    passenger_count = Column(Integer, default=0, nullable=False)
    description = Column(String(500), nullable=True)

    status = Column(
        Enum(DeploymentStatus, values_callable=enum_values, name="deployment_status"),
        default=DeploymentStatus.SCHEDULED,
        nullable=False,
        index=True
    )

    # Live telemetry snapshot
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    current_address = Column(String(200), nullable=True)
    location_updated_at = Column(DateTime, nullable=True)
    current_speed = Column(Float, nullable=True)  # km/h
    battery_level = Column(Float, nullable=True)  # %

    # Completion
    end_reason = Column(Enum(EndReason, values_callable=enum_values, name="deployment_end_reason"), nullable=True)
    notes = Column(Text, nullable=True)

    # Cost
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)

    priority = Column(
        Enum(DeploymentPriority, values_callable=enum_values, name="deployment_priority"),
        default=DeploymentPriority.MEDIUM,
        nullable=False
    )

    # Management
    created_by = Column(Integer, nullable=False)
    updated_by = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # One on-road deployment per vehicle and per pilot, enforced by the DB
    __table_args__ = (
        Index('ix_deployments_vehicle_status', 'vehicle_id', 'status'),
        Index('ix_deployments_pilot_status', 'pilot_id', 'status'),
        Index('ux_deployments_vehicle_on_road', 'vehicle_id', unique=True,
              postgresql_where=_ON_ROAD, sqlite_where=_ON_ROAD),
        Index('ux_deployments_pilot_on_road', 'pilot_id', unique=True,
              postgresql_where=_ON_ROAD, sqlite_where=_ON_ROAD),
    )

    def __repr__(self):
        return f"<Deployment(code='{self.deployment_code}', vehicle_id={self.vehicle_id}, status='{self.status.value}')>"
