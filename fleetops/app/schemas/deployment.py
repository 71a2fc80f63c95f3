"""
Deployment Pydantic schemas.

Defines request and response models for the deployment lifecycle.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from fleetops.app.models.deployment_enums import (
    DeploymentStatus, DeploymentPurpose, DeploymentPriority, EndReason
)


class Location(BaseModel):
    """A point with an optional human-readable address."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=200)


class StartLocation(Location):
    address: str = Field(..., min_length=1, max_length=200)


class DeploymentCreate(BaseModel):
    """Schema for scheduling a deployment."""
    vehicle_id: int
    pilot_id: int
    start_time: datetime
    estimated_end_time: datetime = Field(..., description="Must be after start_time")

    start_location: StartLocation
    end_location: Optional[Location] = None

    purpose: DeploymentPurpose
    passenger_count: int = Field(0, ge=0, le=8)
    description: Optional[str] = Field(None, max_length=500)
    priority: DeploymentPriority = DeploymentPriority.MEDIUM
    estimated_cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)

    created_by: int = Field(..., description="User scheduling the deployment")


class DeploymentStatusUpdate(BaseModel):
    """
    Schema for a status transition.

    ``status`` is a plain string so an unknown value is reported as an
    invalid transition rather than a schema error.
    """
    status: str
    reason: Optional[str] = Field(None, max_length=500)
    changed_by: Optional[int] = None
    system_generated: bool = Field(False, description="Set by timers and other automated callers")
    end_reason: Optional[EndReason] = None
    end_location: Optional[Location] = None
    actual_cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class TelemetryUpdate(BaseModel):
    """Schema for one telemetry ping from the vehicle."""
    location: Location
    speed: Optional[float] = Field(None, ge=0, le=200, description="km/h")
    battery_level: Optional[float] = Field(None, ge=0, le=100, description="%")
    accuracy: Optional[float] = Field(None, ge=0, description="meters")
    altitude: Optional[float] = None
    recorded_at: Optional[datetime] = Field(None, description="Device time, defaults to server time")


class DeploymentResponse(BaseModel):
    """Deployment with its derived values."""
    id: int
    deployment_code: str
    vehicle_id: int
    pilot_id: int
    status: DeploymentStatus

    start_time: datetime
    estimated_end_time: datetime
    actual_end_time: Optional[datetime]

    start_lat: float
    start_lng: float
    start_address: str
    end_lat: Optional[float]
    end_lng: Optional[float]
    end_address: Optional[str]

    purpose: DeploymentPurpose
    priority: DeploymentPriority
    trip_distance_km: Optional[float]
    passenger_count: int
    description: Optional[str]

    current_lat: Optional[float]
    current_lng: Optional[float]
    current_address: Optional[str]
    location_updated_at: Optional[datetime]
    current_speed: Optional[float]
    battery_level: Optional[float]

    end_reason: Optional[EndReason]
    notes: Optional[str]
    estimated_cost: Optional[float]
    actual_cost: Optional[float]

    created_by: int
    updated_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    # Derived
    duration_minutes: Optional[float] = None
    is_overdue: Optional[bool] = None
    progress_percentage: Optional[float] = None

    class Config:
        from_attributes = True


class DeploymentListResponse(BaseModel):
    """Schema for paginated deployment list."""
    deployments: List[DeploymentResponse]
    total: int
    page: int
    page_size: int


class PilotPerformance(BaseModel):
    pilot_id: int
    pilot_name: Optional[str]
    deployment_count: int
    completion_rate: float
    total_distance_km: float


class VehicleUtilization(BaseModel):
    vehicle_id: int
    vehicle_code: str
    deployment_count: int
    total_hours: float


class DeploymentAnalyticsResponse(BaseModel):
    """Deployment totals for a creation-date range."""
    start: datetime
    end: datetime
    total: int
    completed: int
    cancelled: int
    average_duration_minutes: Optional[float]
    total_distance_km: float
    top_pilots: List[PilotPerformance]
    vehicle_utilization: List[VehicleUtilization]

    class Config:
        from_attributes = True


class OverdueSweepRequest(BaseModel):
    now: Optional[datetime] = Field(None, description="Reference time, defaults to server time")


class OverdueSweepResponse(BaseModel):
    cancelled: List[str]
    overdue_in_progress: List[str]
    swept_at: datetime


class WindowReservation(BaseModel):
    """An active reservation blocking a vehicle."""
    code: str
    status: str
    start: datetime
    end: datetime


class VehicleAvailabilityResponse(BaseModel):
    vehicle_id: int
    vehicle_status: str
    start: datetime
    end: datetime
    available: bool
    deployment_conflicts: List[WindowReservation]
    maintenance_conflicts: List[WindowReservation]
