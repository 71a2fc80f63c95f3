"""
Deployment history Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from fleetops.app.models.deployment_enums import (
    DeploymentStatus, IncidentType, IncidentSeverity,
    CommunicationType, CommunicationPriority, SignalQuality
)


class StatusChangeResponse(BaseModel):
    id: int
    previous_status: Optional[DeploymentStatus]
    new_status: DeploymentStatus
    changed_by: Optional[int]
    changed_at: datetime
    reason: Optional[str]
    system_generated: bool

    class Config:
        from_attributes = True


class LocationPingResponse(BaseModel):
    id: int
    latitude: float
    longitude: float
    address: Optional[str]
    battery_level: Optional[float]
    speed: Optional[float]
    accuracy: Optional[float]
    altitude: Optional[float]
    recorded_at: datetime

    class Config:
        from_attributes = True


class IncidentCreate(BaseModel):
    """Schema for reporting an incident during a deployment."""
    incident_type: IncidentType
    description: str = Field(..., min_length=1, max_length=1000)
    severity: IncidentSeverity = IncidentSeverity.MEDIUM
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=200)
    reported_by: int


class IncidentResolve(BaseModel):
    resolved_by: int
    resolution_notes: Optional[str] = Field(None, max_length=1000)


class IncidentResponse(BaseModel):
    id: int
    incident_type: IncidentType
    description: str
    severity: IncidentSeverity
    latitude: Optional[float]
    longitude: Optional[float]
    address: Optional[str]
    reported_by: int
    reported_at: datetime
    resolved: bool
    resolution_notes: Optional[str]
    resolved_by: Optional[int]
    resolved_at: Optional[datetime]

    class Config:
        from_attributes = True


class CommunicationCreate(BaseModel):
    communication_type: CommunicationType
    message: str = Field(..., min_length=1, max_length=500)
    sender_id: Optional[int] = None
    recipient_id: Optional[int] = None
    priority: CommunicationPriority = CommunicationPriority.MEDIUM


class CommunicationResponse(BaseModel):
    id: int
    communication_type: CommunicationType
    message: str
    sender_id: Optional[int]
    recipient_id: Optional[int]
    priority: CommunicationPriority
    is_read: bool
    sent_at: datetime

    class Config:
        from_attributes = True


class DataGapResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: float
    reason: Optional[str]

    class Config:
        from_attributes = True


class DataQuality(BaseModel):
    location_updates: int
    average_location_accuracy: Optional[float]
    signal_quality: SignalQuality
    last_ping_at: Optional[datetime]
    data_gaps: List[DataGapResponse]


class DeploymentHistoryResponse(BaseModel):
    deployment_code: str
    status_changes: List[StatusChangeResponse]
    location_pings: List[LocationPingResponse]
    incidents: List[IncidentResponse]
    communications: List[CommunicationResponse]
    data_quality: DataQuality
    metrics: Optional[dict]
    metrics_computed_at: Optional[datetime]


class MetricsResponse(BaseModel):
    """Trip metrics; ``metrics`` is null and ``reason`` set when unavailable."""
    deployment_code: str
    available: bool
    reason: Optional[str] = None
    metrics: Optional[dict] = None
    computed_at: Optional[datetime] = None
