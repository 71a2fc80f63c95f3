"""
Vehicle maintenance Pydantic schemas.

Defines request and response models for maintenance windows.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from fleetops.app.models.maintenance_enums import (
    MaintenanceStatus, MaintenanceType, MaintenancePriority, Currency,
    DiagnosticComponent, ComponentCondition, RecommendedAction, IssueSeverity
)


class MaintenanceCreate(BaseModel):
    """Schema for scheduling a maintenance window."""
    vehicle_id: int
    maintenance_type: MaintenanceType
    priority: MaintenancePriority = MaintenancePriority.MEDIUM
    description: str = Field(..., min_length=1, max_length=1000)
    symptoms: List[str] = Field(default_factory=list)

    estimated_cost: Optional[float] = Field(None, ge=0)
    currency: Currency = Currency.INR

    service_provider_name: str = Field(..., min_length=1, max_length=100)
    service_provider_contact: Optional[str] = Field(None, max_length=30)
    service_provider_address: Optional[str] = Field(None, max_length=200)

    scheduled_date: datetime
    estimated_duration_hours: Optional[float] = Field(None, ge=0.5, le=168)
    vehicle_unavailable_from: datetime
    vehicle_unavailable_to: datetime = Field(..., description="Must be after vehicle_unavailable_from")

    created_by: int


class MaintenanceStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = Field(None, max_length=500)
    updated_by: Optional[int] = None
    actual_cost: Optional[float] = Field(None, ge=0)


class DiagnosticResultCreate(BaseModel):
    component: DiagnosticComponent
    status: ComponentCondition
    details: Optional[str] = Field(None, max_length=500)
    recommended_action: RecommendedAction = RecommendedAction.NONE
    updated_by: Optional[int] = None


class ReplacedPartCreate(BaseModel):
    part_name: str = Field(..., min_length=1, max_length=100)
    part_number: Optional[str] = Field(None, max_length=50)
    quantity: int = Field(..., ge=1)
    cost: Optional[float] = Field(None, ge=0)
    supplier: Optional[str] = Field(None, max_length=100)
    warranty_months: Optional[int] = Field(None, ge=0)
    warranty_terms: Optional[str] = Field(None, max_length=500)
    updated_by: Optional[int] = None


class QualityIssue(BaseModel):
    description: str = Field(..., max_length=500)
    severity: IssueSeverity
    resolved: bool = False


class QualityCheckCreate(BaseModel):
    passed: bool
    checked_by: str = Field(..., min_length=1, max_length=100)
    issues: List[QualityIssue] = Field(default_factory=list)
    updated_by: Optional[int] = None


class MaintenanceResponse(BaseModel):
    """Maintenance window with its derived values."""
    id: int
    maintenance_code: str
    vehicle_id: int
    maintenance_type: MaintenanceType
    priority: MaintenancePriority
    status: MaintenanceStatus
    description: str
    symptoms: List[str]

    estimated_cost: Optional[float]
    actual_cost: Optional[float]
    currency: Currency

    service_provider_name: str
    service_provider_contact: Optional[str]
    service_provider_address: Optional[str]

    scheduled_date: datetime
    estimated_duration_hours: Optional[float]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    actual_duration_hours: Optional[float]
    vehicle_unavailable_from: datetime
    vehicle_unavailable_to: datetime

    parts_replaced: List[dict]
    diagnostic_results: List[dict]
    service_notes: Optional[str]

    quality_check_passed: bool
    quality_checked_by: Optional[str]
    quality_checked_at: Optional[datetime]
    quality_issues: List[dict]

    created_by: int
    updated_by: Optional[int]
    created_at: datetime
    updated_at: datetime

    # Derived
    duration_hours: Optional[float] = None
    cost_variance: Optional[float] = None
    cost_variance_percentage: Optional[float] = None
    total_parts_cost: Optional[float] = None
    is_overdue: Optional[bool] = None

    class Config:
        from_attributes = True


class MaintenanceTypeStats(BaseModel):
    maintenance_type: MaintenanceType
    count: int
    total_cost: float
    avg_cost: Optional[float]
    avg_duration_hours: Optional[float]
