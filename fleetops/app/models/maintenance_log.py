"""
Vehicle maintenance log database model.

A maintenance window takes a vehicle out of service for
[vehicle_unavailable_from, vehicle_unavailable_to).
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime, Enum, JSON, Index
from fleetops.app.core.clock import utcnow
from fleetops.app.db.session import Base
from fleetops.app.models.enums import enum_values
from fleetops.app.models.maintenance_enums import (
    MaintenanceStatus, MaintenanceType, MaintenancePriority, Currency
)


class VehicleMaintenanceLog(Base):
    """
    Maintenance window.

    Parts, diagnostics, symptoms and quality-check issues are small embedded
    lists and live in JSON columns.
    """
    __tablename__ = "vehicle_maintenance_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    maintenance_code = Column(String(30), unique=True, nullable=False, index=True)  # MAINT_250101_001
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)

    # Classification
    maintenance_type = Column(
        Enum(MaintenanceType, values_callable=enum_values, name="maintenance_type"),
        nullable=False,
        index=True
    )
    priority = Column(
        Enum(MaintenancePriority, values_callable=enum_values, name="maintenance_priority"),
        default=MaintenancePriority.MEDIUM,
        nullable=False
    )
    description = Column(Text, nullable=False)
    symptoms = Column(JSON, default=list, nullable=False)

    # Cost
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)
    currency = Column(Enum(Currency, values_callable=enum_values, name="currency"), default=Currency.INR, nullable=False)

    # Service provider
    service_provider_name = Column(String(100), nullable=False)
    service_provider_contact = Column(String(30), nullable=True)
    service_provider_address = Column(String(200), nullable=True)

    # Scheduling
    scheduled_date = Column(DateTime, nullable=False, index=True)
    estimated_duration_hours = Column(Float, nullable=True)

    # Execution
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    actual_duration_hours = Column(Float, nullable=True)

    # Availability window
    vehicle_unavailable_from = Column(DateTime, nullable=False)
    vehicle_unavailable_to = Column(DateTime, nullable=False)

    status = Column(
        Enum(MaintenanceStatus, values_callable=enum_values, name="maintenance_status"),
        default=MaintenanceStatus.SCHEDULED,
        nullable=False,
        index=True
    )

    # Work performed
    parts_replaced = Column(JSON, default=list, nullable=False)
    diagnostic_results = Column(JSON, default=list, nullable=False)
    service_notes = Column(Text, nullable=True)

    # Quality assurance
    quality_check_passed = Column(Boolean, default=False, nullable=False)
    quality_checked_by = Column(String(100), nullable=True)
    quality_checked_at = Column(DateTime, nullable=True)
    quality_issues = Column(JSON, default=list, nullable=False)

    # Management
    created_by = Column(Integer, nullable=False)
    updated_by = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index('ix_maintenance_vehicle_status', 'vehicle_id', 'status'),
    )

    def __repr__(self):
        return f"<VehicleMaintenanceLog(code='{self.maintenance_code}', vehicle_id={self.vehicle_id}, status='{self.status.value}')>"
