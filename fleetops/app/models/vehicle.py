"""
Vehicle database model.

Vehicles are registered by the fleet system; the deployment core keeps their
status in agreement with active deployments and maintenance windows.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum
from fleetops.app.core.clock import utcnow
from fleetops.app.db.session import Base
from fleetops.app.models.enums import VehicleStatus, enum_values


class Vehicle(Base):
    """
    Electric fleet vehicle.

    Status and current location are written by the deployment and maintenance
    services at transition / telemetry time.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    vehicle_code = Column(String(20), unique=True, nullable=False, index=True)  # EVZ_VEH_001
    registration_number = Column(String(20), unique=True, nullable=False, index=True)
    make = Column(String(50), nullable=True)
    model = Column(String(50), nullable=True)

    # Technical specifications
    battery_capacity_kwh = Column(Float, nullable=True)
    range_km = Column(Float, nullable=True)

    # Status
    status = Column(
        Enum(VehicleStatus, values_callable=enum_values, name="vehicle_status"),
        default=VehicleStatus.AVAILABLE,
        nullable=False,
        index=True
    )
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Location & hub
    current_hub = Column(String(100), nullable=True, index=True)
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    current_address = Column(String(200), nullable=True)
    location_updated_at = Column(DateTime, nullable=True)

    # Health
    mileage_km = Column(Float, default=0.0, nullable=False)
    battery_health = Column(Float, default=100.0, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, code='{self.vehicle_code}', status='{self.status.value}')>"
