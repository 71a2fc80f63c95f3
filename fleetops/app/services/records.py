"""
Record lookups shared by the deployment and maintenance services.

Each helper raises NotFoundError instead of returning None so callers can
use the result directly.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.exceptions import NotFoundError
from fleetops.app.models.deployment import Deployment
from fleetops.app.models.maintenance_log import VehicleMaintenanceLog
from fleetops.app.models.user import User
from fleetops.app.models.vehicle import Vehicle


async def get_vehicle(db: AsyncSession, vehicle_id: int, active_only: bool = True) -> Vehicle:
    vehicle = await db.get(Vehicle, vehicle_id, populate_existing=True)
    if not vehicle or (active_only and not vehicle.is_active):
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


async def get_pilot(db: AsyncSession, pilot_id: int) -> User:
    """Active user holding a role that may operate vehicles."""
    pilot = await db.get(User, pilot_id)
    if not pilot or not pilot.can_operate_vehicles:
        raise NotFoundError("Pilot", pilot_id, message=f"Active pilot with ID {pilot_id} not found")
    return pilot


async def get_deployment(db: AsyncSession, deployment_code: str) -> Deployment:
    result = await db.execute(
        select(Deployment)
        .where(Deployment.deployment_code == deployment_code)
        .execution_options(populate_existing=True)
    )
    deployment = result.scalar_one_or_none()
    if not deployment:
        raise NotFoundError("Deployment", deployment_code)
    return deployment


async def get_maintenance(db: AsyncSession, maintenance_code: str) -> VehicleMaintenanceLog:
    result = await db.execute(
        select(VehicleMaintenanceLog)
        .where(VehicleMaintenanceLog.maintenance_code == maintenance_code)
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError("Maintenance", maintenance_code)
    return record
