"""
Vehicle and pilot views of deployments and maintenance.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.clock import utcnow
from fleetops.app.db.session import get_db
from fleetops.app.models.deployment_enums import DeploymentStatus
from fleetops.app.schemas.deployment import (
    DeploymentResponse, VehicleAvailabilityResponse, WindowReservation
)
from fleetops.app.schemas.maintenance import MaintenanceResponse
from fleetops.app.services.window_index import VEHICLE_DEPLOYMENTS, VEHICLE_MAINTENANCE
from fleetops.app.domain.deployments.deployment_service import DeploymentService
from fleetops.app.domain.maintenance.maintenance_service import MaintenanceService
from fleetops.app.api.v1.endpoints.deployments import build_deployment_response
from fleetops.app.api.v1.endpoints.maintenance import build_maintenance_response

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])
pilot_router = APIRouter(prefix="/pilots", tags=["Pilots"])


def _reservation(pool, record) -> WindowReservation:
    start, end = pool.window_of(record)
    return WindowReservation(
        code=pool.code_of(record),
        status=record.status.value,
        start=start,
        end=end
    )


@router.get("/{vehicle_id}/deployments", response_model=List[DeploymentResponse])
async def get_vehicle_deployments(
    vehicle_id: int = Path(...),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    """Deployment history of a vehicle, most recent first."""
    now = utcnow()
    deployments = await DeploymentService.vehicle_deployments(db, vehicle_id, limit=limit)
    return [build_deployment_response(d, now) for d in deployments]


@router.get("/{vehicle_id}/availability", response_model=VehicleAvailabilityResponse)
async def get_vehicle_availability(
    vehicle_id: int = Path(...),
    start: datetime = Query(...),
    end: datetime = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """Active deployments and maintenance windows overlapping [start, end)."""
    report = await DeploymentService.vehicle_availability(db, vehicle_id, start, end)
    return VehicleAvailabilityResponse(
        vehicle_id=report.vehicle_id,
        vehicle_status=report.vehicle_status.value,
        start=report.start,
        end=report.end,
        available=report.available,
        deployment_conflicts=[_reservation(VEHICLE_DEPLOYMENTS, d) for d in report.deployment_conflicts],
        maintenance_conflicts=[_reservation(VEHICLE_MAINTENANCE, m) for m in report.maintenance_conflicts]
    )


@router.get("/{vehicle_id}/maintenance", response_model=List[MaintenanceResponse])
async def get_vehicle_maintenance(
    vehicle_id: int = Path(...),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Maintenance history of a vehicle, latest scheduled first."""
    now = utcnow()
    history = await MaintenanceService.vehicle_history(db, vehicle_id, limit=limit)
    return [build_maintenance_response(m, now) for m in history]


@pilot_router.get("/{pilot_id}/deployments", response_model=List[DeploymentResponse])
async def get_pilot_deployments(
    pilot_id: int = Path(...),
    status_filter: Optional[DeploymentStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    now = utcnow()
    deployments = await DeploymentService.pilot_deployments(db, pilot_id, status=status_filter, limit=limit)
    return [build_deployment_response(d, now) for d in deployments]
