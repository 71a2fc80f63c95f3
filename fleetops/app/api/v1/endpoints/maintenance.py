"""
Vehicle Maintenance API Endpoints.

Maintenance windows, their lifecycle and the work recorded against them.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.clock import utcnow
from fleetops.app.core.redis_client import get_redis
from fleetops.app.db.session import get_db
from fleetops.app.models.maintenance_log import VehicleMaintenanceLog
from fleetops.app.schemas.maintenance import (
    MaintenanceCreate, MaintenanceStatusUpdate, MaintenanceResponse,
    DiagnosticResultCreate, ReplacedPartCreate, QualityCheckCreate,
    MaintenanceTypeStats
)
from fleetops.app.domain.maintenance.maintenance_service import MaintenanceService
from fleetops.app.domain.maintenance import transitions

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


def build_maintenance_response(
    record: VehicleMaintenanceLog,
    now: Optional[datetime] = None
) -> MaintenanceResponse:
    """Serialize a maintenance window together with its derived values."""
    now = now or utcnow()
    return MaintenanceResponse.model_validate(record).model_copy(update={
        "duration_hours": transitions.duration_hours(record),
        "cost_variance": transitions.cost_variance(record),
        "cost_variance_percentage": transitions.cost_variance_percentage(record),
        "total_parts_cost": transitions.total_parts_cost(record),
        "is_overdue": transitions.is_overdue(record, now),
    })


@router.post("", response_model=MaintenanceResponse, status_code=status.HTTP_201_CREATED)
async def create_maintenance(
    payload: MaintenanceCreate,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Schedule a maintenance window.

    Validates:
    - vehicle_unavailable_to after vehicle_unavailable_from
    - Vehicle exists
    - No overlapping active maintenance window for the vehicle
    """
    record = await MaintenanceService.create(db, redis, payload)
    return build_maintenance_response(record)


@router.get("/due", response_model=List[MaintenanceResponse])
async def get_due_maintenance(
    days: Optional[int] = Query(None, ge=0, le=365),
    db: AsyncSession = Depends(get_db)
):
    """Scheduled maintenance due within ``days`` days (default from settings)."""
    now = utcnow()
    return [build_maintenance_response(m, now) for m in await MaintenanceService.due_maintenance(db, days, now)]


@router.get("/stats", response_model=List[MaintenanceTypeStats])
async def get_maintenance_stats(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Statistics per maintenance type. Defaults to the last 30 days."""
    end = end or utcnow()
    start = start or end - timedelta(days=30)
    return await MaintenanceService.stats_by_type(db, start, end)


@router.get("/{maintenance_code}", response_model=MaintenanceResponse)
async def get_maintenance(
    maintenance_code: str = Path(..., description="Maintenance code, e.g. MAINT_250101_001"),
    db: AsyncSession = Depends(get_db)
):
    return build_maintenance_response(await MaintenanceService.get(db, maintenance_code))


@router.post("/{maintenance_code}/status", response_model=MaintenanceResponse)
async def transition_maintenance(
    payload: MaintenanceStatusUpdate,
    maintenance_code: str = Path(...),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Change maintenance status.

    Allowed:
    - scheduled -> in_progress, cancelled, delayed
    - in_progress -> completed, failed, delayed
    - cancelled -> scheduled
    - delayed -> scheduled, in_progress, cancelled
    - failed -> scheduled, cancelled
    """
    record = await MaintenanceService.transition(
        db, redis, maintenance_code, payload.status,
        updated_by=payload.updated_by,
        notes=payload.notes,
        actual_cost=payload.actual_cost
    )
    return build_maintenance_response(record)


@router.post("/{maintenance_code}/diagnostics", response_model=MaintenanceResponse)
async def add_diagnostic_result(
    payload: DiagnosticResultCreate,
    maintenance_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    record = await MaintenanceService.add_diagnostic_result(db, maintenance_code, payload)
    return build_maintenance_response(record)


@router.post("/{maintenance_code}/parts", response_model=MaintenanceResponse)
async def add_replaced_part(
    payload: ReplacedPartCreate,
    maintenance_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    record = await MaintenanceService.add_replaced_part(db, maintenance_code, payload)
    return build_maintenance_response(record)


@router.post("/{maintenance_code}/quality-check", response_model=MaintenanceResponse)
async def record_quality_check(
    payload: QualityCheckCreate,
    maintenance_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Record the quality-check outcome of completed or failed work."""
    record = await MaintenanceService.record_quality_check(db, maintenance_code, payload)
    return build_maintenance_response(record)
