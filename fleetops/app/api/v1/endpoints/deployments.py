"""
Deployment API Endpoints.

Scheduling, lifecycle transitions, telemetry ingestion, analytics and the
overdue sweep.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.clock import utcnow
from fleetops.app.core.redis_client import get_redis
from fleetops.app.db.session import get_db
from fleetops.app.models.deployment import Deployment
from fleetops.app.models.deployment_enums import DeploymentStatus
from fleetops.app.schemas.deployment import (
    DeploymentCreate, DeploymentStatusUpdate, TelemetryUpdate,
    DeploymentResponse, DeploymentListResponse,
    OverdueSweepRequest, OverdueSweepResponse, DeploymentAnalyticsResponse
)
from fleetops.app.domain.deployments.deployment_service import DeploymentService
from fleetops.app.domain.deployments.transitions import (
    duration_minutes, is_overdue, progress_percentage
)

router = APIRouter(prefix="/deployments", tags=["Deployments"])


def build_deployment_response(deployment: Deployment, now: Optional[datetime] = None) -> DeploymentResponse:
    """Serialize a deployment together with its derived values."""
    now = now or utcnow()
    return DeploymentResponse.model_validate(deployment).model_copy(update={
        "duration_minutes": duration_minutes(deployment),
        "is_overdue": is_overdue(deployment, now),
        "progress_percentage": progress_percentage(deployment, now),
    })


@router.post("", response_model=DeploymentResponse, status_code=status.HTTP_201_CREATED)
async def create_deployment(
    payload: DeploymentCreate,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Schedule a deployment.

    Validates:
    - estimated_end_time after start_time, window within the maximum length
    - Vehicle exists, is active and AVAILABLE
    - Pilot exists, is active and may operate vehicles
    - No overlapping active deployment for the vehicle or the pilot
    """
    deployment = await DeploymentService.create(db, redis, payload)
    return build_deployment_response(deployment)


@router.get("", response_model=DeploymentListResponse)
async def list_deployments(
    status_filter: Optional[DeploymentStatus] = Query(None, alias="status"),
    vehicle_id: Optional[int] = Query(None),
    pilot_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """List deployments, newest first."""
    deployments, total = await DeploymentService.list_deployments(
        db, status=status_filter, vehicle_id=vehicle_id, pilot_id=pilot_id,
        page=page, page_size=page_size
    )
    now = utcnow()
    return DeploymentListResponse(
        deployments=[build_deployment_response(d, now) for d in deployments],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/active", response_model=List[DeploymentResponse])
async def list_active_deployments(db: AsyncSession = Depends(get_db)):
    """Deployments currently in progress or emergency-stopped."""
    now = utcnow()
    return [build_deployment_response(d, now) for d in await DeploymentService.list_active(db)]


@router.get("/analytics", response_model=DeploymentAnalyticsResponse)
async def get_deployment_analytics(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    pilot_id: Optional[int] = Query(None),
    vehicle_id: Optional[int] = Query(None),
    status_filter: Optional[DeploymentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db)
):
    """Totals, top pilots and vehicle utilization. Defaults to the last 30 days."""
    end = end or utcnow()
    start = start or end - timedelta(days=30)
    result = await DeploymentService.analytics(
        db, start, end, pilot_id=pilot_id, vehicle_id=vehicle_id, status=status_filter
    )
    return DeploymentAnalyticsResponse.model_validate(result)

@router.post("/sweep-overdue", response_model=OverdueSweepResponse)
async def sweep_overdue_deployments(
    payload: Optional[OverdueSweepRequest] = None,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Expire scheduled deployments whose window has passed.

    Called by an external timer. Overdue deployments on the road are
    reported, not changed.
    """
    result = await DeploymentService.sweep_overdue(db, redis, now=payload.now if payload else None)
    return OverdueSweepResponse(
        cancelled=result.cancelled,
        overdue_in_progress=result.overdue_in_progress,
        swept_at=result.swept_at
    )


@router.get("/{deployment_code}", response_model=DeploymentResponse)
async def get_deployment(
    deployment_code: str = Path(..., description="Deployment code, e.g. DEP_001_250101"),
    db: AsyncSession = Depends(get_db)
):
    deployment = await DeploymentService.get(db, deployment_code)
    return build_deployment_response(deployment)


@router.post("/{deployment_code}/status", response_model=DeploymentResponse)
async def transition_deployment(
    payload: DeploymentStatusUpdate,
    deployment_code: str = Path(...),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Change deployment status.

    Allowed:
    - scheduled -> in_progress, cancelled
    - in_progress -> completed, emergency_stop, cancelled
    - emergency_stop -> completed, cancelled
    """
    deployment = await DeploymentService.transition(
        db, redis, deployment_code, payload.status,
        changed_by=payload.changed_by,
        reason=payload.reason,
        system_generated=payload.system_generated,
        end_reason=payload.end_reason,
        end_location=payload.end_location,
        actual_cost=payload.actual_cost,
        notes=payload.notes
    )
    return build_deployment_response(deployment)


@router.post("/{deployment_code}/telemetry", response_model=DeploymentResponse)
async def update_telemetry(
    payload: TelemetryUpdate,
    deployment_code: str = Path(...),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Record a telemetry ping. Only accepted while the deployment is in progress."""
    deployment = await DeploymentService.update_telemetry(
        db, redis, deployment_code,
        location=payload.location,
        speed=payload.speed,
        battery_level=payload.battery_level,
        accuracy=payload.accuracy,
        altitude=payload.altitude,
        recorded_at=payload.recorded_at
    )
    return build_deployment_response(deployment)
