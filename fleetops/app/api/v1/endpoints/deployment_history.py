"""
Deployment History API Endpoints.

Event log, incidents, communications and trip metrics of a deployment.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.db.session import get_db
from fleetops.app.schemas.deployment_history import (
    DeploymentHistoryResponse, DataQuality, DataGapResponse,
    StatusChangeResponse, LocationPingResponse,
    IncidentCreate, IncidentResolve, IncidentResponse,
    CommunicationCreate, CommunicationResponse, MetricsResponse
)
from fleetops.app.services import records
from fleetops.app.domain.deployments.history_service import HistoryService

router = APIRouter(prefix="/deployments", tags=["Deployment History"])


@router.get("/{deployment_code}/history", response_model=DeploymentHistoryResponse)
async def get_deployment_history(
    deployment_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Full event log, oldest first, with data-quality counters."""
    deployment = await records.get_deployment(db, deployment_code)
    view = await HistoryService.get_history(db, deployment)
    header = view.history

    return DeploymentHistoryResponse(
        deployment_code=view.deployment_code,
        status_changes=[StatusChangeResponse.model_validate(c) for c in view.status_changes],
        location_pings=[LocationPingResponse.model_validate(p) for p in view.location_pings],
        incidents=[IncidentResponse.model_validate(i) for i in view.incidents],
        communications=[CommunicationResponse.model_validate(c) for c in view.communications],
        data_quality=DataQuality(
            location_updates=header.location_updates or 0,
            average_location_accuracy=header.average_location_accuracy,
            signal_quality=header.signal_quality,
            last_ping_at=header.last_ping_at,
            data_gaps=[DataGapResponse.model_validate(g) for g in view.data_gaps]
        ),
        metrics=header.metrics,
        metrics_computed_at=header.metrics_computed_at
    )


def _metrics_response(deployment_code: str, result) -> MetricsResponse:
    return MetricsResponse(
        deployment_code=deployment_code,
        available=result.available,
        reason=result.reason,
        metrics=result.metrics,
        computed_at=result.computed_at
    )


@router.get("/{deployment_code}/metrics", response_model=MetricsResponse)
async def get_deployment_metrics(
    deployment_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """
    Recompute trip metrics from the raw pings without saving them.

    Fewer than two pings returns ``available: false`` rather than zeros.
    """
    deployment = await records.get_deployment(db, deployment_code)
    return _metrics_response(deployment_code, await HistoryService.compute_metrics(db, deployment))


@router.post("/{deployment_code}/metrics/refresh", response_model=MetricsResponse)
async def refresh_deployment_metrics(
    deployment_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Recompute trip metrics and store them as the history snapshot."""
    deployment = await records.get_deployment(db, deployment_code)
    return _metrics_response(deployment_code, await HistoryService.store_metrics(db, deployment))


@router.post(
    "/{deployment_code}/incidents",
    response_model=IncidentResponse,
    status_code=status.HTTP_201_CREATED
)
async def report_incident(
    payload: IncidentCreate,
    deployment_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    deployment = await records.get_deployment(db, deployment_code)
    return await HistoryService.append_incident(
        db, deployment,
        incident_type=payload.incident_type,
        description=payload.description,
        reported_by=payload.reported_by,
        severity=payload.severity,
        latitude=payload.latitude,
        longitude=payload.longitude,
        address=payload.address
    )


@router.post("/{deployment_code}/incidents/{incident_id}/resolve", response_model=IncidentResponse)
async def resolve_incident(
    payload: IncidentResolve,
    deployment_code: str = Path(...),
    incident_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    deployment = await records.get_deployment(db, deployment_code)
    return await HistoryService.resolve_incident(
        db, deployment, incident_id,
        resolved_by=payload.resolved_by,
        resolution_notes=payload.resolution_notes
    )


@router.post(
    "/{deployment_code}/communications",
    response_model=CommunicationResponse,
    status_code=status.HTTP_201_CREATED
)
async def send_communication(
    payload: CommunicationCreate,
    deployment_code: str = Path(...),
    db: AsyncSession = Depends(get_db)
):
    deployment = await records.get_deployment(db, deployment_code)
    return await HistoryService.append_communication(
        db, deployment,
        communication_type=payload.communication_type,
        message=payload.message,
        sender_id=payload.sender_id,
        recipient_id=payload.recipient_id,
        priority=payload.priority
    )


@router.post(
    "/{deployment_code}/communications/{communication_id}/read",
    response_model=CommunicationResponse
)
async def mark_communication_read(
    deployment_code: str = Path(...),
    communication_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    deployment = await records.get_deployment(db, deployment_code)
    return await HistoryService.mark_communication_read(db, deployment, communication_id)
