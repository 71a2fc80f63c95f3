"""
Deployment Lifecycle Manager (Domain Logic).

Schedules deployments against the resource window index, drives the
status state machine, ingests telemetry and keeps the vehicle status in
agreement with the deployment.

Check-and-commit paths run under Redis resource locks; the database adds
partial unique indexes allowing one on-road (IN_PROGRESS or EMERGENCY_STOP)
deployment per vehicle and per pilot.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.clock import utcnow, to_naive_utc
from fleetops.app.core.config import settings
from fleetops.app.core.exceptions import (
    ValidationError, ConflictError, InvalidStateError,
    InvalidTransitionError, ResourceBusyError
)
from fleetops.app.models.deployment import Deployment
from fleetops.app.models.deployment_enums import DeploymentStatus, EndReason
from fleetops.app.models.enums import VehicleStatus
from fleetops.app.models.user import User
from fleetops.app.models.vehicle import Vehicle
from fleetops.app.schemas.deployment import DeploymentCreate, Location
from fleetops.app.services import records
from fleetops.app.services.audit import log_event, AuditAction, AuditEntity
from fleetops.app.services.resource_lock import (
    hold_resource_locks, vehicle_key, pilot_key, deployment_key, maintenance_vehicle_key
)
from fleetops.app.services.sequence import next_deployment_code
from fleetops.app.services.window_index import (
    VEHICLE_DEPLOYMENTS, PILOT_DEPLOYMENTS, VEHICLE_MAINTENANCE,
    ensure_no_conflict, list_active_windows, scan_windows
)
from fleetops.app.domain.deployments.history_service import HistoryService
from fleetops.app.domain.deployments.transitions import (
    validate_transition, ENDING_STATUSES
)

logger = logging.getLogger(__name__)

# Deployments physically on the road
ON_ROAD_STATUSES = (DeploymentStatus.IN_PROGRESS, DeploymentStatus.EMERGENCY_STOP)


@dataclass
class SweepResult:
    cancelled: List[str] = field(default_factory=list)
    overdue_in_progress: List[str] = field(default_factory=list)
    swept_at: Optional[datetime] = None


@dataclass
class AvailabilityReport:
    vehicle_id: int
    vehicle_status: VehicleStatus
    start: datetime
    end: datetime
    deployment_conflicts: List[Deployment] = field(default_factory=list)
    maintenance_conflicts: List = field(default_factory=list)

    @property
    def available(self) -> bool:
        return not self.deployment_conflicts and not self.maintenance_conflicts


@dataclass
class DeploymentAnalytics:
    start: datetime
    end: datetime
    total: int = 0
    completed: int = 0
    cancelled: int = 0
    average_duration_minutes: Optional[float] = None
    total_distance_km: float = 0.0
    top_pilots: List[dict] = field(default_factory=list)
    vehicle_utilization: List[dict] = field(default_factory=list)


def validate_window(start: datetime, end: datetime):
    """
    Raises:
        ValidationError: end not after start, or longer than the allowed maximum
    """
    if end <= start:
        raise ValidationError(
            "estimated_end_time must be after start_time",
            field="estimated_end_time",
            details={"reason": "end_before_start"}
        )
    hours = (end - start).total_seconds() / 3600
    if hours > settings.max_deployment_hours:
        raise ValidationError(
            f"Deployment window of {hours:.1f}h exceeds the maximum of {settings.max_deployment_hours}h",
            field="estimated_end_time",
            details={"reason": "window_too_long"}
        )


class DeploymentService:

    @staticmethod
    async def create(db: AsyncSession, redis, payload: DeploymentCreate) -> Deployment:
        """
        Schedule a deployment.

        Flow:
        1. Validate the window
        2. Validate vehicle (active, AVAILABLE) and pilot (active, operating role)
        3. Under vehicle + pilot locks: check both deployment pools
           (and the maintenance pool when cross-pool enforcement is on)
        4. Insert deployment, history header and the initial status change
           in one transaction
        5. Audit

        Raises:
            ValidationError, NotFoundError, InvalidStateError,
            ConflictError, ResourceBusyError
        """
        start = to_naive_utc(payload.start_time)
        end = to_naive_utc(payload.estimated_end_time)
        validate_window(start, end)

        vehicle = await records.get_vehicle(db, payload.vehicle_id)
        if vehicle.status != VehicleStatus.AVAILABLE:
            logger.warning("Vehicle %s not available (%s)", vehicle.id, vehicle.status.value)
            raise InvalidStateError(
                f"Vehicle {vehicle.vehicle_code} is not available",
                current_status=vehicle.status.value,
                details={"vehicle_id": vehicle.id}
            )
        pilot = await records.get_pilot(db, payload.pilot_id)

        pools = [(VEHICLE_DEPLOYMENTS, vehicle.id), (PILOT_DEPLOYMENTS, pilot.id)]
        lock_keys = [vehicle_key(vehicle.id), pilot_key(pilot.id)]
        if settings.enforce_cross_pool_conflicts:
            pools.append((VEHICLE_MAINTENANCE, vehicle.id))
            lock_keys.append(maintenance_vehicle_key(vehicle.id))

        async with hold_resource_locks(redis, lock_keys):
            try:
                await ensure_no_conflict(db, pools, start, end)

                end_location = payload.end_location
                deployment = Deployment(
                    deployment_code=await next_deployment_code(db),
                    vehicle_id=vehicle.id,
                    pilot_id=pilot.id,
                    start_time=start,
                    estimated_end_time=end,
                    start_lat=payload.start_location.latitude,
                    start_lng=payload.start_location.longitude,
                    start_address=payload.start_location.address,
                    end_lat=end_location.latitude if end_location else None,
                    end_lng=end_location.longitude if end_location else None,
                    end_address=end_location.address if end_location else None,
                    purpose=payload.purpose,
                    passenger_count=payload.passenger_count,
                    description=payload.description,
                    priority=payload.priority,
                    estimated_cost=payload.estimated_cost,
                    notes=payload.notes,
                    status=DeploymentStatus.SCHEDULED,
                    created_by=payload.created_by
                )
                db.add(deployment)
                await db.flush()

                await HistoryService.append_status_change(
                    db, deployment,
                    previous_status=None,
                    new_status=DeploymentStatus.SCHEDULED,
                    changed_by=payload.created_by,
                    reason="Deployment created"
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(deployment)
        logger.info(
            "Deployment %s scheduled: vehicle=%s pilot=%s [%s, %s)",
            deployment.deployment_code, vehicle.id, pilot.id, start, end
        )

        await log_event(
            db=db,
            action=AuditAction.DEPLOYMENT_CREATED,
            entity_type=AuditEntity.DEPLOYMENT,
            entity_code=deployment.deployment_code,
            actor_id=payload.created_by,
            metadata={
                "vehicle_id": vehicle.id,
                "pilot_id": pilot.id,
                "start_time": start.isoformat(),
                "estimated_end_time": end.isoformat(),
                "purpose": deployment.purpose.value
            }
        )
        return deployment

    @staticmethod
    async def transition(
        db: AsyncSession,
        redis,
        deployment_code: str,
        new_status,
        changed_by: Optional[int] = None,
        reason: Optional[str] = None,
        system_generated: bool = False,
        end_reason: Optional[EndReason] = None,
        end_location: Optional[Location] = None,
        actual_cost: Optional[float] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Deployment:
        """
        Move a deployment along the state machine.

        Side effects by target status:
        - IN_PROGRESS: vehicle must be AVAILABLE (or already DEPLOYED) and becomes DEPLOYED
        - COMPLETED / CANCELLED / EMERGENCY_STOP: actual_end_time set if unset,
          end_reason / end location recorded when given
        - COMPLETED / CANCELLED from the road: vehicle back to AVAILABLE unless
          another on-road deployment still holds it
        - COMPLETED: metrics recomputed, distance copied to the trip and the odometer

        Raises:
            NotFoundError, InvalidTransitionError, InvalidStateError,
            ConflictError, ResourceBusyError
        """
        now = to_naive_utc(now) or utcnow()

        async with hold_resource_locks(redis, [deployment_key(deployment_code)]):
            deployment = await records.get_deployment(db, deployment_code)
            previous_status = deployment.status
            try:
                target = validate_transition(previous_status, new_status)
            except InvalidTransitionError:
                logger.warning(
                    "Rejected transition of %s: %s -> %s",
                    deployment_code, previous_status.value, new_status
                )
                raise

            vehicle_id = deployment.vehicle_id
            pilot_id = deployment.pilot_id
            vehicle = await records.get_vehicle(db, vehicle_id, active_only=False)

            if target == DeploymentStatus.IN_PROGRESS:
                if vehicle.status not in (VehicleStatus.AVAILABLE, VehicleStatus.DEPLOYED):
                    raise InvalidStateError(
                        f"Vehicle {vehicle.vehicle_code} cannot be deployed while {vehicle.status.value}",
                        current_status=vehicle.status.value,
                        details={"vehicle_id": vehicle.id}
                    )
                vehicle.status = VehicleStatus.DEPLOYED

            if target in ENDING_STATUSES:
                if deployment.actual_end_time is None:
                    deployment.actual_end_time = max(now, deployment.start_time)
                if end_reason is not None:
                    deployment.end_reason = end_reason
                if end_location is not None:
                    deployment.end_lat = end_location.latitude
                    deployment.end_lng = end_location.longitude
                    deployment.end_address = end_location.address

            if target in (DeploymentStatus.COMPLETED, DeploymentStatus.CANCELLED):
                if (
                    previous_status in ON_ROAD_STATUSES
                    and vehicle.status == VehicleStatus.DEPLOYED
                    and not await DeploymentService._vehicle_on_road_elsewhere(db, vehicle_id, deployment_code)
                ):
                    vehicle.status = VehicleStatus.AVAILABLE

            if actual_cost is not None:
                deployment.actual_cost = actual_cost
            if notes:
                deployment.notes = notes

            deployment.status = target
            deployment.updated_by = changed_by

            await HistoryService.append_status_change(
                db, deployment,
                previous_status=previous_status,
                new_status=target,
                changed_by=changed_by,
                reason=reason,
                system_generated=system_generated
            )

            if target == DeploymentStatus.COMPLETED:
                metrics = await HistoryService.refresh_metrics(db, deployment)
                if metrics.available:
                    distance = metrics.metrics["total_distance_km"]
                    deployment.trip_distance_km = distance
                    vehicle.mileage_km = (vehicle.mileage_km or 0.0) + distance

            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise await DeploymentService._on_road_conflict(
                    db, deployment_code, vehicle_id, pilot_id
                )

        await db.refresh(deployment)
        logger.info(
            "Deployment %s: %s -> %s (system=%s)",
            deployment_code, previous_status.value, target.value, system_generated
        )

        await log_event(
            db=db,
            action=AuditAction.DEPLOYMENT_STATUS_CHANGED,
            entity_type=AuditEntity.DEPLOYMENT,
            entity_code=deployment_code,
            actor_id=changed_by,
            metadata={
                "previous_status": previous_status.value,
                "new_status": target.value,
                "reason": reason,
                "system_generated": system_generated,
                "end_reason": end_reason.value if end_reason else None
            }
        )
        return deployment

    @staticmethod
    async def _vehicle_on_road_elsewhere(db: AsyncSession, vehicle_id: int, deployment_code: str) -> bool:
        result = await db.execute(
            select(func.count(Deployment.id)).where(
                Deployment.vehicle_id == vehicle_id,
                Deployment.status.in_(ON_ROAD_STATUSES),
                Deployment.deployment_code != deployment_code
            )
        )
        return result.scalar_one() > 0

    @staticmethod
    async def _on_road_conflict(
        db: AsyncSession,
        deployment_code: str,
        vehicle_id: int,
        pilot_id: int
    ) -> ConflictError:
        """Translate an on-road unique index violation into a ConflictError."""
        result = await db.execute(
            select(Deployment).where(
                Deployment.status.in_(ON_ROAD_STATUSES),
                Deployment.deployment_code != deployment_code,
                or_(Deployment.vehicle_id == vehicle_id, Deployment.pilot_id == pilot_id)
            )
        )
        other = result.scalars().first()
        logger.warning("Deployment %s already has an on-road peer", deployment_code)
        if other is not None and other.vehicle_id != vehicle_id:
            return ConflictError(
                pool=PILOT_DEPLOYMENTS.name, resource_id=pilot_id, conflicting_id=other.deployment_code
            )
        return ConflictError(
            pool=VEHICLE_DEPLOYMENTS.name,
            resource_id=vehicle_id,
            conflicting_id=other.deployment_code if other is not None else None
        )

    @staticmethod
    async def update_telemetry(
        db: AsyncSession,
        redis,
        deployment_code: str,
        location: Location,
        speed: Optional[float] = None,
        battery_level: Optional[float] = None,
        accuracy: Optional[float] = None,
        altitude: Optional[float] = None,
        recorded_at: Optional[datetime] = None
    ) -> Deployment:
        """
        Ingest one telemetry ping.

        Serialised per deployment by the deployment lock so the ping order
        check and the data-quality counters see every earlier ping.

        Raises:
            NotFoundError, InvalidStateError (not IN_PROGRESS),
            ValidationError (out-of-order ping), ResourceBusyError
        """
        recorded_at = to_naive_utc(recorded_at) or utcnow()

        async with hold_resource_locks(redis, [deployment_key(deployment_code)]):
            deployment = await records.get_deployment(db, deployment_code)
            if deployment.status != DeploymentStatus.IN_PROGRESS:
                logger.warning(
                    "Telemetry for %s rejected in status %s",
                    deployment_code, deployment.status.value
                )
                raise InvalidStateError(
                    f"Telemetry is only accepted while in_progress, deployment is {deployment.status.value}",
                    current_status=deployment.status.value
                )

            try:
                await HistoryService.append_location_ping(
                    db, deployment,
                    latitude=location.latitude,
                    longitude=location.longitude,
                    address=location.address,
                    recorded_at=recorded_at,
                    battery_level=battery_level,
                    speed=speed,
                    accuracy=accuracy,
                    altitude=altitude
                )

                deployment.current_lat = location.latitude
                deployment.current_lng = location.longitude
                deployment.current_address = location.address
                deployment.location_updated_at = recorded_at
                if speed is not None:
                    deployment.current_speed = speed
                if battery_level is not None:
                    deployment.battery_level = battery_level

                vehicle = await records.get_vehicle(db, deployment.vehicle_id, active_only=False)
                vehicle.current_lat = location.latitude
                vehicle.current_lng = location.longitude
                vehicle.current_address = location.address
                vehicle.location_updated_at = recorded_at

                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(deployment)
        return deployment

    @staticmethod
    async def sweep_overdue(db: AsyncSession, redis, now: Optional[datetime] = None) -> SweepResult:
        """
        Expire deployments whose window has passed.

        SCHEDULED deployments past their estimated end are cancelled as system
        transitions with end_reason WINDOW_EXPIRED. Overdue deployments still on
        the road are only reported; ending a trip is a human decision.
        """
        now = to_naive_utc(now) or utcnow()
        result = SweepResult(swept_at=now)

        expired = await db.execute(
            select(Deployment.deployment_code).where(
                Deployment.status == DeploymentStatus.SCHEDULED,
                Deployment.estimated_end_time < now
            ).order_by(Deployment.estimated_end_time)
        )
        for code in expired.scalars().all():
            try:
                await DeploymentService.transition(
                    db, redis, code, DeploymentStatus.CANCELLED,
                    reason="Deployment window expired before start",
                    system_generated=True,
                    end_reason=EndReason.WINDOW_EXPIRED,
                    now=now
                )
            except (InvalidTransitionError, ResourceBusyError) as exc:
                # Started or locked since the query; the next sweep re-examines it
                logger.warning("Skipped expiring %s: %s", code, exc.message)
                continue
            result.cancelled.append(code)
            await log_event(
                db=db,
                action=AuditAction.DEPLOYMENT_EXPIRED,
                entity_type=AuditEntity.DEPLOYMENT,
                entity_code=code,
                metadata={"swept_at": now.isoformat()}
            )

        overdue = await db.execute(
            select(Deployment.deployment_code).where(
                Deployment.status.in_(ON_ROAD_STATUSES),
                Deployment.estimated_end_time < now
            ).order_by(Deployment.estimated_end_time)
        )
        result.overdue_in_progress = list(overdue.scalars().all())

        logger.info(
            "Overdue sweep at %s: %d cancelled, %d overdue on the road",
            now, len(result.cancelled), len(result.overdue_in_progress)
        )
        return result

    # Queries

    @staticmethod
    async def get(db: AsyncSession, deployment_code: str) -> Deployment:
        return await records.get_deployment(db, deployment_code)

    @staticmethod
    async def list_deployments(
        db: AsyncSession,
        status: Optional[DeploymentStatus] = None,
        vehicle_id: Optional[int] = None,
        pilot_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Deployment], int]:
        """Newest first. Returns (page of deployments, total count)."""
        query = select(Deployment)
        if status:
            query = query.where(Deployment.status == status)
        if vehicle_id:
            query = query.where(Deployment.vehicle_id == vehicle_id)
        if pilot_id:
            query = query.where(Deployment.pilot_id == pilot_id)

        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()

        query = query.order_by(Deployment.start_time.desc(), Deployment.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(query)
        return list(result.scalars().all()), total

    @staticmethod
    async def list_active(db: AsyncSession) -> List[Deployment]:
        """Deployments currently on the road."""
        result = await db.execute(
            select(Deployment)
            .where(Deployment.status.in_(ON_ROAD_STATUSES))
            .order_by(Deployment.start_time)
        )
        return list(result.scalars().all())

    @staticmethod
    async def pilot_deployments(
        db: AsyncSession,
        pilot_id: int,
        status: Optional[DeploymentStatus] = None,
        limit: int = 50
    ) -> List[Deployment]:
        await records.get_pilot(db, pilot_id)
        query = select(Deployment).where(Deployment.pilot_id == pilot_id)
        if status:
            query = query.where(Deployment.status == status)
        query = query.order_by(Deployment.start_time.desc()).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def vehicle_deployments(db: AsyncSession, vehicle_id: int, limit: int = 50) -> List[Deployment]:
        await records.get_vehicle(db, vehicle_id, active_only=False)
        result = await db.execute(
            select(Deployment)
            .where(Deployment.vehicle_id == vehicle_id)
            .order_by(Deployment.start_time.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def vehicle_availability(
        db: AsyncSession,
        vehicle_id: int,
        start: datetime,
        end: datetime
    ) -> AvailabilityReport:
        """Every active deployment and maintenance window overlapping [start, end)."""
        start = to_naive_utc(start)
        end = to_naive_utc(end)
        if end <= start:
            raise ValidationError("end must be after start", field="end")

        vehicle = await records.get_vehicle(db, vehicle_id, active_only=False)
        deployments = await list_active_windows(db, VEHICLE_DEPLOYMENTS, vehicle_id)
        maintenance = await list_active_windows(db, VEHICLE_MAINTENANCE, vehicle_id)

        return AvailabilityReport(
            vehicle_id=vehicle.id,
            vehicle_status=vehicle.status,
            start=start,
            end=end,
            deployment_conflicts=scan_windows(deployments, VEHICLE_DEPLOYMENTS, start, end),
            maintenance_conflicts=scan_windows(maintenance, VEHICLE_MAINTENANCE, start, end),
        )

    @staticmethod
    async def analytics(
        db: AsyncSession,
        start: datetime,
        end: datetime,
        pilot_id: Optional[int] = None,
        vehicle_id: Optional[int] = None,
        status: Optional[DeploymentStatus] = None,
        top_n: int = 10
    ) -> DeploymentAnalytics:
        """
        Aggregate deployments created in [start, end].

        Durations only count deployments with an ``actual_end_time``. Pilots
        and vehicles are ranked by deployment count, busiest first.
        """
        start = to_naive_utc(start)
        end = to_naive_utc(end)
        if end < start:
            raise ValidationError("end must not be before start", field="end")

        filters = [Deployment.created_at >= start, Deployment.created_at <= end]
        if pilot_id is not None:
            filters.append(Deployment.pilot_id == pilot_id)
        if vehicle_id is not None:
            filters.append(Deployment.vehicle_id == vehicle_id)
        if status is not None:
            filters.append(Deployment.status == status)

        is_completed = case((Deployment.status == DeploymentStatus.COMPLETED, 1), else_=0)
        is_cancelled = case((Deployment.status == DeploymentStatus.CANCELLED, 1), else_=0)
        distance = func.coalesce(func.sum(Deployment.trip_distance_km), 0.0)

        totals = (await db.execute(
            select(
                func.count(Deployment.id).label("total"),
                func.coalesce(func.sum(is_completed), 0).label("completed"),
                func.coalesce(func.sum(is_cancelled), 0).label("cancelled"),
                distance.label("total_distance_km")
            ).where(*filters)
        )).one()

        # Durations are summed in Python; SQLite has no interval arithmetic
        ended = await db.execute(
            select(Deployment.vehicle_id, Deployment.start_time, Deployment.actual_end_time)
            .where(*filters, Deployment.actual_end_time.is_not(None))
        )
        minutes = []
        hours_by_vehicle = {}
        for row in ended.all():
            elapsed = (row.actual_end_time - row.start_time).total_seconds()
            minutes.append(elapsed / 60)
            hours_by_vehicle[row.vehicle_id] = hours_by_vehicle.get(row.vehicle_id, 0.0) + elapsed / 3600

        pilot_count = func.count(Deployment.id).label("deployment_count")
        pilots = await db.execute(
            select(
                Deployment.pilot_id,
                User.full_name,
                pilot_count,
                func.avg(is_completed).label("completion_rate"),
                distance.label("total_distance_km")
            )
            .join(User, User.id == Deployment.pilot_id)
            .where(*filters)
            .group_by(Deployment.pilot_id, User.full_name)
            .order_by(pilot_count.desc(), Deployment.pilot_id)
            .limit(top_n)
        )

        vehicle_count = func.count(Deployment.id).label("deployment_count")
        vehicles = await db.execute(
            select(Deployment.vehicle_id, Vehicle.vehicle_code, vehicle_count)
            .join(Vehicle, Vehicle.id == Deployment.vehicle_id)
            .where(*filters)
            .group_by(Deployment.vehicle_id, Vehicle.vehicle_code)
            .order_by(vehicle_count.desc(), Deployment.vehicle_id)
            .limit(top_n)
        )

        return DeploymentAnalytics(
            start=start,
            end=end,
            total=totals.total,
            completed=int(totals.completed),
            cancelled=int(totals.cancelled),
            average_duration_minutes=sum(minutes) / len(minutes) if minutes else None,
            total_distance_km=float(totals.total_distance_km),
            top_pilots=[
                {
                    "pilot_id": row.pilot_id,
                    "pilot_name": row.full_name,
                    "deployment_count": row.deployment_count,
                    "completion_rate": float(row.completion_rate or 0.0) * 100,
                    "total_distance_km": float(row.total_distance_km)
                }
                for row in pilots.all()
            ],
            vehicle_utilization=[
                {
                    "vehicle_id": row.vehicle_id,
                    "vehicle_code": row.vehicle_code,
                    "deployment_count": row.deployment_count,
                    "total_hours": hours_by_vehicle.get(row.vehicle_id, 0.0)
                }
                for row in vehicles.all()
            ]
        )
