"""
Maintenance Window Manager (Domain Logic).

Schedules maintenance windows against the vehicle's maintenance pool,
drives the maintenance state machine and records the work performed
(diagnostics, parts, quality check).
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.clock import utcnow, to_naive_utc
from fleetops.app.core.config import settings
from fleetops.app.core.exceptions import ValidationError, InvalidStateError, InvalidTransitionError
from fleetops.app.models.enums import VehicleStatus
from fleetops.app.models.maintenance_enums import MaintenanceStatus
from fleetops.app.models.maintenance_log import VehicleMaintenanceLog
from fleetops.app.schemas.maintenance import (
    MaintenanceCreate, DiagnosticResultCreate, ReplacedPartCreate, QualityCheckCreate
)
from fleetops.app.services import records
from fleetops.app.services.audit import log_event, AuditAction, AuditEntity
from fleetops.app.services.resource_lock import (
    hold_resource_locks, vehicle_key, maintenance_vehicle_key, maintenance_key
)
from fleetops.app.services.sequence import next_maintenance_code
from fleetops.app.services.window_index import (
    VEHICLE_MAINTENANCE, VEHICLE_DEPLOYMENTS, MAINTENANCE_ACTIVE_STATUSES, ensure_no_conflict
)
from fleetops.app.domain.maintenance.transitions import validate_transition, FINISHED_STATUSES

logger = logging.getLogger(__name__)


def _conflict_scope(vehicle_id: int):
    """Pools to check and locks to hold for a maintenance window on a vehicle."""
    pools = [(VEHICLE_MAINTENANCE, vehicle_id)]
    lock_keys = [maintenance_vehicle_key(vehicle_id)]
    if settings.enforce_cross_pool_conflicts:
        pools.append((VEHICLE_DEPLOYMENTS, vehicle_id))
        lock_keys.append(vehicle_key(vehicle_id))
    return pools, lock_keys


class MaintenanceService:

    @staticmethod
    async def create(db: AsyncSession, redis, payload: MaintenanceCreate) -> VehicleMaintenanceLog:
        """
        Schedule a maintenance window.

        Only the vehicle's maintenance pool is checked unless cross-pool
        enforcement is switched on.

        Raises:
            ValidationError, NotFoundError, ConflictError, ResourceBusyError
        """
        unavailable_from = to_naive_utc(payload.vehicle_unavailable_from)
        unavailable_to = to_naive_utc(payload.vehicle_unavailable_to)
        if unavailable_to <= unavailable_from:
            raise ValidationError(
                "vehicle_unavailable_to must be after vehicle_unavailable_from",
                field="vehicle_unavailable_to",
                details={"reason": "end_before_start"}
            )

        vehicle = await records.get_vehicle(db, payload.vehicle_id, active_only=False)
        pools, lock_keys = _conflict_scope(vehicle.id)

        async with hold_resource_locks(redis, lock_keys):
            try:
                await ensure_no_conflict(db, pools, unavailable_from, unavailable_to)

                record = VehicleMaintenanceLog(
                    maintenance_code=await next_maintenance_code(db),
                    vehicle_id=vehicle.id,
                    maintenance_type=payload.maintenance_type,
                    priority=payload.priority,
                    description=payload.description,
                    symptoms=list(payload.symptoms),
                    estimated_cost=payload.estimated_cost,
                    currency=payload.currency,
                    service_provider_name=payload.service_provider_name,
                    service_provider_contact=payload.service_provider_contact,
                    service_provider_address=payload.service_provider_address,
                    scheduled_date=to_naive_utc(payload.scheduled_date),
                    estimated_duration_hours=payload.estimated_duration_hours,
                    vehicle_unavailable_from=unavailable_from,
                    vehicle_unavailable_to=unavailable_to,
                    status=MaintenanceStatus.SCHEDULED,
                    parts_replaced=[],
                    diagnostic_results=[],
                    quality_issues=[],
                    created_by=payload.created_by
                )
                db.add(record)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(record)
        logger.info(
            "Maintenance %s scheduled for vehicle %s [%s, %s)",
            record.maintenance_code, vehicle.id, unavailable_from, unavailable_to
        )

        await log_event(
            db=db,
            action=AuditAction.MAINTENANCE_CREATED,
            entity_type=AuditEntity.MAINTENANCE,
            entity_code=record.maintenance_code,
            actor_id=payload.created_by,
            metadata={
                "vehicle_id": vehicle.id,
                "maintenance_type": record.maintenance_type.value,
                "vehicle_unavailable_from": unavailable_from.isoformat(),
                "vehicle_unavailable_to": unavailable_to.isoformat()
            }
        )
        return record

    @staticmethod
    async def transition(
        db: AsyncSession,
        redis,
        maintenance_code: str,
        new_status,
        updated_by: Optional[int] = None,
        notes: Optional[str] = None,
        actual_cost: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> VehicleMaintenanceLog:
        """
        Move a maintenance window along its state machine.

        Re-entering an active status from an inactive one re-checks the
        window against the pool. Vehicle status follows IN_PROGRESS:
        entering sets MAINTENANCE, leaving sets AVAILABLE (OUT_OF_SERVICE
        when the work failed).

        Raises:
            NotFoundError, InvalidTransitionError, InvalidStateError,
            ConflictError, ResourceBusyError
        """
        now = to_naive_utc(now) or utcnow()

        vehicle_id = (await records.get_maintenance(db, maintenance_code)).vehicle_id
        pools, lock_keys = _conflict_scope(vehicle_id)

        async with hold_resource_locks(redis, [maintenance_key(maintenance_code), *lock_keys]):
            record = await records.get_maintenance(db, maintenance_code)
            previous_status = record.status
            try:
                target = validate_transition(previous_status, new_status)
            except InvalidTransitionError:
                logger.warning(
                    "Rejected maintenance transition of %s: %s -> %s",
                    maintenance_code, previous_status.value, new_status
                )
                raise

            try:
                if target in MAINTENANCE_ACTIVE_STATUSES and previous_status not in MAINTENANCE_ACTIVE_STATUSES:
                    await ensure_no_conflict(
                        db, pools,
                        record.vehicle_unavailable_from, record.vehicle_unavailable_to,
                        exclude=record
                    )

                vehicle = await records.get_vehicle(db, vehicle_id, active_only=False)
                if target == MaintenanceStatus.IN_PROGRESS:
                    if vehicle.status == VehicleStatus.DEPLOYED:
                        raise InvalidStateError(
                            f"Vehicle {vehicle.vehicle_code} is deployed",
                            current_status=vehicle.status.value,
                            details={"vehicle_id": vehicle.id}
                        )
                    vehicle.status = VehicleStatus.MAINTENANCE
                    if record.started_at is None:
                        record.started_at = now
                elif previous_status == MaintenanceStatus.IN_PROGRESS and vehicle.status == VehicleStatus.MAINTENANCE:
                    if target == MaintenanceStatus.FAILED:
                        vehicle.status = VehicleStatus.OUT_OF_SERVICE
                    else:
                        vehicle.status = VehicleStatus.AVAILABLE

                if target in FINISHED_STATUSES:
                    if record.completed_at is None:
                        record.completed_at = now
                    if record.started_at is not None:
                        record.actual_duration_hours = round(
                            (record.completed_at - record.started_at).total_seconds() / 3600, 2
                        )

                if actual_cost is not None:
                    record.actual_cost = actual_cost
                if notes:
                    line = f"[{now.isoformat()}] Status change: {previous_status.value} -> {target.value}. {notes}"
                    record.service_notes = f"{record.service_notes}\n{line}" if record.service_notes else line

                record.status = target
                if updated_by is not None:
                    record.updated_by = updated_by

                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(record)
        logger.info("Maintenance %s: %s -> %s", maintenance_code, previous_status.value, target.value)

        await log_event(
            db=db,
            action=AuditAction.MAINTENANCE_STATUS_CHANGED,
            entity_type=AuditEntity.MAINTENANCE,
            entity_code=maintenance_code,
            actor_id=updated_by,
            metadata={
                "previous_status": previous_status.value,
                "new_status": target.value,
                "notes": notes
            }
        )
        return record

    @staticmethod
    async def add_diagnostic_result(
        db: AsyncSession,
        maintenance_code: str,
        payload: DiagnosticResultCreate
    ) -> VehicleMaintenanceLog:
        record = await records.get_maintenance(db, maintenance_code)
        entry = {
            "component": payload.component.value,
            "status": payload.status.value,
            "details": payload.details,
            "recommended_action": payload.recommended_action.value,
            "recorded_at": utcnow().isoformat()
        }
        # Reassign so the JSON column is flagged dirty
        record.diagnostic_results = [*(record.diagnostic_results or []), entry]
        if payload.updated_by is not None:
            record.updated_by = payload.updated_by
        await db.commit()
        await db.refresh(record)

        await log_event(
            db=db,
            action=AuditAction.MAINTENANCE_DIAGNOSTIC_ADDED,
            entity_type=AuditEntity.MAINTENANCE,
            entity_code=maintenance_code,
            actor_id=payload.updated_by,
            metadata={"component": entry["component"], "status": entry["status"]}
        )
        return record

    @staticmethod
    async def add_replaced_part(
        db: AsyncSession,
        maintenance_code: str,
        payload: ReplacedPartCreate
    ) -> VehicleMaintenanceLog:
        record = await records.get_maintenance(db, maintenance_code)
        entry = payload.model_dump(exclude={"updated_by"})
        record.parts_replaced = [*(record.parts_replaced or []), entry]
        if payload.updated_by is not None:
            record.updated_by = payload.updated_by
        await db.commit()
        await db.refresh(record)

        await log_event(
            db=db,
            action=AuditAction.MAINTENANCE_PART_ADDED,
            entity_type=AuditEntity.MAINTENANCE,
            entity_code=maintenance_code,
            actor_id=payload.updated_by,
            metadata={"part_name": entry["part_name"], "quantity": entry["quantity"]}
        )
        return record

    @staticmethod
    async def record_quality_check(
        db: AsyncSession,
        maintenance_code: str,
        payload: QualityCheckCreate
    ) -> VehicleMaintenanceLog:
        """Replace the quality-check outcome. Only finished work can be checked."""
        record = await records.get_maintenance(db, maintenance_code)
        if record.status not in FINISHED_STATUSES:
            raise InvalidStateError(
                "Quality check requires completed or failed maintenance",
                current_status=record.status.value
            )

        record.quality_check_passed = payload.passed
        record.quality_checked_by = payload.checked_by
        record.quality_checked_at = utcnow()
        record.quality_issues = [issue.model_dump(mode="json") for issue in payload.issues]
        if payload.updated_by is not None:
            record.updated_by = payload.updated_by
        await db.commit()
        await db.refresh(record)

        await log_event(
            db=db,
            action=AuditAction.MAINTENANCE_QUALITY_CHECKED,
            entity_type=AuditEntity.MAINTENANCE,
            entity_code=maintenance_code,
            actor_id=payload.updated_by,
            metadata={"passed": payload.passed, "issues": len(payload.issues)}
        )
        return record

    # Queries

    @staticmethod
    async def get(db: AsyncSession, maintenance_code: str) -> VehicleMaintenanceLog:
        return await records.get_maintenance(db, maintenance_code)

    @staticmethod
    async def due_maintenance(
        db: AsyncSession,
        days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> List[VehicleMaintenanceLog]:
        """Scheduled windows whose scheduled date falls within the next ``days`` days (or earlier)."""
        days = settings.due_maintenance_days if days is None else days
        horizon = (to_naive_utc(now) or utcnow()) + timedelta(days=days)
        result = await db.execute(
            select(VehicleMaintenanceLog).where(
                VehicleMaintenanceLog.status == MaintenanceStatus.SCHEDULED,
                VehicleMaintenanceLog.scheduled_date <= horizon
            ).order_by(VehicleMaintenanceLog.scheduled_date)
        )
        return list(result.scalars().all())

    @staticmethod
    async def vehicle_history(db: AsyncSession, vehicle_id: int, limit: int = 10) -> List[VehicleMaintenanceLog]:
        await records.get_vehicle(db, vehicle_id, active_only=False)
        result = await db.execute(
            select(VehicleMaintenanceLog)
            .where(VehicleMaintenanceLog.vehicle_id == vehicle_id)
            .order_by(VehicleMaintenanceLog.scheduled_date.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def stats_by_type(db: AsyncSession, start: datetime, end: datetime) -> List[dict]:
        """
        Count, cost and duration per maintenance type for windows created in [start, end].

        Most frequent type first.
        """
        start = to_naive_utc(start)
        end = to_naive_utc(end)
        if end < start:
            raise ValidationError("end must not be before start", field="end")

        record_count = func.count(VehicleMaintenanceLog.id).label("record_count")
        result = await db.execute(
            select(
                VehicleMaintenanceLog.maintenance_type,
                record_count,
                func.coalesce(func.sum(VehicleMaintenanceLog.actual_cost), 0.0).label("total_cost"),
                func.avg(VehicleMaintenanceLog.actual_cost).label("avg_cost"),
                func.avg(VehicleMaintenanceLog.actual_duration_hours).label("avg_duration_hours")
            )
            .where(
                VehicleMaintenanceLog.created_at >= start,
                VehicleMaintenanceLog.created_at <= end
            )
            .group_by(VehicleMaintenanceLog.maintenance_type)
            .order_by(record_count.desc())
        )
        return [
            {
                "maintenance_type": row.maintenance_type,
                "count": row.record_count,
                "total_cost": float(row.total_cost or 0.0),
                "avg_cost": float(row.avg_cost) if row.avg_cost is not None else None,
                "avg_duration_hours": float(row.avg_duration_hours) if row.avg_duration_hours is not None else None
            }
            for row in result.all()
        ]
