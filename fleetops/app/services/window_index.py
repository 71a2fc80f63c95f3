"""
Resource window index.

Answers "does resource R have an active reservation overlapping [start, end)?"
for the vehicle-deployment, pilot-deployment and vehicle-maintenance pools.
Every pool uses the same overlap predicate.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, FrozenSet, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.exceptions import ConflictError
from fleetops.app.models.deployment import Deployment
from fleetops.app.models.deployment_enums import DeploymentStatus
from fleetops.app.models.maintenance_log import VehicleMaintenanceLog
from fleetops.app.models.maintenance_enums import MaintenanceStatus

logger = logging.getLogger(__name__)


DEPLOYMENT_ACTIVE_STATUSES = frozenset({
    DeploymentStatus.SCHEDULED,
    DeploymentStatus.IN_PROGRESS,
    DeploymentStatus.EMERGENCY_STOP,
})

MAINTENANCE_ACTIVE_STATUSES = frozenset({
    MaintenanceStatus.SCHEDULED,
    MaintenanceStatus.IN_PROGRESS,
})


@dataclass(frozen=True)
class ResourcePool:
    """Where one kind of reservation lives and which statuses block the resource."""
    name: str
    model: Any
    resource_column: str
    start_column: str
    end_column: str
    active_statuses: FrozenSet
    code_attribute: str

    def window_of(self, record) -> tuple:
        return getattr(record, self.start_column), getattr(record, self.end_column)

    def code_of(self, record) -> str:
        return getattr(record, self.code_attribute)


VEHICLE_DEPLOYMENTS = ResourcePool(
    name="vehicle_deployments",
    model=Deployment,
    resource_column="vehicle_id",
    start_column="start_time",
    end_column="estimated_end_time",
    active_statuses=DEPLOYMENT_ACTIVE_STATUSES,
    code_attribute="deployment_code",
)

PILOT_DEPLOYMENTS = ResourcePool(
    name="pilot_deployments",
    model=Deployment,
    resource_column="pilot_id",
    start_column="start_time",
    end_column="estimated_end_time",
    active_statuses=DEPLOYMENT_ACTIVE_STATUSES,
    code_attribute="deployment_code",
)

VEHICLE_MAINTENANCE = ResourcePool(
    name="vehicle_maintenance",
    model=VehicleMaintenanceLog,
    resource_column="vehicle_id",
    start_column="vehicle_unavailable_from",
    end_column="vehicle_unavailable_to",
    active_statuses=MAINTENANCE_ACTIVE_STATUSES,
    code_attribute="maintenance_code",
)


def windows_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """
    Half-open interval intersection: [start1, end1) and [start2, end2).

    Covers partial overlap on either side and containment in either
    direction. Windows that only touch (end1 == start2) do not overlap.
    """
    return start1 < end2 and start2 < end1


@dataclass
class WindowConflict:
    """Result of a conflict query."""
    conflict: bool
    pool: str
    record: Optional[Any] = None
    conflicting_id: Optional[str] = None

    def raise_for_conflict(self, resource_id: Any):
        if self.conflict:
            raise ConflictError(
                pool=self.pool,
                resource_id=resource_id,
                conflicting_id=self.conflicting_id
            )


def scan_windows(
    records: Iterable[Any],
    pool: ResourcePool,
    start: datetime,
    end: datetime,
    exclude_id: Optional[int] = None
) -> List[Any]:
    """Every active record in ``records`` whose window overlaps [start, end)."""
    overlapping = []
    for record in records:
        if exclude_id is not None and record.id == exclude_id:
            continue
        if record.status not in pool.active_statuses:
            continue
        record_start, record_end = pool.window_of(record)
        if windows_overlap(start, end, record_start, record_end):
            overlapping.append(record)
    return overlapping


async def list_active_windows(
    db: AsyncSession,
    pool: ResourcePool,
    resource_id: int,
    exclude_id: Optional[int] = None
) -> List[Any]:
    """All active reservations of a resource in a pool, ordered by start."""
    model = pool.model
    query = select(model).where(
        getattr(model, pool.resource_column) == resource_id,
        model.status.in_(pool.active_statuses)
    ).order_by(getattr(model, pool.start_column), model.id)

    if exclude_id is not None:
        query = query.where(model.id != exclude_id)

    result = await db.execute(query)
    return list(result.scalars().all())


async def find_conflict(
    db: AsyncSession,
    pool: ResourcePool,
    resource_id: int,
    start: datetime,
    end: datetime,
    exclude_id: Optional[int] = None
) -> WindowConflict:
    """
    Check one resource in one pool for an overlapping active reservation.

    The predicate is pushed into SQL over every active row of the resource;
    the earliest conflicting record is returned.

    Args:
        db: Database session
        pool: Pool to search
        resource_id: Vehicle or pilot ID
        start, end: Candidate window [start, end)
        exclude_id: Record to ignore (the one being rescheduled)

    Returns:
        WindowConflict(conflict, pool, record, conflicting_id)
    """
    model = pool.model
    start_col = getattr(model, pool.start_column)
    end_col = getattr(model, pool.end_column)

    query = select(model).where(
        getattr(model, pool.resource_column) == resource_id,
        model.status.in_(pool.active_statuses),
        start_col < end,
        end_col > start
    ).order_by(start_col, model.id).limit(1)

    if exclude_id is not None:
        query = query.where(model.id != exclude_id)

    result = await db.execute(query)
    record = result.scalars().first()

    if record is None:
        return WindowConflict(conflict=False, pool=pool.name)

    logger.info(
        "Window conflict in %s for resource %s: [%s, %s) overlaps %s",
        pool.name, resource_id, start, end, pool.code_of(record)
    )
    return WindowConflict(
        conflict=True,
        pool=pool.name,
        record=record,
        conflicting_id=pool.code_of(record)
    )


async def ensure_no_conflict(
    db: AsyncSession,
    pools: Iterable[tuple],
    start: datetime,
    end: datetime,
    exclude: Optional[Any] = None
):
    """
    Raise ConflictError for the first pool where the window is taken.

    Args:
        pools: ``(pool, resource_id)`` pairs, checked in order
        exclude: Record being rescheduled; ignored only in pools of its own type
    """
    for pool, resource_id in pools:
        exclude_id = exclude.id if isinstance(exclude, pool.model) else None
        conflict = await find_conflict(db, pool, resource_id, start, end, exclude_id=exclude_id)
        conflict.raise_for_conflict(resource_id)
