"""
Maintenance state machine and derived values.
"""

from datetime import datetime
from typing import Optional

from fleetops.app.core.exceptions import InvalidTransitionError
from fleetops.app.models.maintenance_enums import MaintenanceStatus

ALLOWED_TRANSITIONS = {
    MaintenanceStatus.SCHEDULED: frozenset({
        MaintenanceStatus.IN_PROGRESS,
        MaintenanceStatus.CANCELLED,
        MaintenanceStatus.DELAYED,
    }),
    MaintenanceStatus.IN_PROGRESS: frozenset({
        MaintenanceStatus.COMPLETED,
        MaintenanceStatus.FAILED,
        MaintenanceStatus.DELAYED,
    }),
    MaintenanceStatus.COMPLETED: frozenset(),
    # Cancelled and failed work can be rescheduled
    MaintenanceStatus.CANCELLED: frozenset({MaintenanceStatus.SCHEDULED}),
    MaintenanceStatus.DELAYED: frozenset({
        MaintenanceStatus.SCHEDULED,
        MaintenanceStatus.IN_PROGRESS,
        MaintenanceStatus.CANCELLED,
    }),
    MaintenanceStatus.FAILED: frozenset({
        MaintenanceStatus.SCHEDULED,
        MaintenanceStatus.CANCELLED,
    }),
}

FINISHED_STATUSES = frozenset({MaintenanceStatus.COMPLETED, MaintenanceStatus.FAILED})


def validate_transition(current: MaintenanceStatus, requested) -> MaintenanceStatus:
    """
    Raises:
        InvalidTransitionError: edge not in the table, or unknown status
    """
    try:
        new_status = MaintenanceStatus(requested)
    except ValueError:
        new_status = None
    if new_status is None or new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            entity="maintenance",
            current_status=current.value,
            requested_status=getattr(requested, "value", str(requested))
        )
    return new_status


def duration_hours(record) -> Optional[float]:
    if not record.started_at or not record.completed_at:
        return None
    return round((record.completed_at - record.started_at).total_seconds() / 3600, 2)


def cost_variance(record) -> Optional[float]:
    if not record.estimated_cost or not record.actual_cost:
        return None
    return round(record.actual_cost - record.estimated_cost, 2)


def cost_variance_percentage(record) -> Optional[float]:
    if not record.estimated_cost or not record.actual_cost:
        return None
    return round((record.actual_cost - record.estimated_cost) / record.estimated_cost * 100, 2)


def total_parts_cost(record) -> float:
    return sum(part.get("cost") or 0 for part in record.parts_replaced or [])


def is_overdue(record, now: datetime) -> bool:
    if record.status in (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED):
        return False
    return now > record.scheduled_date
