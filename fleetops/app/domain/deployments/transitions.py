"""
Deployment state machine and derived values.

The transition table is the single authority on which status changes are
allowed. Derived values are computed on read and never stored.
"""

from datetime import datetime
from typing import Optional

from fleetops.app.core.exceptions import InvalidTransitionError
from fleetops.app.models.deployment_enums import DeploymentStatus

ALLOWED_TRANSITIONS = {
    DeploymentStatus.SCHEDULED: frozenset({
        DeploymentStatus.IN_PROGRESS,
        DeploymentStatus.CANCELLED,
    }),
    DeploymentStatus.IN_PROGRESS: frozenset({
        DeploymentStatus.COMPLETED,
        DeploymentStatus.EMERGENCY_STOP,
        DeploymentStatus.CANCELLED,
    }),
    DeploymentStatus.EMERGENCY_STOP: frozenset({
        DeploymentStatus.COMPLETED,
        DeploymentStatus.CANCELLED,
    }),
    DeploymentStatus.COMPLETED: frozenset(),
    DeploymentStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({DeploymentStatus.COMPLETED, DeploymentStatus.CANCELLED})

# Entering one of these closes the trip
ENDING_STATUSES = frozenset({
    DeploymentStatus.COMPLETED,
    DeploymentStatus.CANCELLED,
    DeploymentStatus.EMERGENCY_STOP,
})


def parse_status(value) -> Optional[DeploymentStatus]:
    """Coerce a raw value to a DeploymentStatus, None if it is not one."""
    if isinstance(value, DeploymentStatus):
        return value
    try:
        return DeploymentStatus(value)
    except ValueError:
        return None


def validate_transition(current: DeploymentStatus, requested) -> DeploymentStatus:
    """
    Check a status change against the transition table.

    Unknown requested statuses are rejected the same way as missing edges.

    Returns:
        The requested status as a DeploymentStatus

    Raises:
        InvalidTransitionError: edge not in the table
    """
    new_status = parse_status(requested)
    if new_status is None or new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            entity="deployment",
            current_status=current.value,
            requested_status=getattr(requested, "value", str(requested))
        )
    return new_status


def duration_minutes(deployment) -> float:
    """(actual_end_time or estimated_end_time) - start_time, in minutes."""
    end = deployment.actual_end_time or deployment.estimated_end_time
    return (end - deployment.start_time).total_seconds() / 60


def is_overdue(deployment, now: datetime) -> bool:
    return deployment.status not in TERMINAL_STATUSES and now > deployment.estimated_end_time


def progress_percentage(deployment, now: datetime) -> float:
    """
    Elapsed share of the planned window, clamped to [0, 100].

    Completed deployments report 100; cancelled and emergency-stopped ones 0.
    """
    if deployment.status == DeploymentStatus.COMPLETED:
        return 100.0
    if deployment.status in (DeploymentStatus.CANCELLED, DeploymentStatus.EMERGENCY_STOP):
        return 0.0

    total = (deployment.estimated_end_time - deployment.start_time).total_seconds()
    if total <= 0:
        return 0.0
    elapsed = (now - deployment.start_time).total_seconds()
    return max(0.0, min(100.0, elapsed / total * 100))
