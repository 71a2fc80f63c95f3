"""
Deployment lifecycle tests.

Scheduling against the window index, the status state machine, vehicle
status synchronisation, telemetry gating and the overdue sweep.
"""

import itertools
import re
from datetime import timedelta
from types import SimpleNamespace

import pytest

from fleetops.app.core.clock import utcnow
from fleetops.app.core.config import settings
from fleetops.app.core.exceptions import (
    ValidationError, ConflictError, InvalidTransitionError,
    InvalidStateError, NotFoundError
)
from fleetops.app.models.deployment import Deployment
from fleetops.app.models.deployment_enums import DeploymentStatus, EndReason
from fleetops.app.models.enums import UserRole, VehicleStatus
from fleetops.app.schemas.deployment import Location
from fleetops.app.services.audit import get_audit_trail, AuditAction
from fleetops.app.domain.deployments.deployment_service import DeploymentService
from fleetops.app.domain.deployments.history_service import HistoryService
from fleetops.app.domain.deployments.transitions import (
    ALLOWED_TRANSITIONS, validate_transition, duration_minutes,
    is_overdue, progress_percentage
)
from fleetops.app.domain.maintenance.maintenance_service import MaintenanceService

HUB = Location(latitude=12.9352, longitude=77.6245, address="Koramangala Hub")
MG_ROAD = Location(latitude=12.9716, longitude=77.5946, address="MG Road")


async def _schedule(db, redis, new_deployment, vehicle, pilot, start, hours=2, **fields):
    payload = new_deployment(vehicle.id, pilot.id, start, start + timedelta(hours=hours), **fields)
    return await DeploymentService.create(db, redis, payload)


# Scheduling

async def test_create_schedules_and_reserves(db_session, redis, vehicle, pilot, window_start, new_deployment):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)

    assert deployment.status == DeploymentStatus.SCHEDULED
    assert re.fullmatch(r"DEP_001_\d{6}", deployment.deployment_code)
    assert deployment.start_address == "Koramangala Hub"
    assert vehicle.status == VehicleStatus.AVAILABLE

    view = await HistoryService.get_history(db_session, deployment)
    assert [c.new_status for c in view.status_changes] == [DeploymentStatus.SCHEDULED]
    assert view.status_changes[0].previous_status is None

    trail = await get_audit_trail(db_session, entity_code=deployment.deployment_code)
    assert [entry.action for entry in trail] == [AuditAction.DEPLOYMENT_CREATED]


async def test_codes_increment_per_day(db_session, redis, vehicle, other_vehicle, pilot, other_pilot, window_start, new_deployment):
    first = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    second = await _schedule(db_session, redis, new_deployment, other_vehicle, other_pilot, window_start)

    assert first.deployment_code.startswith("DEP_001_")
    assert second.deployment_code.startswith("DEP_002_")
    assert first.deployment_code[-6:] == second.deployment_code[-6:]


async def test_overlapping_vehicle_window_conflicts(db_session, redis, vehicle, pilot, other_pilot, window_start, new_deployment):
    """Same vehicle, [10:00, 12:00) then [11:00, 13:00)."""
    d1 = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    d1_code = d1.deployment_code

    with pytest.raises(ConflictError) as exc_info:
        await _schedule(
            db_session, redis, new_deployment, vehicle, other_pilot, window_start + timedelta(hours=1)
        )

    assert exc_info.value.conflicting_id == d1_code
    assert exc_info.value.pool == "vehicle_deployments"
    _, total = await DeploymentService.list_deployments(db_session)
    assert total == 1


async def test_overlapping_pilot_window_conflicts(db_session, redis, vehicle, other_vehicle, pilot, window_start, new_deployment):
    d1 = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    d1_code = d1.deployment_code

    with pytest.raises(ConflictError) as exc_info:
        await _schedule(
            db_session, redis, new_deployment, other_vehicle, pilot, window_start + timedelta(minutes=30)
        )

    assert exc_info.value.pool == "pilot_deployments"
    assert exc_info.value.conflicting_id == d1_code


async def test_back_to_back_windows_do_not_conflict(db_session, redis, vehicle, pilot, window_start, new_deployment):
    await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    second = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start + timedelta(hours=2))

    assert second.status == DeploymentStatus.SCHEDULED


async def test_cancelled_deployment_frees_its_window(db_session, redis, vehicle, pilot, window_start, new_deployment):
    d1 = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    await DeploymentService.transition(db_session, redis, d1.deployment_code, DeploymentStatus.CANCELLED)

    d2 = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)

    assert d2.status == DeploymentStatus.SCHEDULED


@pytest.mark.parametrize("hours", [0, -1])
async def test_end_not_after_start_rejected(db_session, redis, vehicle, pilot, window_start, new_deployment, hours):
    with pytest.raises(ValidationError) as exc_info:
        await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start, hours=hours)

    assert exc_info.value.details["field"] == "estimated_end_time"


async def test_window_longer_than_maximum_rejected(db_session, redis, vehicle, pilot, window_start, new_deployment):
    with pytest.raises(ValidationError) as exc_info:
        await _schedule(
            db_session, redis, new_deployment, vehicle, pilot, window_start,
            hours=settings.max_deployment_hours + 1
        )

    assert exc_info.value.details["reason"] == "window_too_long"


@pytest.mark.parametrize("status", [
    VehicleStatus.CHARGING, VehicleStatus.MAINTENANCE,
    VehicleStatus.OUT_OF_SERVICE, VehicleStatus.DEPLOYED
])
async def test_vehicle_must_be_available(db_session, redis, make_vehicle, pilot, window_start, new_deployment, status):
    unavailable = await make_vehicle(7, status=status)

    with pytest.raises(InvalidStateError) as exc_info:
        await _schedule(db_session, redis, new_deployment, unavailable, pilot, window_start)

    assert exc_info.value.current_status == status.value


async def test_inactive_vehicle_not_found(db_session, redis, make_vehicle, pilot, window_start, new_deployment):
    retired = await make_vehicle(8, is_active=False)

    with pytest.raises(NotFoundError):
        await _schedule(db_session, redis, new_deployment, retired, pilot, window_start)


async def test_unknown_vehicle_not_found(db_session, redis, pilot, window_start, new_deployment):
    payload = new_deployment(999, pilot.id, window_start, window_start + timedelta(hours=1))

    with pytest.raises(NotFoundError):
        await DeploymentService.create(db_session, redis, payload)


@pytest.mark.parametrize("role,is_active", [
    (UserRole.EMPLOYEE, True),
    (UserRole.PILOT, False),
])
async def test_pilot_must_be_active_operator(db_session, redis, vehicle, make_user, window_start, new_deployment, role, is_active):
    user = await make_user("not_a_pilot", role=role, is_active=is_active)

    with pytest.raises(NotFoundError):
        await _schedule(db_session, redis, new_deployment, vehicle, user, window_start)


async def test_admin_may_pilot(db_session, redis, vehicle, admin, window_start, new_deployment):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, admin, window_start)

    assert deployment.pilot_id == admin.id


async def test_maintenance_ignored_without_cross_pool_enforcement(db_session, redis, vehicle, pilot, window_start, new_deployment, new_maintenance):
    await MaintenanceService.create(
        db_session, redis, new_maintenance(vehicle.id, window_start, window_start + timedelta(hours=4))
    )

    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start + timedelta(hours=1))

    assert deployment.status == DeploymentStatus.SCHEDULED


async def test_maintenance_blocks_with_cross_pool_enforcement(db_session, redis, vehicle, pilot, window_start, new_deployment, new_maintenance, monkeypatch):
    monkeypatch.setattr(settings, "enforce_cross_pool_conflicts", True)
    record = await MaintenanceService.create(
        db_session, redis, new_maintenance(vehicle.id, window_start, window_start + timedelta(hours=4))
    )
    maintenance_code = record.maintenance_code

    with pytest.raises(ConflictError) as exc_info:
        await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start + timedelta(hours=1))

    assert exc_info.value.pool == "vehicle_maintenance"
    assert exc_info.value.conflicting_id == maintenance_code


# State machine

ALL_STATUSES = list(DeploymentStatus)


@pytest.mark.parametrize("current,requested", list(itertools.product(ALL_STATUSES, ALL_STATUSES)))
def test_transition_table(current, requested):
    if requested in ALLOWED_TRANSITIONS[current]:
        assert validate_transition(current, requested.value) == requested
    else:
        with pytest.raises(InvalidTransitionError):
            validate_transition(current, requested)


def test_unknown_status_is_invalid_transition():
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate_transition(DeploymentStatus.SCHEDULED, "teleported")

    assert exc_info.value.requested_status == "teleported"


async def test_full_trip_with_metrics(db_session, redis, vehicle, pilot, window_start, new_deployment):
    """scheduled -> in_progress -> completed with three pings over an hour."""
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    code = deployment.deployment_code

    await DeploymentService.transition(db_session, redis, code, DeploymentStatus.IN_PROGRESS, changed_by=pilot.id)
    assert vehicle.status == VehicleStatus.DEPLOYED

    t0 = window_start
    await DeploymentService.update_telemetry(db_session, redis, code, HUB, battery_level=90, recorded_at=t0)
    await DeploymentService.update_telemetry(
        db_session, redis, code, MG_ROAD, speed=40, battery_level=70, recorded_at=t0 + timedelta(minutes=30)
    )
    await DeploymentService.update_telemetry(
        db_session, redis, code, MG_ROAD, speed=0, battery_level=60, recorded_at=t0 + timedelta(minutes=60)
    )

    completed = await DeploymentService.transition(
        db_session, redis, code, DeploymentStatus.COMPLETED,
        changed_by=pilot.id, end_reason=EndReason.COMPLETED_NORMALLY, end_location=MG_ROAD,
        now=t0 + timedelta(minutes=65)
    )

    assert completed.status == DeploymentStatus.COMPLETED
    assert completed.actual_end_time == t0 + timedelta(minutes=65)
    assert completed.end_address == "MG Road"
    assert completed.trip_distance_km > 0
    assert vehicle.status == VehicleStatus.AVAILABLE
    assert vehicle.mileage_km == pytest.approx(completed.trip_distance_km)
    assert vehicle.current_address == "MG Road"

    result = await HistoryService.compute_metrics(db_session, completed)
    assert result.available is True
    assert result.metrics["battery_used"] == 30
    assert result.metrics["total_duration_minutes"] == 60
    assert result.metrics["max_speed"] == 40

    view = await HistoryService.get_history(db_session, completed)
    assert [c.new_status for c in view.status_changes] == [
        DeploymentStatus.SCHEDULED, DeploymentStatus.IN_PROGRESS, DeploymentStatus.COMPLETED
    ]


async def test_completed_cannot_restart(db_session, redis, vehicle, pilot, window_start, new_deployment):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    code = deployment.deployment_code
    await DeploymentService.transition(db_session, redis, code, DeploymentStatus.IN_PROGRESS)
    await DeploymentService.transition(db_session, redis, code, DeploymentStatus.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        await DeploymentService.transition(db_session, redis, code, DeploymentStatus.IN_PROGRESS)

    refreshed = await DeploymentService.get(db_session, code)
    assert refreshed.status == DeploymentStatus.COMPLETED
    view = await HistoryService.get_history(db_session, refreshed)
    assert len(view.status_changes) == 3


async def test_completion_without_pings_leaves_distance_unset(db_session, redis, vehicle, pilot, window_start, new_deployment, mocker):
    spy = mocker.spy(HistoryService, "refresh_metrics")
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    code = deployment.deployment_code
    await DeploymentService.transition(db_session, redis, code, DeploymentStatus.IN_PROGRESS)
    assert spy.call_count == 0

    completed = await DeploymentService.transition(db_session, redis, code, DeploymentStatus.COMPLETED)

    assert spy.call_count == 1
    assert completed.trip_distance_km is None
    assert (vehicle.mileage_km or 0.0) == 0.0


async def test_telemetry_rejected_before_start(db_session, redis, vehicle, pilot, window_start, new_deployment):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)

    with pytest.raises(InvalidStateError) as exc_info:
        await DeploymentService.update_telemetry(db_session, redis, deployment.deployment_code, HUB, speed=10)

    assert exc_info.value.current_status == "scheduled"
    view = await HistoryService.get_history(db_session, deployment)
    assert view.location_pings == []


async def test_emergency_stop_keeps_vehicle_deployed(db_session, redis, vehicle, pilot, window_start, new_deployment):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    code = deployment.deployment_code
    await DeploymentService.transition(db_session, redis, code, DeploymentStatus.IN_PROGRESS)

    stopped = await DeploymentService.transition(
        db_session, redis, code, DeploymentStatus.EMERGENCY_STOP,
        end_reason=EndReason.BREAKDOWN, now=window_start + timedelta(minutes=20)
    )

    assert stopped.actual_end_time == window_start + timedelta(minutes=20)
    assert stopped.end_reason == EndReason.BREAKDOWN
    assert vehicle.status == VehicleStatus.DEPLOYED
    assert [d.deployment_code for d in await DeploymentService.list_active(db_session)] == [code]

    cancelled = await DeploymentService.transition(db_session, redis, code, DeploymentStatus.CANCELLED)

    # First end time is kept
    assert cancelled.actual_end_time == window_start + timedelta(minutes=20)
    assert vehicle.status == VehicleStatus.AVAILABLE


async def test_cancel_before_start_leaves_vehicle_alone(db_session, redis, vehicle, pilot, window_start, new_deployment):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)

    cancelled = await DeploymentService.transition(
        db_session, redis, deployment.deployment_code, DeploymentStatus.CANCELLED,
        now=window_start - timedelta(hours=3)
    )

    # Clamped to the window start
    assert cancelled.actual_end_time == window_start
    assert vehicle.status == VehicleStatus.AVAILABLE


async def test_start_requires_usable_vehicle(db_session, redis, vehicle, pilot, window_start, new_deployment):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    vehicle.status = VehicleStatus.OUT_OF_SERVICE
    await db_session.commit()

    with pytest.raises(InvalidStateError):
        await DeploymentService.transition(db_session, redis, deployment.deployment_code, DeploymentStatus.IN_PROGRESS)

    refreshed = await DeploymentService.get(db_session, deployment.deployment_code)
    assert refreshed.status == DeploymentStatus.SCHEDULED


async def test_transition_unknown_deployment(db_session, redis):
    with pytest.raises(NotFoundError):
        await DeploymentService.transition(db_session, redis, "DEP_404_250101", DeploymentStatus.CANCELLED)


# Overdue sweep

async def test_sweep_cancels_expired_and_reports_overdue(db_session, redis, vehicle, other_vehicle, pilot, other_pilot, window_start, new_deployment):
    expired = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start, hours=1)
    running = await _schedule(db_session, redis, new_deployment, other_vehicle, other_pilot, window_start, hours=1)
    future = await _schedule(
        db_session, redis, new_deployment, vehicle, pilot, window_start + timedelta(hours=10), hours=1
    )
    await DeploymentService.transition(db_session, redis, running.deployment_code, DeploymentStatus.IN_PROGRESS)

    result = await DeploymentService.sweep_overdue(db_session, redis, now=window_start + timedelta(hours=3))

    assert result.cancelled == [expired.deployment_code]
    assert result.overdue_in_progress == [running.deployment_code]

    swept = await DeploymentService.get(db_session, expired.deployment_code)
    assert swept.status == DeploymentStatus.CANCELLED
    assert swept.end_reason == EndReason.WINDOW_EXPIRED
    view = await HistoryService.get_history(db_session, swept)
    assert view.status_changes[-1].system_generated is True
    assert view.status_changes[-1].changed_by is None

    assert (await DeploymentService.get(db_session, running.deployment_code)).status == DeploymentStatus.IN_PROGRESS
    assert (await DeploymentService.get(db_session, future.deployment_code)).status == DeploymentStatus.SCHEDULED

    trail = await get_audit_trail(db_session, entity_code=expired.deployment_code, action=AuditAction.DEPLOYMENT_EXPIRED)
    assert len(trail) == 1


async def test_sweep_twice_is_noop(db_session, redis, vehicle, pilot, window_start, new_deployment):
    await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start, hours=1)
    later = window_start + timedelta(hours=2)

    first = await DeploymentService.sweep_overdue(db_session, redis, now=later)
    second = await DeploymentService.sweep_overdue(db_session, redis, now=later)

    assert len(first.cancelled) == 1
    assert second.cancelled == []


# Queries

async def test_list_filters_and_pages(db_session, redis, vehicle, other_vehicle, pilot, other_pilot, window_start, new_deployment):
    for i in range(3):
        await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start + timedelta(hours=i * 3), hours=1)
    await _schedule(db_session, redis, new_deployment, other_vehicle, other_pilot, window_start, hours=1)

    page, total = await DeploymentService.list_deployments(db_session, vehicle_id=vehicle.id, page=1, page_size=2)
    assert total == 3
    assert len(page) == 2
    # Newest first
    assert page[0].start_time > page[1].start_time

    by_pilot = await DeploymentService.pilot_deployments(db_session, other_pilot.id)
    assert [d.vehicle_id for d in by_pilot] == [other_vehicle.id]


async def test_vehicle_availability(db_session, redis, vehicle, pilot, window_start, new_deployment, new_maintenance):
    deployment = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    await MaintenanceService.create(
        db_session, redis,
        new_maintenance(vehicle.id, window_start + timedelta(hours=5), window_start + timedelta(hours=8))
    )

    busy = await DeploymentService.vehicle_availability(
        db_session, vehicle.id, window_start + timedelta(hours=1), window_start + timedelta(hours=6)
    )
    assert busy.available is False
    assert [d.deployment_code for d in busy.deployment_conflicts] == [deployment.deployment_code]
    assert len(busy.maintenance_conflicts) == 1

    free = await DeploymentService.vehicle_availability(
        db_session, vehicle.id, window_start + timedelta(hours=2), window_start + timedelta(hours=5)
    )
    assert free.available is True


# Derived values

def _deployment(status, start, end, actual_end=None):
    return SimpleNamespace(status=status, start_time=start, estimated_end_time=end, actual_end_time=actual_end)


def test_duration_prefers_actual_end(window_start):
    planned = _deployment(DeploymentStatus.SCHEDULED, window_start, window_start + timedelta(hours=2))
    ended = _deployment(
        DeploymentStatus.COMPLETED, window_start, window_start + timedelta(hours=2),
        actual_end=window_start + timedelta(minutes=95)
    )

    assert duration_minutes(planned) == 120
    assert duration_minutes(ended) == 95


def test_progress_and_overdue(window_start):
    running = _deployment(DeploymentStatus.IN_PROGRESS, window_start, window_start + timedelta(hours=2))

    assert progress_percentage(running, window_start - timedelta(hours=1)) == 0
    assert progress_percentage(running, window_start + timedelta(minutes=30)) == 25
    assert progress_percentage(running, window_start + timedelta(hours=5)) == 100
    assert is_overdue(running, window_start + timedelta(hours=3)) is True
    assert is_overdue(running, window_start + timedelta(hours=1)) is False


@pytest.mark.parametrize("status,expected", [
    (DeploymentStatus.COMPLETED, 100),
    (DeploymentStatus.CANCELLED, 0),
    (DeploymentStatus.EMERGENCY_STOP, 0),
])
def test_progress_for_ended_deployments(window_start, status, expected):
    ended = _deployment(status, window_start, window_start + timedelta(hours=2))

    assert progress_percentage(ended, window_start + timedelta(hours=1)) == expected


def test_terminal_deployments_never_overdue(window_start):
    done = _deployment(DeploymentStatus.COMPLETED, window_start, window_start + timedelta(hours=1))

    assert is_overdue(done, window_start + timedelta(days=2)) is False


# Analytics

async def test_analytics_totals_and_rankings(db_session, redis, vehicle, other_vehicle, pilot, other_pilot, window_start, new_deployment):
    vehicle_id, other_vehicle_id = vehicle.id, other_vehicle.id
    pilot_id, other_pilot_id = pilot.id, other_pilot.id

    trip = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    dropped = await _schedule(db_session, redis, new_deployment, other_vehicle, pilot, window_start + timedelta(hours=3))
    await _schedule(db_session, redis, new_deployment, other_vehicle, other_pilot, window_start)

    await DeploymentService.transition(db_session, redis, trip.deployment_code, DeploymentStatus.IN_PROGRESS)
    await DeploymentService.update_telemetry(
        db_session, redis, trip.deployment_code, Location(latitude=12.90, longitude=77.60), recorded_at=window_start
    )
    await DeploymentService.update_telemetry(
        db_session, redis, trip.deployment_code, Location(latitude=12.95, longitude=77.60),
        recorded_at=window_start + timedelta(minutes=30)
    )
    completed = await DeploymentService.transition(
        db_session, redis, trip.deployment_code, DeploymentStatus.COMPLETED, now=window_start + timedelta(minutes=90)
    )
    # Cancelled before its start, so it ends at its start time
    await DeploymentService.transition(db_session, redis, dropped.deployment_code, DeploymentStatus.CANCELLED)

    now = utcnow()
    result = await DeploymentService.analytics(db_session, now - timedelta(hours=1), now + timedelta(hours=1))

    assert (result.total, result.completed, result.cancelled) == (3, 1, 1)
    assert result.average_duration_minutes == pytest.approx(45)
    assert result.total_distance_km == pytest.approx(completed.trip_distance_km)
    assert result.total_distance_km > 5

    assert [p["pilot_id"] for p in result.top_pilots] == [pilot_id, other_pilot_id]
    assert result.top_pilots[0]["deployment_count"] == 2
    assert result.top_pilots[0]["completion_rate"] == pytest.approx(50)
    assert result.top_pilots[0]["pilot_name"] == "Pilot_One"
    assert result.top_pilots[1]["completion_rate"] == 0

    utilization = {v["vehicle_id"]: v for v in result.vehicle_utilization}
    assert result.vehicle_utilization[0]["vehicle_id"] == other_vehicle_id
    assert utilization[other_vehicle_id]["deployment_count"] == 2
    assert utilization[other_vehicle_id]["total_hours"] == 0
    assert utilization[vehicle_id]["total_hours"] == pytest.approx(1.5)


async def test_analytics_filters(db_session, redis, vehicle, other_vehicle, pilot, other_pilot, window_start, new_deployment):
    other_pilot_id, vehicle_id = other_pilot.id, vehicle.id
    first = await _schedule(db_session, redis, new_deployment, vehicle, pilot, window_start)
    await _schedule(db_session, redis, new_deployment, other_vehicle, other_pilot, window_start)
    await DeploymentService.transition(db_session, redis, first.deployment_code, DeploymentStatus.CANCELLED)
    now = utcnow()
    start, end = now - timedelta(hours=1), now + timedelta(hours=1)

    by_pilot = await DeploymentService.analytics(db_session, start, end, pilot_id=other_pilot_id)
    by_vehicle = await DeploymentService.analytics(db_session, start, end, vehicle_id=vehicle_id)
    by_status = await DeploymentService.analytics(db_session, start, end, status=DeploymentStatus.SCHEDULED)
    later = await DeploymentService.analytics(db_session, now + timedelta(hours=1), now + timedelta(hours=2))

    assert by_pilot.total == 1
    assert by_vehicle.total == 1 and by_vehicle.cancelled == 1
    assert by_status.total == 1 and by_status.top_pilots[0]["pilot_id"] == other_pilot_id
    assert later.total == 0
    assert later.average_duration_minutes is None
    assert later.top_pilots == []


async def test_analytics_rejects_reversed_range(db_session):
    now = utcnow()

    with pytest.raises(ValidationError):
        await DeploymentService.analytics(db_session, now, now - timedelta(days=1))


def test_deployment_table_has_no_unused_columns():
    columns = set(Deployment.__table__.columns.keys())

    assert {"estimated_cost", "actual_cost", "trip_distance_km"} <= columns
    assert not columns & {"fuel_savings", "approved_by", "approved_at"}
