"""
Geo-metrics calculator.

Pure functions over a telemetry ping sequence: great-circle distance,
speed and battery aggregation, carbon-savings estimate. No I/O, so the
results can be recomputed from the raw pings at any time.
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Iterable, List, Optional

from fleetops.app.models.deployment_enums import SignalQuality

EARTH_RADIUS_KM = 6371.0
DEFAULT_CARBON_FACTOR_KG_PER_KM = 0.2

ANOMALY_BATTERY_RECHARGED = "battery_recharged"


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


@dataclass(frozen=True)
class Ping:
    """The fields of a location ping the metrics care about."""
    latitude: float
    longitude: float
    recorded_at: datetime
    speed: Optional[float] = None
    battery_level: Optional[float] = None


@dataclass(frozen=True)
class PingMetrics:
    total_distance_km: float
    average_speed: Optional[float]
    max_speed: Optional[float]
    battery_start: Optional[float]
    battery_end: Optional[float]
    battery_used: float
    energy_efficiency: Optional[float]  # km per battery-%; None when nothing was used
    carbon_footprint_saved_kg: float
    total_duration_minutes: float
    idle_time_minutes: float
    ping_count: int
    anomalies: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def as_ping(row) -> Ping:
    """Build a ``Ping`` from any object with the ping attributes (ORM row, schema)."""
    return Ping(
        latitude=row.latitude,
        longitude=row.longitude,
        recorded_at=row.recorded_at,
        speed=row.speed,
        battery_level=row.battery_level,
    )


def compute_ping_metrics(
    pings: Iterable[Ping],
    carbon_factor: float = DEFAULT_CARBON_FACTOR_KG_PER_KM
) -> Optional[PingMetrics]:
    """
    Aggregate a ping sequence into trip metrics.

    Pings are sorted by timestamp first (stable, so equal timestamps keep
    arrival order). Returns None with fewer than two pings: there is no trip
    to measure, and zeros would read as a real zero-length trip.
    """
    ordered = sorted(pings, key=lambda p: p.recorded_at)
    if len(ordered) < 2:
        return None

    total_distance = 0.0
    idle_seconds = 0.0
    for prev, curr in zip(ordered, ordered[1:]):
        total_distance += haversine_distance(prev.latitude, prev.longitude, curr.latitude, curr.longitude)
        if prev.speed == 0 and curr.speed == 0:
            idle_seconds += (curr.recorded_at - prev.recorded_at).total_seconds()

    speeds = [p.speed for p in ordered if p.speed is not None]
    max_speed = max(speeds) if speeds else None
    average_speed = sum(speeds) / len(speeds) if speeds else None

    batteries = [p.battery_level for p in ordered if p.battery_level is not None]
    battery_start = batteries[0] if batteries else None
    battery_end = batteries[-1] if batteries else None

    anomalies = []
    battery_used = 0.0
    if battery_start is not None and battery_end is not None:
        battery_used = battery_start - battery_end
        if battery_used < 0:
            # Topped up mid-trip; consumption is unknown, not negative
            anomalies.append(ANOMALY_BATTERY_RECHARGED)
            battery_used = 0.0

    energy_efficiency = total_distance / battery_used if battery_used > 0 else None
    total_duration = (ordered[-1].recorded_at - ordered[0].recorded_at).total_seconds() / 60

    return PingMetrics(
        total_distance_km=total_distance,
        average_speed=average_speed,
        max_speed=max_speed,
        battery_start=battery_start,
        battery_end=battery_end,
        battery_used=battery_used,
        energy_efficiency=energy_efficiency,
        carbon_footprint_saved_kg=total_distance * carbon_factor,
        total_duration_minutes=total_duration,
        idle_time_minutes=idle_seconds / 60,
        ping_count=len(ordered),
        anomalies=anomalies,
    )


def running_mean(current_mean: Optional[float], sample_count: int, new_value: float) -> float:
    """
    Incremental mean: fold ``new_value`` into a mean of ``sample_count`` samples.

    ``sample_count`` is the count *before* adding the new value.
    """
    if not sample_count or current_mean is None:
        return float(new_value)
    return current_mean + (new_value - current_mean) / (sample_count + 1)


def grade_signal_quality(average_accuracy_m: Optional[float]) -> SignalQuality:
    """Grade GPS signal from the mean reported accuracy (meters)."""
    if average_accuracy_m is None:
        return SignalQuality.GOOD
    if average_accuracy_m <= 5:
        return SignalQuality.EXCELLENT
    if average_accuracy_m <= 15:
        return SignalQuality.GOOD
    if average_accuracy_m <= 50:
        return SignalQuality.FAIR
    return SignalQuality.POOR
