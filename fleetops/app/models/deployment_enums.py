"""
Deployment-related enumerations.
"""

import enum


class DeploymentStatus(str, enum.Enum):
    """Deployment status enumeration."""
    SCHEDULED = "scheduled"  # Created, vehicle and pilot reserved
    IN_PROGRESS = "in_progress"  # Pilot has started, telemetry flowing
    COMPLETED = "completed"  # Terminal
    CANCELLED = "cancelled"  # Terminal
    EMERGENCY_STOP = "emergency_stop"  # Abnormal, must resolve to COMPLETED or CANCELLED


class DeploymentPurpose(str, enum.Enum):
    PASSENGER_TRIP = "passenger_trip"
    DELIVERY = "delivery"
    MAINTENANCE = "maintenance"
    TESTING = "testing"
    RELOCATION = "relocation"
    EMERGENCY = "emergency"


class DeploymentPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EndReason(str, enum.Enum):
    """Why a deployment left the active states."""
    COMPLETED_NORMALLY = "completed_normally"
    EMERGENCY = "emergency"
    BREAKDOWN = "breakdown"
    CANCELLED_BY_ADMIN = "cancelled_by_admin"
    PILOT_REQUEST = "pilot_request"
    BATTERY_DEPLETED = "battery_depleted"
    WINDOW_EXPIRED = "window_expired"  # Set by the overdue sweep


class IncidentType(str, enum.Enum):
    EMERGENCY_STOP = "emergency_stop"
    BREAKDOWN = "breakdown"
    ACCIDENT = "accident"
    BATTERY_DEPLETED = "battery_depleted"
    ROUTE_DEVIATION = "route_deviation"
    OTHER = "other"


class IncidentSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CommunicationType(str, enum.Enum):
    PILOT_MESSAGE = "pilot_message"
    ADMIN_MESSAGE = "admin_message"
    SYSTEM_ALERT = "system_alert"
    EMERGENCY_ALERT = "emergency_alert"


class CommunicationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SignalQuality(str, enum.Enum):
    """Graded from the running mean of reported GPS accuracy."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
