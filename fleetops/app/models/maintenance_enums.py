"""
Vehicle maintenance enumerations.
"""

import enum


class MaintenanceStatus(str, enum.Enum):
    """
    Maintenance status enumeration.

    Status flow:
        SCHEDULED → IN_PROGRESS → COMPLETED
        CANCELLED and FAILED can be rescheduled
        DELAYED returns to SCHEDULED or IN_PROGRESS
    """
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DELAYED = "delayed"
    FAILED = "failed"


class MaintenanceType(str, enum.Enum):
    ROUTINE_SERVICE = "routine_service"
    BATTERY_CHECK = "battery_check"
    TIRE_REPLACEMENT = "tire_replacement"
    BRAKE_SERVICE = "brake_service"
    EMERGENCY_REPAIR = "emergency_repair"
    SOFTWARE_UPDATE = "software_update"
    CHARGING_SYSTEM_CHECK = "charging_system_check"
    MOTOR_SERVICE = "motor_service"
    BODY_REPAIR = "body_repair"
    ELECTRICAL_REPAIR = "electrical_repair"


class MaintenancePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class Currency(str, enum.Enum):
    INR = "INR"
    USD = "USD"
    EUR = "EUR"


class DiagnosticComponent(str, enum.Enum):
    BATTERY = "battery"
    MOTOR = "motor"
    BRAKES = "brakes"
    TIRES = "tires"
    CHARGING_SYSTEM = "charging_system"
    ELECTRONICS = "electronics"
    BODY = "body"
    SOFTWARE = "software"


class ComponentCondition(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    FAILED = "failed"


class RecommendedAction(str, enum.Enum):
    NONE = "none"
    MONITOR = "monitor"
    SCHEDULE_MAINTENANCE = "schedule_maintenance"
    IMMEDIATE_ATTENTION = "immediate_attention"
    REPLACE = "replace"


class IssueSeverity(str, enum.Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"
