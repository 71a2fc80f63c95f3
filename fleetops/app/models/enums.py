"""
User role and vehicle status enumerations.
"""

import enum


def enum_values(enum_cls):
    """Persist enum values (``"in_progress"``) rather than member names."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        SUPER_ADMIN: System-level access
        ADMIN: Fleet administration
        EMPLOYEE: Back-office staff, cannot operate vehicles
        PILOT: Operates vehicles on deployments (default role)
    """
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    EMPLOYEE = "employee"
    PILOT = "pilot"


# Roles allowed to be assigned as the pilot of a deployment
OPERATING_ROLES = frozenset({UserRole.PILOT, UserRole.ADMIN, UserRole.SUPER_ADMIN})


class VehicleStatus(str, enum.Enum):
    """
    Vehicle status enumeration.

    Must agree with the vehicle's active deployment or maintenance window:
        DEPLOYED while a deployment is IN_PROGRESS / EMERGENCY_STOP
        MAINTENANCE while a maintenance window is IN_PROGRESS
    """
    AVAILABLE = "available"
    DEPLOYED = "deployed"
    MAINTENANCE = "maintenance"
    CHARGING = "charging"
    OUT_OF_SERVICE = "out_of_service"
