"""
User database model.

Pilots and staff are managed by the surrounding system; the deployment core
only reads them to validate pilot assignments.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from fleetops.app.core.clock import utcnow
from fleetops.app.db.session import Base
from fleetops.app.models.enums import UserRole, OPERATING_ROLES, enum_values


class User(Base):
    """User model (pilot, admin, employee)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    mobile_number = Column(String(30), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(
        Enum(UserRole, values_callable=enum_values, name="user_role"),
        default=UserRole.PILOT,
        nullable=False
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def can_operate_vehicles(self) -> bool:
        return self.is_active and self.role in OPERATING_ROLES

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
