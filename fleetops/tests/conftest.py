"""
Centralized Test Configuration.
"""

import time
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool, NullPool

from fleetops.app.main import app
from fleetops.app.core.clock import utcnow
from fleetops.app.core.redis_client import get_redis
from fleetops.app.db.session import get_db, Base, register_models
from fleetops.app.models.enums import UserRole, VehicleStatus
from fleetops.app.models.deployment_enums import DeploymentPurpose
from fleetops.app.models.maintenance_enums import MaintenanceType
from fleetops.app.models.user import User
from fleetops.app.models.vehicle import Vehicle
from fleetops.app.schemas.deployment import DeploymentCreate
from fleetops.app.schemas.maintenance import MaintenanceCreate

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

register_models()


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    """In-process stand-in for the subset of redis.asyncio the locks use."""

    def __init__(self):
        self.store = {}
        self.expiry = {}
        self._closed = False

    def _expire(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and time.monotonic() >= deadline:
            self.store.pop(key, None)
            self.expiry.pop(key, None)

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        self._expire(key)
        return self.store.get(key)

    async def set(self, key, value, ex=None, px=None, nx=False):
        if self._closed:
            return False
        self._expire(key)
        if nx and key in self.store:
            return None
        self.store[key] = value
        if px is not None:
            self.expiry[key] = time.monotonic() + px / 1000
        elif ex is not None:
            self.expiry[key] = time.monotonic() + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        self.expiry.pop(key, None)
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def eval(self, script, numkeys, *keys_and_args):
        # Only the lock release script runs here: compare-and-delete
        key, token = keys_and_args[0], keys_and_args[1]
        if self._closed:
            return 0
        self._expire(key)
        if self.store.get(key) != token:
            return 0
        return await self.delete(key)

    async def exists(self, key):
        self._expire(key)
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}
        self.expiry = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


async def _build_engine(url, **options):
    engine = create_async_engine(url, connect_args={"check_same_thread": False}, **options)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = await _build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    yield test_engine
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
async def file_engine(tmp_path):
    """File-backed database with one connection per session, for concurrent writers."""
    test_engine = await _build_engine(f"sqlite+aiosqlite:///{tmp_path / 'fleetops.db'}", poolclass=NullPool)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis():
    return MockRedis()


@pytest.fixture
async def client(session_factory, redis):
    """Async client with the database and Redis dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    async with AsyncClient(transport=ASGITransport(app=app, raise_app_exceptions=False), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


# Fixture data

async def create_vehicle(db, number: int = 1, status: VehicleStatus = VehicleStatus.AVAILABLE, **fields) -> Vehicle:
    vehicle = Vehicle(
        vehicle_code=f"EVZ_VEH_{number:03d}",
        registration_number=f"KA01EV{number:04d}",
        make="Tata",
        model="Nexon EV",
        battery_capacity_kwh=40.5,
        range_km=312,
        status=status,
        current_hub="Koramangala",
        **fields
    )
    db.add(vehicle)
    await db.commit()
    await db.refresh(vehicle)
    return vehicle


async def create_user(db, username: str, role: UserRole = UserRole.PILOT, is_active: bool = True) -> User:
    user = User(
        email=f"{username}@fleetops.test",
        username=username,
        full_name=username.title(),
        role=role,
        is_active=is_active
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def vehicle(db_session):
    return await create_vehicle(db_session, 1)


@pytest.fixture
async def other_vehicle(db_session):
    return await create_vehicle(db_session, 2)


@pytest.fixture
async def pilot(db_session):
    return await create_user(db_session, "pilot_one")


@pytest.fixture
async def other_pilot(db_session):
    return await create_user(db_session, "pilot_two")


@pytest.fixture
async def admin(db_session):
    return await create_user(db_session, "fleet_admin", role=UserRole.ADMIN)


@pytest.fixture
def window_start():
    """Whole-hour reference time one day ahead."""
    return (utcnow() + timedelta(days=1)).replace(minute=0, second=0, microsecond=0)


def deployment_payload(
    vehicle_id: int,
    pilot_id: int,
    start: datetime,
    end: datetime,
    created_by: int = None,
    **fields
) -> DeploymentCreate:
    data = {
        "vehicle_id": vehicle_id,
        "pilot_id": pilot_id,
        "start_time": start,
        "estimated_end_time": end,
        "start_location": {"latitude": 12.9352, "longitude": 77.6245, "address": "Koramangala Hub"},
        "purpose": DeploymentPurpose.PASSENGER_TRIP,
        "created_by": created_by or pilot_id,
    }
    data.update(fields)
    return DeploymentCreate(**data)


def maintenance_payload(
    vehicle_id: int,
    start: datetime,
    end: datetime,
    created_by: int = 1,
    **fields
) -> MaintenanceCreate:
    data = {
        "vehicle_id": vehicle_id,
        "maintenance_type": MaintenanceType.ROUTINE_SERVICE,
        "description": "Quarterly service",
        "service_provider_name": "EV Care Bengaluru",
        "scheduled_date": start,
        "estimated_duration_hours": 4,
        "vehicle_unavailable_from": start,
        "vehicle_unavailable_to": end,
        "created_by": created_by,
    }
    data.update(fields)
    return MaintenanceCreate(**data)


@pytest.fixture
def make_vehicle(db_session):
    async def _make(number: int, **fields) -> Vehicle:
        return await create_vehicle(db_session, number, **fields)
    return _make


@pytest.fixture
def make_user(db_session):
    async def _make(username: str, **fields) -> User:
        return await create_user(db_session, username, **fields)
    return _make


@pytest.fixture
def new_deployment():
    return deployment_payload


@pytest.fixture
def new_maintenance():
    return maintenance_payload
