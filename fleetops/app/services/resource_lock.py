"""
Resource locking service.

Short-lived Redis mutexes keyed by resource id. Held across the
check-and-commit of deployment / maintenance creation and across
per-deployment telemetry ingestion and transitions.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Iterable, List, Optional

from fleetops.app.core.config import settings
from fleetops.app.core.exceptions import ResourceBusyError

logger = logging.getLogger(__name__)

# Redis key prefix for resource locks
LOCK_PREFIX = "lock:resource:"

# Compare-and-delete in one round trip so an expired lock re-taken by another
# holder is never removed
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def vehicle_key(vehicle_id: int) -> str:
    return f"vehicle:{vehicle_id}"


def pilot_key(pilot_id: int) -> str:
    return f"pilot:{pilot_id}"


def deployment_key(deployment_code: str) -> str:
    return f"deployment:{deployment_code}"


def maintenance_vehicle_key(vehicle_id: int) -> str:
    return f"maintenance:vehicle:{vehicle_id}"


def maintenance_key(maintenance_code: str) -> str:
    return f"maintenance:{maintenance_code}"


async def acquire_lock(
    redis,
    key: str,
    token: str,
    ttl_ms: Optional[int] = None,
    wait_seconds: Optional[float] = None
) -> bool:
    """
    Try to take one lock, retrying until ``wait_seconds`` elapses.

    The lock expires on its own after ``ttl_ms`` so a crashed holder cannot
    block the resource.

    Returns:
        True if acquired, False on timeout
    """
    ttl_ms = ttl_ms or settings.lock_ttl_ms
    wait_seconds = settings.lock_wait_seconds if wait_seconds is None else wait_seconds
    deadline = time.monotonic() + wait_seconds

    while True:
        if await redis.set(f"{LOCK_PREFIX}{key}", token, px=ttl_ms, nx=True):
            return True
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(settings.lock_retry_interval_ms / 1000)


async def release_lock(redis, key: str, token: str) -> bool:
    """
    Release a lock if it is still ours.

    A lock that already expired and was taken by someone else is left alone.
    """
    released = await redis.eval(RELEASE_SCRIPT, 1, f"{LOCK_PREFIX}{key}", token)
    if not released:
        logger.warning("Lock %s expired before release", key)
        return False
    return True


@asynccontextmanager
async def hold_resource_locks(
    redis,
    keys: Iterable[str],
    ttl_ms: Optional[int] = None,
    wait_seconds: Optional[float] = None
):
    """
    Hold every lock in ``keys`` for the duration of the block.

    Keys are taken in sorted order so two callers locking the same set cannot
    deadlock. If any key cannot be taken in time, the ones already held are
    released and ResourceBusyError is raised.

    Usage:
        async with hold_resource_locks(redis, [vehicle_key(1), pilot_key(7)]):
            ...check windows, insert, commit...
    """
    token = uuid.uuid4().hex
    held: List[str] = []
    try:
        for key in sorted(set(keys)):
            if not await acquire_lock(redis, key, token, ttl_ms=ttl_ms, wait_seconds=wait_seconds):
                logger.warning("Could not acquire lock %s", key)
                raise ResourceBusyError([key])
            held.append(key)
        yield token
    finally:
        for key in reversed(held):
            await release_lock(redis, key, token)
