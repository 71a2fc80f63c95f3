"""
Daily sequence identifiers.

DEP_###_YYMMDD for deployments, MAINT_YYMMDD_### for maintenance windows.
The counter row is bumped with a single UPDATE inside the caller's
transaction, so two creators never read the same value.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fleetops.app.core.clock import utcnow
from fleetops.app.models.daily_sequence import DailySequence

logger = logging.getLogger(__name__)

DEPLOYMENT_PREFIX = "DEP"
MAINTENANCE_PREFIX = "MAINT"

MAX_INSERT_ATTEMPTS = 3


async def next_sequence_value(db: AsyncSession, prefix: str, day: date) -> int:
    """
    Increment and return the counter for (prefix, day), starting at 1.

    A missing row is inserted in a savepoint; if another transaction inserted
    it first, the update path is retried.
    """
    for _ in range(MAX_INSERT_ATTEMPTS):
        result = await db.execute(
            update(DailySequence)
            .where(DailySequence.prefix == prefix, DailySequence.day == day)
            .values(last_value=DailySequence.last_value + 1)
            .returning(DailySequence.last_value)
            .execution_options(synchronize_session=False)
        )
        value = result.scalar_one_or_none()
        if value is not None:
            return value

        try:
            async with db.begin_nested():
                db.add(DailySequence(prefix=prefix, day=day, last_value=1))
            return 1
        except IntegrityError:
            logger.info("Sequence row %s/%s created concurrently, retrying", prefix, day)

    raise RuntimeError(f"Could not allocate sequence value for {prefix} on {day}")


def format_deployment_code(day: date, value: int) -> str:
    return f"{DEPLOYMENT_PREFIX}_{value:03d}_{day:%y%m%d}"


def format_maintenance_code(day: date, value: int) -> str:
    return f"{MAINTENANCE_PREFIX}_{day:%y%m%d}_{value:03d}"


async def next_deployment_code(db: AsyncSession, day: Optional[date] = None) -> str:
    day = day or utcnow().date()
    return format_deployment_code(day, await next_sequence_value(db, DEPLOYMENT_PREFIX, day))


async def next_maintenance_code(db: AsyncSession, day: Optional[date] = None) -> str:
    day = day or utcnow().date()
    return format_maintenance_code(day, await next_sequence_value(db, MAINTENANCE_PREFIX, day))
