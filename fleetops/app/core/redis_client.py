"""
Redis client initialization and connection management.

Redis backs the short-lived resource locks taken around check-and-commit
and telemetry ingestion.
"""

import redis.asyncio as redis
from fleetops.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    Used as a FastAPI dependency by the mutating endpoints.
    """
    return redis_client


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except Exception:
        return False
