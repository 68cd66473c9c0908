"""
Redis client initialization and connection management.

Redis coordinates the scheduled reconciliation sweep across workers.
"""

import logging
import uuid
from typing import Optional

import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger("ledger.redis")

# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)

SWEEP_LOCK_KEY = "lock:ledger:reconciliation-sweep"


async def get_redis():
    """
    Get Redis client instance.

    This can be used as a FastAPI dependency if needed.
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


async def acquire_lock(client, key: str, ttl_seconds: int) -> Optional[str]:
    """
    Take a best-effort distributed lock with SET NX EX.

    Returns:
        The lock token when acquired, None when another holder has it.
        When Redis is unreachable a local token is returned: the guarded
        work must itself be idempotent.
    """
    token = str(uuid.uuid4())
    try:
        acquired = await client.set(key, token, nx=True, ex=ttl_seconds)
    except Exception as e:
        logger.warning("Redis unavailable, running without lock %s: %s", key, e)
        return token
    return token if acquired else None


async def release_lock(client, key: str, token: str) -> None:
    """Release a lock only if we still hold it."""
    try:
        current = await client.get(key)
        if current == token:
            await client.delete(key)
    except Exception as e:
        logger.warning("Could not release lock %s: %s", key, e)
