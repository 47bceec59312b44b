"""
Redis client for the shared transition snapshot store.

Only built when SNAPSHOT_BACKEND is "redis", so before-write snapshots are
visible to every API worker process and expire natively.

Redis Key Patterns:
    - Transition snapshots: appointment:snapshot:{appointment_id}
    - TTL: SNAPSHOT_TTL_SECONDS
"""

import logging
from functools import lru_cache

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> "redis.Redis[str]":
    """
    Get the cached Redis client used for transition snapshots.

    Pool size comes from REDIS_MAX_CONNECTIONS; socket reads share the
    STORE_TIMEOUT_SECONDS bound of store calls. Responses are decoded since
    snapshots are stored as JSON text.
    """
    settings = get_settings()

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_timeout=settings.STORE_TIMEOUT_SECONDS,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=30,
        )
    except ValueError as e:
        logger.error(f"Invalid REDIS_URL for snapshot store: {e}")
        raise

    logger.info(
        f"Snapshot Redis client initialized "
        f"(max_connections={settings.REDIS_MAX_CONNECTIONS}, "
        f"socket_timeout={settings.STORE_TIMEOUT_SECONDS}s)"
    )
    return client


async def close_redis_client() -> None:
    """
    Close the snapshot Redis pool on shutdown.

    A no-op when the client was never built.
    """
    if get_redis_client.cache_info().currsize == 0:
        return

    client = get_redis_client()
    try:
        await client.aclose()
        logger.info("Snapshot Redis client closed")
    except RedisError as e:
        logger.warning(f"Error closing snapshot Redis client: {e}")
    finally:
        get_redis_client.cache_clear()
