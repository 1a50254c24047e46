"""
Redis Client Management
Handles the shared async Redis connection used by the state, KV and vector stores
"""

from typing import Optional

import redis.asyncio as redis
from loguru import logger

from ..config import settings


_client: Optional[redis.Redis] = None


async def connect_redis(url: Optional[str] = None) -> Optional[redis.Redis]:
    """
    Get the shared Redis client, connecting on first use

    Returns:
        redis.Redis, or None when Redis is disabled or unreachable
        (callers fall back to in-memory storage)
    """
    global _client

    if not settings.USE_REDIS:
        return None

    if _client is not None and url is None:
        return _client

    try:
        client = redis.from_url(
            url or settings.redis_url,
            decode_responses=False,  # Keep as bytes for vector operations
            socket_timeout=5,
            socket_connect_timeout=5
        )

        # Test connection
        await client.ping()

        logger.info(
            f"Redis connected: {settings.REDIS_HOST}:{settings.REDIS_PORT} "
            f"(DB: {settings.REDIS_DB})"
        )

        if url is None:
            _client = client
        return client

    except (redis.ConnectionError, redis.TimeoutError, OSError) as e:
        logger.error(f"Failed to connect to Redis: {e}")
        logger.warning(
            "Redis is not available. Falling back to in-memory storage. "
            "Make sure Redis is running: redis-server"
        )
        return None


async def check_redis_health() -> bool:
    """
    Check if Redis is healthy

    Returns:
        bool: True if Redis is accessible
    """
    if _client is None:
        return False
    try:
        await _client.ping()
        return True
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return False


async def close_redis():
    """Close the shared client on shutdown"""
    global _client
    if _client is not None:
        try:
            await _client.aclose()
        except Exception as e:
            logger.error(f"Error closing Redis client: {e}")
        finally:
            _client = None
