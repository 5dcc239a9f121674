"""Redis client setup and configuration."""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from labsync.shared.config import Settings
from labsync.shared.config import get_settings

logger = logging.getLogger(__name__)

# Global Redis client
_redis_client: Optional[Redis] = None


def create_redis_client(settings: Settings) -> Redis:
    """Create Redis client with proper configuration."""
    pool = redis.ConnectionPool.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
        retry_on_timeout=True,
        socket_keepalive=True,
    )

    return Redis(connection_pool=pool)


def get_redis_client() -> Redis:
    """Get the global Redis client."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        _redis_client = create_redis_client(settings)
    return _redis_client


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis_client

    settings = get_settings()
    logger.info(f"Initializing Redis connection to {settings.redis_url}")

    _redis_client = create_redis_client(settings)

    try:
        await _redis_client.ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


async def close_redis() -> None:
    """Close Redis connections."""
    global _redis_client

    if _redis_client:
        logger.info("Closing Redis connections")
        await _redis_client.aclose()
        _redis_client = None
