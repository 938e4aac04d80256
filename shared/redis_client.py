"""Redis connection management.

The client is created lazily at app startup and handed to the event bus;
nothing in the lease or ledger core reads from Redis.
"""

import redis.asyncio as redis
import logging
from typing import Optional
from shared.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis connection client with connection pooling."""

    _instance: Optional[redis.Redis] = None
    _pool: Optional[redis.ConnectionPool] = None

    @classmethod
    async def get_client(cls) -> redis.Redis:
        """Get or create Redis client."""
        if cls._instance is None:
            cls._instance = await cls._create_client()
        return cls._instance

    @classmethod
    async def _create_client(cls) -> redis.Redis:
        pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            max_connections=10,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)

        try:
            await client.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis at {settings.redis_url}: {e}")
            await pool.disconnect()
            raise

        cls._pool = pool
        logger.info("Redis connection established")
        return client

    @classmethod
    async def is_available(cls) -> bool:
        """True when a client exists and answers PING."""
        if cls._instance is None:
            return False
        try:
            return bool(await cls._instance.ping())
        except Exception as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None
            logger.info("Redis connection closed")

        if cls._pool is not None:
            await cls._pool.disconnect()
            cls._pool = None
