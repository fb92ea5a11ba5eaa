"""
Redis Configuration - pending OAuth flow storage
"""

import json
from typing import Any, Optional

import redis.asyncio as redis_async
from loguru import logger
from redis.asyncio.connection import ConnectionPool

from .settings import settings


class RedisClient:
    """Redis Client Wrapper"""

    _pool: Optional[ConnectionPool] = None
    _client: Optional[redis_async.Redis] = None
    _is_available: bool = False

    @classmethod
    async def init(cls):
        """Initialize connection pool"""
        if settings.redis_url and not cls._pool:
            try:
                cls._pool = ConnectionPool.from_url(
                    settings.redis_url,
                    max_connections=settings.redis_pool_size,
                    decode_responses=True,
                )
                cls._client = redis_async.Redis(connection_pool=cls._pool)

                await cls._client.ping()
                cls._is_available = True
                logger.info(f"   Redis connected: {settings.redis_url}")
            except Exception as e:
                cls._is_available = False
                logger.warning(f"   Redis connection failed: {e}")
                logger.warning("   Pending OAuth flows fall back to the in-process store")

    @classmethod
    async def close(cls):
        """Close connection"""
        if cls._client:
            await cls._client.close()
            cls._client = None
        if cls._pool:
            await cls._pool.disconnect()
            cls._pool = None
        cls._is_available = False

    @classmethod
    def is_available(cls) -> bool:
        """Check if Redis is available"""
        return cls._is_available

    @classmethod
    async def set(
        cls,
        key: str,
        value: Any,
        expire: int = 3600,
    ) -> bool:
        """Set value"""
        if not cls._client:
            return False

        if not isinstance(value, str):
            value = json.dumps(value, ensure_ascii=False)

        await cls._client.set(key, value, ex=expire)
        return True

    @classmethod
    async def take(cls, key: str) -> Optional[str]:
        """Read and delete a key in one MULTI/EXEC transaction."""
        if not cls._client:
            return None
        async with cls._client.pipeline(transaction=True) as pipe:
            pipe.get(key)
            pipe.delete(key)
            value, _ = await pipe.execute()
        return str(value) if value is not None else None
