"""
Redis Key-Value Store

Persists guest session data and link records in Redis, namespaced per
browser profile so several devices can share one Redis instance.
"""

import logging
from typing import List, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from ..errors import StorageError
from .base import KeyValueStore

logger = logging.getLogger(__name__)


class RedisStore(KeyValueStore):
    """
    Redis-backed key-value store.

    Keys are stored as `linker:<namespace>:<key>`.
    """

    KEY_PREFIX = "linker"

    def __init__(self, redis_url: str, namespace: str = "default"):
        """
        Initialize the store.

        Args:
            redis_url: Redis connection URL
            namespace: Browser profile / device namespace
        """
        self.redis_url = redis_url
        self.namespace = namespace
        self._redis: Optional[Redis] = None
        self._connected = False

    async def connect(self) -> None:
        """Establish Redis connection."""
        try:
            self._redis = await aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await self._redis.ping()
            self._connected = True
            logger.info(f"Redis store connected (namespace={self.namespace})")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._connected = False
            raise StorageError(f"Redis unavailable: {e}") from e

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None
            self._connected = False
            logger.info("Redis store disconnected")

    @property
    def is_connected(self) -> bool:
        return self._connected and self._redis is not None

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}:{self.namespace}:{key}"

    def _strip(self, full_key: str) -> str:
        return full_key[len(self._key("")):]

    def _client(self) -> Redis:
        if not self._redis:
            raise StorageError("Redis store not connected")
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        return await self._client().get(self._key(key))

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._client().set(self._key(key), value, ex=ttl_seconds)

    async def set_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        # SET NX returns None when the key already exists
        result = await self._client().set(self._key(key), value, ex=ttl_seconds, nx=True)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client().delete(*[self._key(k) for k in keys]))

    async def keys(self, prefix: str = "") -> List[str]:
        found = []
        async for full_key in self._client().scan_iter(match=f"{self._key(prefix)}*"):
            found.append(self._strip(full_key))
        return found
