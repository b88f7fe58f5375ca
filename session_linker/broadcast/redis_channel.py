"""
Redis Pub/Sub broadcast channel.

Every client instance (tab, worker) subscribes to one channel per storage
namespace. Messages carry the publisher's instance id so a client ignores
its own announcements.
"""

import asyncio
import json
import logging
import uuid
from typing import List, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from ..errors import StorageError
from .base import BroadcastCallback, BroadcastChannel, BroadcastMessage

logger = logging.getLogger(__name__)


class RedisBroadcastChannel(BroadcastChannel):
    """Broadcast channel backed by Redis Pub/Sub."""

    CHANNEL_TEMPLATE = "linker:{namespace}:broadcast"

    def __init__(self, redis_url: str, namespace: str = "default"):
        """
        Initialize the channel.

        Args:
            redis_url: Redis connection URL
            namespace: Browser profile / device namespace
        """
        self.redis_url = redis_url
        self.namespace = namespace
        self.channel_name = self.CHANNEL_TEMPLATE.format(namespace=namespace)
        self._instance_id = uuid.uuid4().hex[:8]
        self._redis: Optional[Redis] = None
        self._pubsub = None
        self._listener_task: Optional[asyncio.Task] = None
        self._subscribers: List[BroadcastCallback] = []
        self._connected = False

    @property
    def instance_id(self) -> str:
        return self._instance_id

    async def connect(self) -> None:
        """Connect to Redis and start listening for other instances."""
        try:
            self._redis = await aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await self._redis.ping()
            self._connected = True
            logger.info(f"Broadcast channel {self._instance_id} connected to {self.channel_name}")
        except Exception as e:
            logger.error(f"Failed to connect broadcast channel to Redis: {e}")
            self._connected = False
            raise StorageError(f"Redis unavailable: {e}") from e

        await self.start_listener()

    async def start_listener(self) -> None:
        """Subscribe to the channel and spawn the listener task."""
        if not self._redis:
            return

        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.channel_name)
        self._listener_task = asyncio.create_task(self._listen())

    async def _listen(self) -> None:
        """Forward messages from other instances to local subscribers."""
        try:
            async for raw in self._pubsub.listen():
                if raw.get("type") != "message":
                    continue
                try:
                    data = json.loads(raw["data"])
                    message = BroadcastMessage.from_dict(data)
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Ignoring malformed broadcast message: {e}")
                    continue

                if message.source == self._instance_id:
                    continue

                await self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Broadcast listener stopped: {e}")

    async def _dispatch(self, message: BroadcastMessage) -> None:
        for callback in list(self._subscribers):
            try:
                await callback(message)
            except Exception as e:
                logger.error(f"Broadcast subscriber error: {e}")

    async def publish(self, key: str, value: Optional[str] = None) -> None:
        if not self._redis:
            logger.warning(f"Broadcast channel not connected, dropping {key}")
            return
        message = BroadcastMessage(key=key, value=value, source=self._instance_id)
        try:
            await self._redis.publish(self.channel_name, json.dumps(message.to_dict()))
        except Exception as e:
            logger.warning(f"Failed to publish broadcast {key}: {e}")

    def subscribe(self, callback: BroadcastCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: BroadcastCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def close(self) -> None:
        """Cancel the listener and close the connection."""
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self._pubsub:
            try:
                await self._pubsub.unsubscribe(self.channel_name)
                await self._pubsub.close()
            except Exception as e:
                logger.debug(f"Error closing pubsub: {e}")
            self._pubsub = None

        if self._redis:
            await self._redis.close()
            self._redis = None
            self._connected = False
            logger.info(f"Broadcast channel {self._instance_id} disconnected")
