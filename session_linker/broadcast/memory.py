"""
In-process broadcast hub.

Each "tab" opens a channel on a shared hub. Publishing awaits every other
channel's subscribers before returning, so all tabs have observed the change
by the time the publisher resumes.
"""

import logging
import uuid
from typing import List, Optional

from .base import BroadcastCallback, BroadcastChannel, BroadcastMessage

logger = logging.getLogger(__name__)


class InMemoryBroadcastHub:
    """Shared medium connecting in-process channels."""

    def __init__(self):
        self._channels: List["InMemoryBroadcastChannel"] = []

    def open_channel(self) -> "InMemoryBroadcastChannel":
        """Open a channel for one tab."""
        channel = InMemoryBroadcastChannel(self)
        self._channels.append(channel)
        return channel

    def _detach(self, channel: "InMemoryBroadcastChannel") -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    async def _deliver(self, message: BroadcastMessage) -> None:
        for channel in list(self._channels):
            if channel.instance_id == message.source:
                continue
            await channel._dispatch(message)

    @property
    def channel_count(self) -> int:
        return len(self._channels)


class InMemoryBroadcastChannel(BroadcastChannel):
    """Channel attached to an InMemoryBroadcastHub."""

    def __init__(self, hub: InMemoryBroadcastHub):
        self._hub = hub
        self._instance_id = uuid.uuid4().hex[:8]
        self._subscribers: List[BroadcastCallback] = []
        self._closed = False

    @property
    def instance_id(self) -> str:
        return self._instance_id

    async def publish(self, key: str, value: Optional[str] = None) -> None:
        if self._closed:
            logger.warning(f"Publish on closed channel {self._instance_id} ignored: {key}")
            return
        await self._hub._deliver(
            BroadcastMessage(key=key, value=value, source=self._instance_id)
        )

    def subscribe(self, callback: BroadcastCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: BroadcastCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def _dispatch(self, message: BroadcastMessage) -> None:
        for callback in list(self._subscribers):
            try:
                await callback(message)
            except Exception as e:
                logger.error(f"Broadcast subscriber error on {self._instance_id}: {e}")

    async def close(self) -> None:
        self._closed = True
        self._subscribers.clear()
        self._hub._detach(self)
