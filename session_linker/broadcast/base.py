"""
Broadcast Channel Interface

Cross-tab signalling. Replaces browser storage events: a tab publishes a
key change and every other tab's subscribers are called with it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Coroutine, Dict, Optional

from ..models import utc_now

# Marker written by a tab that signs out
AUTH_SIGNOUT_KEY = "auth-signout"


@dataclass(frozen=True)
class BroadcastMessage:
    """A key change announced by one tab."""

    key: str
    value: Optional[str] = None
    source: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "source_instance": self.source,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BroadcastMessage":
        timestamp = data.get("timestamp")
        return cls(
            key=data["key"],
            value=data.get("value"),
            source=data.get("source_instance", ""),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else utc_now(),
        )


BroadcastCallback = Callable[[BroadcastMessage], Coroutine[Any, Any, None]]


class BroadcastChannel(ABC):
    """
    One tab's view of the shared broadcast medium.

    A channel never receives its own messages.
    """

    @property
    @abstractmethod
    def instance_id(self) -> str:
        """Identifier of this tab."""
        pass

    @abstractmethod
    async def publish(self, key: str, value: Optional[str] = None) -> None:
        """Announce a key change to other tabs."""
        pass

    @abstractmethod
    def subscribe(self, callback: BroadcastCallback) -> None:
        """Register an async callback for messages from other tabs."""
        pass

    @abstractmethod
    def unsubscribe(self, callback: BroadcastCallback) -> None:
        """Remove a previously registered callback."""
        pass

    async def close(self) -> None:
        """Release resources. No-op by default."""
        return None
