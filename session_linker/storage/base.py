"""
Key-Value Store Interface

Abstracts per-browser-profile persistent storage so the guest session store and link
records can run against Redis in deployment and a dict in tests.
"""

from abc import ABC, abstractmethod
from typing import List, Optional


class KeyValueStore(ABC):
    """
    Async string key-value storage.

    Implementations:
    - InMemoryStore: process-local dict with TTL support
    - RedisStore: Redis-backed, namespaced per browser profile
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store a value, optionally expiring after ttl_seconds."""
        pass

    @abstractmethod
    async def set_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        """Store a value only if the key is missing. Returns True if stored."""
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns the number of keys removed."""
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> List[str]:
        """List keys starting with prefix."""
        pass

    async def close(self) -> None:
        """Release resources. No-op by default."""
        return None
