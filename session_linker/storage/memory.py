"""
In-memory key-value store.

Used for single-process deployments and as the storage double in tests.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from .base import KeyValueStore


class InMemoryStore(KeyValueStore):
    """
    Dict-backed store with lazy TTL expiry.

    Args:
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._data[key] = (value, self._expiry(ttl_seconds))

    async def set_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        # No await between the check and the write, so this is atomic on the loop
        if self._live(key) is not None:
            return False
        self._data[key] = (value, self._expiry(ttl_seconds))
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                removed += 1
            self._data.pop(key, None)
        return removed

    async def keys(self, prefix: str = "") -> List[str]:
        return [key for key in list(self._data) if key.startswith(prefix) and self._live(key) is not None]

    def __len__(self) -> int:
        return len([key for key in list(self._data) if self._live(key) is not None])
