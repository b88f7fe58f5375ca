"""
Storage Package

Key-value persistence for guest sessions and link records.
"""

from .base import KeyValueStore
from .memory import InMemoryStore
from .redis_store import RedisStore

__all__ = [
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
]
