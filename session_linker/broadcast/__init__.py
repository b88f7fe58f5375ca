"""
Broadcast Package

Cross-tab signalling (sign-out, guest session changes).
"""

from .base import AUTH_SIGNOUT_KEY, BroadcastChannel, BroadcastMessage
from .memory import InMemoryBroadcastChannel, InMemoryBroadcastHub
from .redis_channel import RedisBroadcastChannel

__all__ = [
    "AUTH_SIGNOUT_KEY",
    "BroadcastChannel",
    "BroadcastMessage",
    "InMemoryBroadcastChannel",
    "InMemoryBroadcastHub",
    "RedisBroadcastChannel",
]
