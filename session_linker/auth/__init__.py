"""
Auth Package

Auth provider contract and the observer tracking the current identity.
"""

from .observer import AuthStateObserver
from .provider import AuthProvider

__all__ = [
    "AuthProvider",
    "AuthStateObserver",
]
