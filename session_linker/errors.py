"""
Exception types for the session linker.

The reconciler and trigger points never let these escape to callers; they
are converted to boolean outcomes and logged. The merge service maps them
to HTTP status codes.
"""

from typing import Optional


class LinkerError(Exception):
    """Base class for session linker errors."""


class LinkTransientError(LinkerError):
    """
    A link call failed in a way that is safe to retry.

    Raised for network failures, timeouts, auth races (401/403 right after
    signup) and server errors.
    """

    def __init__(
        self,
        reason: str,
        status_code: Optional[int] = None,
    ):
        self.reason = reason
        self.status_code = status_code
        status = f"HTTP {status_code}: " if status_code is not None else ""
        super().__init__(f"Transient link failure ({status}{reason})")


class LinkTimeoutError(LinkTransientError):
    """A single link attempt exceeded its timeout."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"timed out after {timeout_seconds:.1f}s")


class AuthError(LinkerError):
    """The auth provider rejected or failed a request."""


class StorageError(LinkerError):
    """Local key-value storage is unavailable."""


class MergeError(LinkerError):
    """Server-side merge of guest rows into user rows failed."""


class GuestProfileNotFoundError(MergeError):
    """No temporary guest profile exists for the session id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No temporary profile found for session {session_id}")
