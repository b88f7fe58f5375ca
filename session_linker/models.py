"""
Linker Data Models

Defines guest session payloads, auth identities, link attempt records and
the enums describing their states. Records persist as JSON strings in the
key-value store.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string, return None if empty or invalid."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class LinkState(str, Enum):
    """Idempotency states for a (session_id, user_id) pair."""

    UNATTEMPTED = "unattempted"  # No record yet
    IN_FLIGHT = "in_flight"      # Merge call outstanding
    SUCCEEDED = "succeeded"      # Merge confirmed by the server
    FAILED = "failed"            # Last attempt failed, retryable on next trigger


class ReconcilerState(str, Enum):
    """State machine view reported by the reconciler."""

    NO_SESSION = "no_session"
    UNLINKED = "unlinked"
    LINK_IN_FLIGHT = "link_in_flight"
    LINKED = "linked"


class TriggerOrigin(str, Enum):
    """Call sites that ask the reconciler to link."""

    SIGNUP = "signup"
    OAUTH_CALLBACK = "oauth_callback"
    AUTH_EVENT = "auth_event"
    SESSION_RESTORE = "session_restore"
    PROFILE_NAVIGATION = "profile_navigation"
    PROFILE_MOUNT = "profile_mount"
    SAVE_PROFILE = "save_profile"
    MANUAL = "manual"


class AuthEvent(str, Enum):
    """Auth provider lifecycle events."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


@dataclass
class GuestSession:
    """
    Data accumulated while the visitor is unauthenticated.

    Only session_id is required; the payloads fill in as the guest flow
    progresses (profile generation, contact creation, message selection).
    """

    session_id: str
    guest_profile: Optional[Dict[str, Any]] = None
    guest_summary: Optional[Dict[str, Any]] = None
    guest_contact: Optional[Dict[str, Any]] = None
    generated_messages: Optional[Any] = None
    selected_message: Optional[str] = None
    selected_version: Optional[str] = None

    @property
    def is_profile_complete(self) -> bool:
        return bool(self.guest_profile and self.guest_summary)

    @property
    def is_contact_complete(self) -> bool:
        return bool(self.guest_contact)

    @property
    def is_message_generation_unlocked(self) -> bool:
        return self.is_profile_complete and self.is_contact_complete

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "session_id": self.session_id,
            "guest_profile": self.guest_profile,
            "guest_summary": self.guest_summary,
            "guest_contact": self.guest_contact,
            "generated_messages": self.generated_messages,
            "selected_message": self.selected_message,
            "selected_version": self.selected_version,
        }


@dataclass(frozen=True)
class AuthIdentity:
    """An authenticated user as seen by this client."""

    user_id: str
    email: Optional[str] = None
    provider: str = "email"


@dataclass(frozen=True)
class AuthSession:
    """Provider session with its expiry."""

    identity: AuthIdentity
    access_token: str
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """A session is expired once now >= expires_at."""
        return (now or utc_now()) >= self.expires_at


@dataclass(frozen=True)
class AuthChange:
    """Transition delivered to auth observer subscribers."""

    event: AuthEvent
    identity: Optional[AuthIdentity]
    previous: Optional[AuthIdentity] = None
    remote: bool = False  # True when caused by another tab


@dataclass
class LinkAttemptRecord:
    """
    Audit trail and idempotency guard for one (session_id, user_id) pair.
    """

    session_id: str
    user_id: str
    state: LinkState = LinkState.UNATTEMPTED
    origin: Optional[TriggerOrigin] = None
    timestamp: datetime = field(default_factory=utc_now)
    attempts: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == LinkState.SUCCEEDED

    @property
    def linked(self) -> bool:
        return self.success

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "state": self.state.value,
            "linked": self.linked,
            "success": self.success,
            "origin": self.origin.value if self.origin else None,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "attempts": self.attempts,
            "error": self.error,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LinkAttemptRecord":
        """
        Create a record from its stored dictionary.

        Records written by older clients only carried a truthy marker; those
        are read as succeeded. An unknown state falls back to those flags.
        """
        try:
            state = LinkState(data["state"]) if data.get("state") else None
        except ValueError:
            state = None

        if state is None:
            if data.get("success") or data.get("linked"):
                state = LinkState.SUCCEEDED
            else:
                state = LinkState.UNATTEMPTED

        origin_value = data.get("origin")
        try:
            origin = TriggerOrigin(origin_value) if origin_value else None
        except ValueError:
            origin = TriggerOrigin.MANUAL

        return cls(
            session_id=data.get("session_id", ""),
            user_id=data.get("user_id", ""),
            state=state,
            origin=origin,
            timestamp=_parse_datetime(data.get("timestamp")) or utc_now(),
            attempts=int(data.get("attempts", 0)),
            error=data.get("error") or None,
        )

    @classmethod
    def from_json(cls, session_id: str, user_id: str, raw: str) -> "LinkAttemptRecord":
        """Parse a stored value; a legacy 'true' marker means succeeded."""
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = {}
        if not isinstance(data, dict):
            data = {"success": bool(data)}
        data.setdefault("session_id", session_id)
        data.setdefault("user_id", user_id)
        return cls.from_dict(data)


@dataclass(frozen=True)
class LinkResponse:
    """Result returned by the remote merge function."""

    success: bool
    action: Optional[str] = None
    message: Optional[str] = None
    permanent: bool = False  # Retrying will not change the answer

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action,
            "message": self.message,
            "permanent": self.permanent,
        }
