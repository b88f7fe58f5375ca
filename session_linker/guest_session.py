"""
Guest Session Store

Owns the anonymous session id generated on a visitor's first load and the
payloads the guest flow accumulates before signup (profile, summary,
contact, generated messages, selected message).

The session id survives reloads within one storage namespace (browser
profile) but never crosses devices.
"""

import json
import logging
import uuid
from typing import Any, Dict, Optional

from .broadcast.base import BroadcastChannel, BroadcastMessage
from .models import GuestSession
from .storage.base import KeyValueStore

logger = logging.getLogger(__name__)

GUEST_SESSION_KEY = "guest_session_id"
GUEST_SELECTED_MESSAGE_KEY = "guest_selected_message"
GUEST_PROFILE_KEY = "guest_profile"
GUEST_SUMMARY_KEY = "guest_summary"
GUEST_CONTACT_KEY = "guest_contact"
GUEST_MESSAGES_KEY = "guest_generated_messages"

GUEST_PAYLOAD_KEYS = (
    GUEST_SELECTED_MESSAGE_KEY,
    GUEST_PROFILE_KEY,
    GUEST_SUMMARY_KEY,
    GUEST_CONTACT_KEY,
    GUEST_MESSAGES_KEY,
)


class GuestSessionStore:
    """
    Read-or-create access to the guest session and its payloads.

    Args:
        store: Persistent key-value storage
        channel: Optional broadcast channel; other tabs' changes to the
            session keys drop the cached id here
    """

    def __init__(self, store: KeyValueStore, channel: Optional[BroadcastChannel] = None):
        self._store = store
        self._channel = channel
        self._session_id: Optional[str] = None

        if channel is not None:
            channel.subscribe(self._on_broadcast)

    async def get_or_create_session_id(self) -> str:
        """
        Return the persisted session id, creating one on first use.

        Safe to call redundantly; concurrent first calls converge on the
        id that reached storage first.
        """
        existing = await self.get_session_id()
        if existing:
            return existing

        candidate = str(uuid.uuid4())
        created = await self._store.set_if_absent(GUEST_SESSION_KEY, candidate)
        if created:
            logger.info(f"Created guest session {candidate[:8]}")
            self._session_id = candidate
            return candidate

        # Lost the race to another caller or tab
        stored = await self._store.get(GUEST_SESSION_KEY)
        self._session_id = stored or candidate
        return self._session_id

    async def get_session_id(self) -> Optional[str]:
        """Return the persisted session id without creating one."""
        if self._session_id:
            return self._session_id
        self._session_id = await self._store.get(GUEST_SESSION_KEY)
        return self._session_id

    async def has_active_session(self) -> bool:
        return bool(await self._store.get(GUEST_SESSION_KEY))

    async def update_profile(self, profile: Dict[str, Any], summary: Optional[Dict[str, Any]]) -> None:
        """Store the generated guest profile and its summary."""
        await self.get_or_create_session_id()
        await self._write_json(GUEST_PROFILE_KEY, profile)
        await self._write_json(GUEST_SUMMARY_KEY, summary)

    async def update_contact(self, contact: Dict[str, Any]) -> None:
        await self.get_or_create_session_id()
        await self._write_json(GUEST_CONTACT_KEY, contact)

    async def update_generated_messages(self, messages: Any) -> None:
        await self.get_or_create_session_id()
        await self._write_json(GUEST_MESSAGES_KEY, messages)

    async def select_message(self, message: str, version: str) -> None:
        """Remember the outreach message the guest picked, tied to this session."""
        session_id = await self.get_or_create_session_id()
        await self._write_json(
            GUEST_SELECTED_MESSAGE_KEY,
            {"message": message, "version": version, "sessionId": session_id},
        )
        if self._channel is not None:
            await self._channel.publish(GUEST_SELECTED_MESSAGE_KEY, session_id)

    async def get_selected_message(self) -> Optional[Dict[str, str]]:
        """
        Return {"message", "version"} saved for the current session.

        A selection saved under a different session id is ignored.
        """
        data = await self._read_json(GUEST_SELECTED_MESSAGE_KEY)
        if not isinstance(data, dict):
            return None
        session_id = await self.get_session_id()
        if not session_id or data.get("sessionId") != session_id:
            return None
        return {"message": data.get("message"), "version": data.get("version")}

    async def get_session_data(self) -> GuestSession:
        """Snapshot of the session id and every guest payload."""
        session_id = await self.get_or_create_session_id()
        selected = await self.get_selected_message() or {}
        return GuestSession(
            session_id=session_id,
            guest_profile=await self._read_json(GUEST_PROFILE_KEY),
            guest_summary=await self._read_json(GUEST_SUMMARY_KEY),
            guest_contact=await self._read_json(GUEST_CONTACT_KEY),
            generated_messages=await self._read_json(GUEST_MESSAGES_KEY),
            selected_message=selected.get("message"),
            selected_version=selected.get("version"),
        )

    async def clear(self) -> None:
        """
        Remove the session id and all guest payloads.

        Only call after a confirmed migration or an explicit sign-out;
        clearing earlier orphans guest data that has not been merged.
        """
        previous = self._session_id
        await self._store.delete(GUEST_SESSION_KEY, *GUEST_PAYLOAD_KEYS)
        self._session_id = None
        logger.info(f"Cleared guest session {previous[:8] if previous else '-'}")
        if self._channel is not None:
            await self._channel.publish(GUEST_SESSION_KEY, None)

    async def _on_broadcast(self, message: BroadcastMessage) -> None:
        if message.key in (GUEST_SESSION_KEY, GUEST_SELECTED_MESSAGE_KEY):
            # Re-read from storage on next access
            self._session_id = None

    async def _write_json(self, key: str, value: Any) -> None:
        if value is None:
            await self._store.delete(key)
            return
        await self._store.set(key, json.dumps(value))

    async def _read_json(self, key: str) -> Any:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing saved {key}: {e}")
            return None
