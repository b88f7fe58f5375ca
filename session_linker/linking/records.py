"""
Link Attempt Records

Keyed idempotency table for guest-to-user links. One record per
(session_id, user_id) pair, stored under `linked-profile-<sid>-<uid>`.

The record is a cache of what the server confirmed, not a ledger: the
reconciler re-verifies a success marker before trusting it.
"""

import logging
from typing import Optional

from ..models import LinkAttemptRecord, LinkState, TriggerOrigin, utc_now
from ..storage.base import KeyValueStore

logger = logging.getLogger(__name__)

LINK_RECORD_PREFIX = "linked-profile-"
LINK_CLAIM_PREFIX = "link-claim-"


def record_key(session_id: str, user_id: str) -> str:
    return f"{LINK_RECORD_PREFIX}{session_id}-{user_id}"


def claim_key(session_id: str, user_id: str) -> str:
    return f"{LINK_CLAIM_PREFIX}{session_id}-{user_id}"


class LinkAttemptStore:
    """
    Persisted link records plus a best-effort cross-tab in-flight lease.

    The lease is not a lock: two tabs racing past an expired lease can both
    issue a merge call. The merge is upsert-safe on the server, so the cost
    is one redundant request.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def get(self, session_id: str, user_id: str) -> Optional[LinkAttemptRecord]:
        raw = await self._store.get(record_key(session_id, user_id))
        if raw is None:
            return None
        try:
            return LinkAttemptRecord.from_json(session_id, user_id, raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Dropping unreadable link record for session {session_id[:8]}: {e}")
            await self.invalidate(session_id, user_id)
            return None

    async def state(self, session_id: str, user_id: str) -> LinkState:
        record = await self.get(session_id, user_id)
        return record.state if record else LinkState.UNATTEMPTED

    async def save(self, record: LinkAttemptRecord) -> None:
        await self._store.set(record_key(record.session_id, record.user_id), record.to_json())

    async def mark_in_flight(
        self,
        session_id: str,
        user_id: str,
        origin: TriggerOrigin,
        attempts: int,
    ) -> LinkAttemptRecord:
        """Record an outstanding merge call. Never downgrades a success."""
        existing = await self.get(session_id, user_id)
        if existing and existing.success:
            return existing
        record = LinkAttemptRecord(
            session_id=session_id,
            user_id=user_id,
            state=LinkState.IN_FLIGHT,
            origin=origin,
            timestamp=utc_now(),
            attempts=attempts,
        )
        await self.save(record)
        return record

    async def mark_succeeded(
        self,
        session_id: str,
        user_id: str,
        origin: TriggerOrigin,
        attempts: int,
    ) -> bool:
        """
        Check-then-set the success record.

        Returns False (and keeps the first record) if the pair was already
        marked succeeded.
        """
        existing = await self.get(session_id, user_id)
        if existing and existing.success:
            logger.warning(
                f"Link for session {session_id[:8]} already recorded by "
                f"{existing.origin.value if existing.origin else 'unknown'}, keeping first record"
            )
            return False
        await self.save(
            LinkAttemptRecord(
                session_id=session_id,
                user_id=user_id,
                state=LinkState.SUCCEEDED,
                origin=origin,
                timestamp=utc_now(),
                attempts=attempts,
            )
        )
        return True

    async def mark_failed(
        self,
        session_id: str,
        user_id: str,
        origin: TriggerOrigin,
        attempts: int,
        error: str,
    ) -> None:
        """Record a failed attempt. Never overwrites a success."""
        existing = await self.get(session_id, user_id)
        if existing and existing.success:
            return
        await self.save(
            LinkAttemptRecord(
                session_id=session_id,
                user_id=user_id,
                state=LinkState.FAILED,
                origin=origin,
                timestamp=utc_now(),
                attempts=attempts,
                error=error,
            )
        )

    async def invalidate(self, session_id: str, user_id: str) -> None:
        """Drop a stale record so the pair can be linked again."""
        await self._store.delete(record_key(session_id, user_id))

    async def claim(self, session_id: str, user_id: str, ttl_seconds: int) -> bool:
        """Take the in-flight lease. Returns False if another client holds it."""
        return await self._store.set_if_absent(
            claim_key(session_id, user_id), utc_now().isoformat(), ttl_seconds=ttl_seconds
        )

    async def is_claimed(self, session_id: str, user_id: str) -> bool:
        return await self._store.get(claim_key(session_id, user_id)) is not None

    async def release(self, session_id: str, user_id: str) -> None:
        await self._store.delete(claim_key(session_id, user_id))

    async def clear_all(self) -> int:
        """Remove every record and lease (sign-out teardown)."""
        keys = await self._store.keys(LINK_RECORD_PREFIX) + await self._store.keys(LINK_CLAIM_PREFIX)
        if not keys:
            return 0
        removed = await self._store.delete(*keys)
        logger.info(f"Cleared {removed} link record(s)")
        return removed
