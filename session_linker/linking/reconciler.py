"""
Linking Reconciler

Single entry point that migrates guest data to an authenticated user.
Every trigger (signup, OAuth callback, auth event, profile mount, ...) calls
reconcile(); the reconciler decides whether a merge call is needed.

Guarantees:
- concurrent calls for the same pair in one process share a single attempt
- a success record is re-verified against the server before it is trusted
- transient failures are retried under a bounded policy
- no exception escapes to the trigger; the outcome is a boolean
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from ..errors import LinkTransientError
from ..logger import LinkLogger, get_logger
from ..models import ReconcilerState, TriggerOrigin
from .client import LinkFunction
from .records import LinkAttemptStore
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class LinkingReconciler:
    """
    Args:
        records: Link attempt records and cross-tab lease
        link_function: Remote merge function
        retry_policy: Retry policy for merge calls
        verify_linked: Re-check the server before trusting a success record
        claim_ttl_seconds: Lifetime of the cross-tab in-flight lease
    """

    def __init__(
        self,
        records: LinkAttemptStore,
        link_function: LinkFunction,
        retry_policy: Optional[RetryPolicy] = None,
        verify_linked: bool = True,
        claim_ttl_seconds: int = 30,
    ):
        self._records = records
        self._link_function = link_function
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._verify_linked = verify_linked
        self._claim_ttl_seconds = claim_ttl_seconds
        self._in_flight: Dict[Tuple[str, str], asyncio.Task] = {}

    async def reconcile(
        self,
        user_id: Optional[str],
        session_id: Optional[str],
        origin: TriggerOrigin = TriggerOrigin.MANUAL,
    ) -> bool:
        """
        Ensure the guest session is linked to the user.

        Returns:
            True if the pair is linked (now or previously), False otherwise
        """
        if not user_id or not session_id:
            logger.debug(f"Nothing to link from {origin.value}: missing user or session")
            return False

        key = (session_id, user_id)
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._reconcile_once(user_id, session_id, origin))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.debug(f"Joining in-flight link for session {session_id[:8]} from {origin.value}")

        # Shield so one caller's cancellation does not cancel the shared attempt
        return await asyncio.shield(task)

    def _forget(self, key: Tuple[str, str], task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def status(self, session_id: Optional[str], user_id: Optional[str]) -> ReconcilerState:
        """Current state of the pair, as the state machine sees it."""
        if not session_id or not user_id:
            return ReconcilerState.NO_SESSION
        if (session_id, user_id) in self._in_flight:
            return ReconcilerState.LINK_IN_FLIGHT

        record = await self._records.get(session_id, user_id)
        if record is not None and record.success:
            return ReconcilerState.LINKED
        if await self._records.is_claimed(session_id, user_id):
            return ReconcilerState.LINK_IN_FLIGHT
        return ReconcilerState.UNLINKED

    def is_in_flight(self, session_id: str, user_id: str) -> bool:
        return (session_id, user_id) in self._in_flight

    async def _reconcile_once(self, user_id: str, session_id: str, origin: TriggerOrigin) -> bool:
        log = get_logger(__name__, session_id=session_id, user_id=user_id, origin=origin.value)
        try:
            record = await self._records.get(session_id, user_id)
            if record is not None and record.success:
                if not self._verify_linked:
                    log.info("Guest profile already linked, skipping")
                    return True
                if await self._merged_profile_present(user_id, log):
                    log.info("Guest profile already linked and verified, skipping")
                    return True
                log.warning("Link record present but server has no merged profile, relinking")
                await self._records.invalidate(session_id, user_id)

            if not await self._records.claim(session_id, user_id, self._claim_ttl_seconds):
                log.info("Link already in flight in another tab, skipping")
                return False

            try:
                return await self._attempt(user_id, session_id, origin, log)
            finally:
                await self._records.release(session_id, user_id)

        except Exception as e:
            log.exception(f"Unexpected error while linking guest profile: {e}")
            return False

    async def _merged_profile_present(self, user_id: str, log: LinkLogger) -> bool:
        """
        Ask the server whether the merge actually landed.

        When the check itself fails the local record is trusted.
        """
        try:
            if self._retry_policy.attempt_timeout is None:
                return await self._link_function.has_merged_profile(user_id)
            return await asyncio.wait_for(
                self._link_function.has_merged_profile(user_id),
                timeout=self._retry_policy.attempt_timeout,
            )
        except Exception as e:
            log.warning(f"Could not verify merged profile, trusting link record: {e}")
            return True

    async def _attempt(
        self,
        user_id: str,
        session_id: str,
        origin: TriggerOrigin,
        log: LinkLogger,
    ) -> bool:
        attempts = 0

        async def on_attempt(number: int) -> None:
            nonlocal attempts
            attempts = number
            await self._records.mark_in_flight(session_id, user_id, origin, attempts=number)

        log.info("Linking guest profile")
        try:
            response = await self._retry_policy.call(
                self._link_function.link_guest_profile,
                user_id,
                session_id,
                on_attempt=on_attempt,
            )
        except LinkTransientError as e:
            log.warning(f"Linking failed after {attempts} attempt(s): {e}")
            await self._records.mark_failed(session_id, user_id, origin, attempts, str(e))
            return False
        except Exception as e:
            log.exception(f"Link function raised unexpectedly: {e}")
            await self._records.mark_failed(session_id, user_id, origin, attempts, str(e))
            return False

        if response.success:
            await self._records.mark_succeeded(session_id, user_id, origin, attempts)
            log.info(f"Guest profile linked ({response.action or 'ok'}) after {attempts} attempt(s)")
            return True

        log.warning(f"Link rejected: {response.message}")
        await self._records.mark_failed(
            session_id, user_id, origin, attempts, response.message or "rejected"
        )
        return False
