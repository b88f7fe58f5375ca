"""
Auth State Observer

Tracks the current authenticated identity and its transitions. Sources:
- the auth provider (initial session, sign-in/up/out calls, event stream)
- the broadcast channel (another tab signing out)

A cached session is never trusted without checking its expiry, and a
sign-out in any tab clears the identity in every tab so guest linking never
runs against a stale user.
"""

import logging
from typing import Any, Callable, Coroutine, List, Optional

from ..broadcast.base import AUTH_SIGNOUT_KEY, BroadcastChannel, BroadcastMessage
from ..models import AuthChange, AuthEvent, AuthIdentity, AuthSession, utc_now
from .provider import AuthProvider

logger = logging.getLogger(__name__)

AuthCallback = Callable[[AuthChange], Coroutine[Any, Any, None]]


class AuthStateObserver:
    """
    Current identity plus a subscription channel for transitions.

    Args:
        provider: Auth service collaborator
        channel: Cross-tab broadcast channel
        clock: Returns the current UTC datetime (injectable for tests)
    """

    def __init__(
        self,
        provider: AuthProvider,
        channel: BroadcastChannel,
        clock: Callable[[], Any] = utc_now,
    ):
        self._provider = provider
        self._channel = channel
        self._clock = clock
        self._session: Optional[AuthSession] = None
        self._subscribers: List[AuthCallback] = []
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> Optional[AuthIdentity]:
        """
        Load the provider session and start listening to other tabs.

        An expired or unreadable session counts as signed out.
        """
        if not self._initialized:
            self._channel.subscribe(self._on_broadcast)
            self._initialized = True

        try:
            session = await self._provider.get_session()
        except Exception as e:
            logger.warning(f"Authentication check failed, treating as signed out: {e}")
            session = None

        if session is not None and session.is_expired(self._clock()):
            logger.info(f"Stored session for user {session.identity.user_id[:8]} expired at {session.expires_at.isoformat()}")
            session = None

        self._session = session
        return self.identity

    async def close(self) -> None:
        if self._initialized:
            self._channel.unsubscribe(self._on_broadcast)
            self._initialized = False
        self._subscribers.clear()

    # ------------------------------------------------------------------
    # Current identity
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[AuthSession]:
        """Current session, dropped if it has expired since it was cached."""
        if self._session is not None and self._session.is_expired(self._clock()):
            logger.info(f"Session for user {self._session.identity.user_id[:8]} expired")
            self._session = None
        return self._session

    @property
    def identity(self) -> Optional[AuthIdentity]:
        session = self.session
        return session.identity if session else None

    @property
    def user_id(self) -> Optional[str]:
        identity = self.identity
        return identity.user_id if identity else None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: AuthCallback) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: AuthCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def _notify(self, change: AuthChange) -> None:
        for callback in list(self._subscribers):
            try:
                await callback(change)
            except Exception as e:
                logger.error(f"Auth subscriber error on {change.event.value}: {e}")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def handle_auth_event(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        """
        Apply an event from the provider's change stream.

        Any event without a live session is treated as a sign-out.
        """
        if event == AuthEvent.SIGNED_OUT or session is None:
            await self._clear(remote=False)
            return

        if session.is_expired(self._clock()):
            logger.warning(f"Ignoring {event.value} with an expired session")
            await self._clear(remote=False)
            return

        await self._apply(event, session)

    async def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        """Create an account; emits SIGNED_IN when a session is issued."""
        session = await self._provider.sign_up(email, password)
        if session is None:
            logger.info(f"Signup for {email} pending email verification")
            return None
        await self._apply(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        session = await self._provider.sign_in(email, password)
        await self._apply(AuthEvent.SIGNED_IN, session)
        return session

    async def start_oauth(self, provider: str, redirect_to: str) -> str:
        return await self._provider.sign_in_with_oauth(provider, redirect_to)

    async def complete_oauth(self, code: str) -> AuthSession:
        session = await self._provider.exchange_oauth_code(code)
        await self._apply(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        """
        Sign out locally and in every other tab.

        The local identity is cleared even when the provider call fails.
        """
        try:
            await self._provider.sign_out()
        except Exception as e:
            logger.warning(f"Remote sign-out failed, clearing local identity anyway: {e}")
        finally:
            await self._clear(remote=False)
            try:
                await self._channel.publish(AUTH_SIGNOUT_KEY, self._clock().isoformat())
            except Exception as e:
                logger.warning(f"Failed to broadcast sign-out: {e}")

    async def _apply(self, event: AuthEvent, session: AuthSession) -> None:
        previous = self._session.identity if self._session else None
        self._session = session
        await self._notify(AuthChange(event=event, identity=session.identity, previous=previous))

    async def _clear(self, remote: bool) -> None:
        previous = self._session.identity if self._session else None
        self._session = None
        if previous is None and remote:
            return
        await self._notify(
            AuthChange(event=AuthEvent.SIGNED_OUT, identity=None, previous=previous, remote=remote)
        )

    async def _on_broadcast(self, message: BroadcastMessage) -> None:
        if message.key != AUTH_SIGNOUT_KEY:
            return
        logger.info(f"Sign-out observed from tab {message.source}")
        await self._clear(remote=True)
