"""
Migration Trigger Points

Every place in the application flow that should attempt to link guest data:
signup, OAuth callback, auth state events, restored sessions, navigation to
and mounting of the profile view, and saving a profile. Each one funnels
into LinkingReconciler.reconcile(); redundancy between them is intentional
and the reconciler makes it harmless.

Trigger methods never raise into the UI flow. Failures become False, a
fallback route, or a toast.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Set

from .auth.observer import AuthStateObserver
from .errors import AuthError
from .guest_session import GuestSessionStore
from .linking.reconciler import LinkingReconciler
from .linking.records import LinkAttemptStore
from .models import AuthChange, AuthEvent, AuthIdentity, TriggerOrigin
from .notifications import LoggingNotifier, NotificationLevel, Notifier

logger = logging.getLogger(__name__)

PROFILE_ROUTE = "/profile"
LOGIN_ROUTE = "/auth/login"
OAUTH_CALLBACK_ROUTE = "/auth/callback"

# Time the signup page keeps the "Linking your profile data..." toast up
SIGNUP_REDIRECT_DELAY_SECONDS = 2.0


@dataclass
class SignupResult:
    """Outcome of a signup, as the signup page needs it."""
    identity: Optional[AuthIdentity]
    linked: bool = False
    redirect_to: Optional[str] = None
    redirect_delay_seconds: float = 0.0
    verification_pending: bool = False
    error: Optional[str] = None


class LinkingTriggers:
    """
    Wires the auth observer and guest session store to the reconciler.

    Args:
        guest_sessions: Guest session store
        observer: Auth state observer
        reconciler: Linking reconciler
        records: Link attempt records (teardown and migration checks)
        notifier: Toast sink
    """

    def __init__(
        self,
        guest_sessions: GuestSessionStore,
        observer: AuthStateObserver,
        reconciler: LinkingReconciler,
        records: LinkAttemptStore,
        notifier: Optional[Notifier] = None,
    ):
        self._guest_sessions = guest_sessions
        self._observer = observer
        self._reconciler = reconciler
        self._records = records
        self._notifier = notifier if notifier is not None else LoggingNotifier()
        self._background: Set[asyncio.Task] = set()
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Optional[AuthIdentity]:
        """
        Load the current auth session and start reacting to auth changes.

        A restored session is linked right away.
        """
        if not self._started:
            self._observer.subscribe(self._on_auth_change)
            self._started = True

        identity = await self._observer.initialize()
        if identity is not None:
            await self._link(TriggerOrigin.SESSION_RESTORE, identity.user_id)
        return identity

    async def close(self) -> None:
        if self._started:
            self._observer.unsubscribe(self._on_auth_change)
            self._started = False
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait for links started from auth events to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, origin: TriggerOrigin, user_id: str) -> None:
        task = asyncio.create_task(self._link(origin, user_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _on_auth_change(self, change: AuthChange) -> None:
        if change.event == AuthEvent.SIGNED_IN and change.identity is not None:
            # Off the auth callback path so sign-in returns immediately
            self._spawn(TriggerOrigin.AUTH_EVENT, change.identity.user_id)
        elif change.event == AuthEvent.SIGNED_OUT and change.remote:
            logger.info("Signed out in another tab")

    async def _link(self, origin: TriggerOrigin, user_id: Optional[str] = None) -> bool:
        try:
            user_id = user_id or self._observer.user_id
            if not user_id:
                return False
            session_id = await self._guest_sessions.get_session_id()
            if not session_id:
                return False
            return await self._reconciler.reconcile(user_id, session_id, origin)
        except Exception as e:
            logger.error(f"Linking from {origin.value} failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Auth flows
    # ------------------------------------------------------------------

    async def sign_up(self, email: str, password: str, redirect_to: str = PROFILE_ROUTE) -> SignupResult:
        """Create an account and link the guest session to it."""
        try:
            has_guest_session = await self._guest_sessions.has_active_session()
            session = await self._observer.sign_up(email, password)
        except AuthError as e:
            logger.warning(f"Signup failed: {e}")
            self._notifier.notify(NotificationLevel.ERROR, "Error creating account", str(e))
            return SignupResult(identity=None, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected signup error: {e}")
            self._notifier.notify(NotificationLevel.ERROR, "Error creating account", "Please try again.")
            return SignupResult(identity=None, error=str(e))

        if session is None:
            self._notifier.notify(
                NotificationLevel.INFO,
                "Check your email",
                "Confirm your address to finish creating your account.",
            )
            return SignupResult(identity=None, verification_pending=True)

        if has_guest_session:
            self._notifier.notify(NotificationLevel.INFO, "Account created!", "Linking your profile data...")
        else:
            self._notifier.notify(NotificationLevel.SUCCESS, "Account created!")

        linked = await self._link(TriggerOrigin.SIGNUP, session.identity.user_id)
        return SignupResult(
            identity=session.identity,
            linked=linked,
            redirect_to=redirect_to,
            redirect_delay_seconds=SIGNUP_REDIRECT_DELAY_SECONDS if has_guest_session else 0.0,
        )

    async def sign_in(self, email: str, password: str) -> Optional[AuthIdentity]:
        """Sign in; linking follows from the SIGNED_IN event."""
        try:
            session = await self._observer.sign_in(email, password)
        except AuthError as e:
            logger.warning(f"Sign-in failed: {e}")
            self._notifier.notify(NotificationLevel.ERROR, "Error signing in", str(e))
            return None
        except Exception as e:
            logger.error(f"Unexpected sign-in error: {e}")
            self._notifier.notify(NotificationLevel.ERROR, "Error signing in", "Please try again.")
            return None
        return session.identity

    async def start_oauth(self, provider: str, redirect_to: str = OAUTH_CALLBACK_ROUTE) -> Optional[str]:
        """Return the provider URL to send the browser to."""
        try:
            return await self._observer.start_oauth(provider, redirect_to)
        except AuthError as e:
            logger.warning(f"OAuth start with {provider} failed: {e}")
            self._notifier.notify(NotificationLevel.ERROR, f"Error signing in with {provider}", str(e))
            return None
        except Exception as e:
            logger.error(f"Unexpected error starting OAuth with {provider}: {e}")
            self._notifier.notify(NotificationLevel.ERROR, f"Error signing in with {provider}", "Please try again.")
            return None

    async def on_oauth_callback(self, code: str) -> str:
        """
        Finish an OAuth sign-in and link the guest session.

        Returns:
            The route to navigate to next
        """
        try:
            session = await self._observer.complete_oauth(code)
        except Exception as e:
            logger.error(f"Error processing auth callback: {e}")
            self._notifier.notify(NotificationLevel.ERROR, "Authentication failed", str(e))
            return LOGIN_ROUTE

        await self._link(TriggerOrigin.OAUTH_CALLBACK, session.identity.user_id)
        return PROFILE_ROUTE

    async def sign_out(self) -> None:
        """Sign out everywhere and drop guest data and link records."""
        await self._observer.sign_out()
        try:
            await self._guest_sessions.clear()
            await self._records.clear_all()
        except Exception as e:
            logger.error(f"Local teardown after sign-out failed: {e}")
        self._notifier.notify(NotificationLevel.SUCCESS, "Signed out successfully")

    # ------------------------------------------------------------------
    # Profile view
    # ------------------------------------------------------------------

    async def before_profile_navigation(self) -> bool:
        return await self._link(TriggerOrigin.PROFILE_NAVIGATION)

    async def on_profile_mount(self) -> bool:
        return await self._link(TriggerOrigin.PROFILE_MOUNT)

    async def on_profile_saved(self) -> bool:
        return await self._link(TriggerOrigin.SAVE_PROFILE)

    async def complete_migration(self) -> bool:
        """
        Clear guest data once the link is confirmed.

        Does nothing unless the current pair's record is succeeded.
        """
        try:
            user_id = self._observer.user_id
            session_id = await self._guest_sessions.get_session_id()
            if not user_id or not session_id:
                return False
            record = await self._records.get(session_id, user_id)
            if record is None or not record.success:
                logger.info(f"Guest session {session_id[:8]} not linked yet, keeping guest data")
                return False
            await self._guest_sessions.clear()
            return True
        except Exception as e:
            logger.error(f"Completing migration failed: {e}")
            return False
