"""
Unit tests for session_linker/auth/observer.py

Tests the auth state observer:
- Initial session load (valid, expired, provider failure)
- Expiry re-check on every read
- Sign-in/up/out transitions and subscriber notification
- Cross-tab sign-out via the broadcast channel
"""

from datetime import datetime, timedelta, timezone

import pytest

from session_linker.auth.observer import AuthStateObserver
from session_linker.broadcast.base import AUTH_SIGNOUT_KEY
from session_linker.broadcast.memory import InMemoryBroadcastHub
from session_linker.errors import AuthError
from session_linker.models import AuthEvent
from tests.helpers.fakes import FakeAuthProvider


class MutableClock:
    """UTC clock that tests can move forward."""

    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class ChangeRecorder:
    def __init__(self):
        self.changes = []

    async def __call__(self, change) -> None:
        self.changes.append(change)


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def auth_provider(clock):
    return FakeAuthProvider(clock=clock)


@pytest.fixture
def observer(auth_provider, hub, clock):
    return AuthStateObserver(auth_provider, hub.open_channel(), clock=clock)


class TestInitialize:
    """Tests for loading the initial session."""

    @pytest.mark.asyncio
    async def test_no_session_means_signed_out(self, observer):
        """Should report no identity without a provider session."""
        assert await observer.initialize() is None
        assert observer.is_authenticated is False

    @pytest.mark.asyncio
    async def test_valid_session_is_restored(self, observer, auth_provider):
        """Should expose the provider's live session."""
        auth_provider.current = auth_provider.issue("ada@example.com")

        identity = await observer.initialize()

        assert identity.email == "ada@example.com"
        assert observer.user_id == identity.user_id

    @pytest.mark.asyncio
    async def test_expired_session_is_discarded(self, observer, auth_provider, clock):
        """A stored session past its expiry should count as signed out."""
        auth_provider.current = auth_provider.issue("ada@example.com", expires_at=clock.now)

        assert await observer.initialize() is None

    @pytest.mark.asyncio
    async def test_provider_failure_means_signed_out(self, observer, auth_provider):
        """A failing session check should not raise."""
        auth_provider.fail_get_session = True

        assert await observer.initialize() is None


class TestExpiry:
    """Tests for expiry re-checks."""

    @pytest.mark.asyncio
    async def test_identity_drops_once_session_expires(self, observer, auth_provider, clock):
        """Cached sessions should be re-checked on read."""
        await observer.sign_up("ada@example.com", "pw-123456")
        assert observer.is_authenticated is True

        clock.now += timedelta(hours=2)

        assert observer.identity is None
        assert observer.user_id is None

    @pytest.mark.asyncio
    async def test_event_with_expired_session_signs_out(self, observer, auth_provider, clock):
        """An auth event carrying an expired session should clear the identity."""
        recorder = ChangeRecorder()
        observer.subscribe(recorder)
        await observer.sign_up("ada@example.com", "pw-123456")
        stale = auth_provider.issue("ada@example.com", expires_at=clock.now - timedelta(seconds=1))

        await observer.handle_auth_event(AuthEvent.TOKEN_REFRESHED, stale)

        assert observer.identity is None
        assert recorder.changes[-1].event == AuthEvent.SIGNED_OUT


class TestTransitions:
    """Tests for sign-in, sign-up and sign-out."""

    @pytest.mark.asyncio
    async def test_sign_in_notifies_subscribers(self, observer, auth_provider):
        """Subscribers should receive SIGNED_IN with the identity."""
        auth_provider.register("ada@example.com", "pw-123456")
        recorder = ChangeRecorder()
        observer.subscribe(recorder)

        session = await observer.sign_in("ada@example.com", "pw-123456")

        assert len(recorder.changes) == 1
        assert recorder.changes[0].event == AuthEvent.SIGNED_IN
        assert recorder.changes[0].identity == session.identity

    @pytest.mark.asyncio
    async def test_sign_in_rejection_propagates(self, observer):
        """Invalid credentials should raise AuthError and change nothing."""
        with pytest.raises(AuthError):
            await observer.sign_in("ada@example.com", "wrong")

        assert observer.is_authenticated is False

    @pytest.mark.asyncio
    async def test_sign_up_pending_verification_has_no_identity(self, observer, auth_provider):
        """Signup without an issued session should leave the user signed out."""
        auth_provider.require_verification = True

        assert await observer.sign_up("ada@example.com", "pw-123456") is None
        assert observer.is_authenticated is False

    @pytest.mark.asyncio
    async def test_subscriber_error_does_not_break_transition(self, observer, auth_provider):
        """A failing subscriber should not prevent the sign-in."""
        auth_provider.register("ada@example.com", "pw-123456")

        async def broken(change):
            raise RuntimeError("subscriber bug")

        observer.subscribe(broken)

        await observer.sign_in("ada@example.com", "pw-123456")

        assert observer.is_authenticated is True

    @pytest.mark.asyncio
    async def test_sign_out_clears_even_when_provider_fails(self, observer, auth_provider):
        """Local identity should be cleared if the remote sign-out fails."""
        await observer.sign_up("ada@example.com", "pw-123456")
        auth_provider.fail_sign_out = True

        await observer.sign_out()

        assert observer.is_authenticated is False

    @pytest.mark.asyncio
    async def test_oauth_flow(self, observer, auth_provider):
        """Should return the provider URL and complete on callback."""
        auth_provider.oauth_codes["code-1"] = "ada@example.com"

        url = await observer.start_oauth("google", "/auth/callback")
        session = await observer.complete_oauth("code-1")

        assert "provider=google" in url
        assert observer.identity == session.identity
        assert session.identity.provider == "google"


class TestCrossTabSignOut:
    """Tests for sign-out propagation between tabs."""

    @pytest.mark.asyncio
    async def test_sign_out_in_one_tab_clears_the_other(self, clock):
        """An auth-signout broadcast should clear another tab's identity."""
        hub = InMemoryBroadcastHub()
        provider_a, provider_b = FakeAuthProvider(clock=clock), FakeAuthProvider(clock=clock)
        tab_a = AuthStateObserver(provider_a, hub.open_channel(), clock=clock)
        tab_b = AuthStateObserver(provider_b, hub.open_channel(), clock=clock)
        provider_a.current = provider_a.issue("ada@example.com")
        provider_b.current = provider_b.issue("ada@example.com")
        await tab_a.initialize()
        await tab_b.initialize()
        recorder = ChangeRecorder()
        tab_b.subscribe(recorder)

        await tab_a.sign_out()

        assert tab_b.identity is None
        assert recorder.changes[-1].event == AuthEvent.SIGNED_OUT
        assert recorder.changes[-1].remote is True

    @pytest.mark.asyncio
    async def test_remote_sign_out_when_already_signed_out_is_silent(self, clock):
        """No SIGNED_OUT should be emitted if the tab had no identity."""
        hub = InMemoryBroadcastHub()
        publisher = hub.open_channel()
        observer = AuthStateObserver(FakeAuthProvider(clock=clock), hub.open_channel(), clock=clock)
        await observer.initialize()
        recorder = ChangeRecorder()
        observer.subscribe(recorder)

        await publisher.publish(AUTH_SIGNOUT_KEY, clock.now.isoformat())

        assert recorder.changes == []

    @pytest.mark.asyncio
    async def test_close_stops_listening(self, clock):
        """A closed observer should ignore later broadcasts."""
        hub = InMemoryBroadcastHub()
        publisher = hub.open_channel()
        provider = FakeAuthProvider(clock=clock)
        provider.current = provider.issue("ada@example.com")
        observer = AuthStateObserver(provider, hub.open_channel(), clock=clock)
        await observer.initialize()

        await observer.close()
        await publisher.publish(AUTH_SIGNOUT_KEY)

        assert observer.is_authenticated is True
