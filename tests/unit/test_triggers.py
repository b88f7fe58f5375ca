"""
Unit tests for session_linker/triggers.py

Tests the migration trigger points end to end over in-memory tabs:
- Guest -> signup -> link once -> profile mount short-circuits
- OAuth callback routing
- Restored sessions and SIGNED_IN events
- Explicit migration completion
- Sign-out teardown across tabs
"""

from unittest.mock import AsyncMock, patch

import pytest

from session_linker.errors import LinkTransientError
from session_linker.models import LinkState
from session_linker.notifications import NotificationLevel
from session_linker.triggers import LOGIN_ROUTE, PROFILE_ROUTE, SIGNUP_REDIRECT_DELAY_SECONDS


async def start_guest_flow(guest_sessions) -> str:
    """Simulate a visitor generating a profile before signing up."""
    session_id = await guest_sessions.get_or_create_session_id()
    await guest_sessions.update_profile(
        {"linkedin_content": "Staff engineer"},
        {"overall_blurb": "Builds data platforms"},
    )
    await guest_sessions.update_contact({"name": "Grace"})
    await guest_sessions.select_message("Hello Grace", "friendly")
    return session_id


class TestSignupFlow:
    """Tests for the signup trigger."""

    @pytest.mark.asyncio
    async def test_guest_signup_links_once_and_mount_short_circuits(self, tab, link_function):
        """The full guest journey should produce exactly one merge request."""
        t = tab()
        triggers = t["triggers"]
        await triggers.start()
        session_id = await start_guest_flow(t["guest_sessions"])

        result = await triggers.sign_up("grace@example.com", "pw-123456")
        await triggers.wait_idle()

        assert result.linked is True
        assert result.redirect_to == PROFILE_ROUTE
        assert result.redirect_delay_seconds == SIGNUP_REDIRECT_DELAY_SECONDS
        assert link_function.link_calls == [(result.identity.user_id, session_id)]

        assert await triggers.on_profile_mount() is True
        assert await triggers.before_profile_navigation() is True
        assert len(link_function.link_calls) == 1

    @pytest.mark.asyncio
    async def test_signup_shows_linking_toast_for_guests(self, tab):
        t = tab()
        await start_guest_flow(t["guest_sessions"])

        await t["triggers"].sign_up("grace@example.com", "pw-123456")

        descriptions = [n.description for n in t["toasts"].drain()]
        assert "Linking your profile data..." in descriptions

    @pytest.mark.asyncio
    async def test_signup_without_guest_session_does_not_link(self, tab, link_function):
        t = tab()

        result = await t["triggers"].sign_up("grace@example.com", "pw-123456")
        await t["triggers"].wait_idle()

        assert result.identity is not None
        assert result.linked is False
        assert result.redirect_delay_seconds == 0.0
        assert link_function.link_calls == []

    @pytest.mark.asyncio
    async def test_duplicate_signup_reports_error(self, tab, provider):
        provider.register("grace@example.com")
        t = tab()

        result = await t["triggers"].sign_up("grace@example.com", "pw-123456")

        assert result.identity is None
        assert result.error == "User already registered"
        assert t["toasts"].drain()[0].level == NotificationLevel.ERROR

    @pytest.mark.asyncio
    async def test_signup_pending_verification(self, tab, provider, link_function):
        provider.require_verification = True
        t = tab()
        await start_guest_flow(t["guest_sessions"])

        result = await t["triggers"].sign_up("grace@example.com", "pw-123456")

        assert result.verification_pending is True
        assert result.linked is False
        assert link_function.link_calls == []

    @pytest.mark.asyncio
    async def test_link_failure_does_not_block_signup(self, tab, link_function):
        """Signup should still redirect when linking gives up."""
        link_function.always_fail = LinkTransientError("HTTP 503", 503)
        t = tab()
        session_id = await start_guest_flow(t["guest_sessions"])

        result = await t["triggers"].sign_up("grace@example.com", "pw-123456")
        await t["triggers"].wait_idle()

        assert result.linked is False
        assert result.redirect_to == PROFILE_ROUTE
        record = await t["records"].get(session_id, result.identity.user_id)
        assert record.state == LinkState.FAILED
        # Guest data is kept for the next trigger
        assert await t["guest_sessions"].get_session_id() == session_id


class TestAuthTriggers:
    """Tests for sign-in, OAuth and restored sessions."""

    @pytest.mark.asyncio
    async def test_sign_in_links_via_auth_event(self, tab, provider, link_function):
        user_id = provider.register("grace@example.com", "pw-123456")
        t = tab()
        await t["triggers"].start()
        session_id = await start_guest_flow(t["guest_sessions"])

        identity = await t["triggers"].sign_in("grace@example.com", "pw-123456")
        await t["triggers"].wait_idle()

        assert identity.user_id == user_id
        assert link_function.link_calls == [(user_id, session_id)]
        record = await t["records"].get(session_id, user_id)
        assert record.origin.value == "auth_event"

    @pytest.mark.asyncio
    async def test_sign_in_failure_returns_none(self, tab):
        t = tab()

        assert await t["triggers"].sign_in("nobody@example.com", "wrong") is None
        assert t["toasts"].drain()[0].title == "Error signing in"

    @pytest.mark.asyncio
    async def test_sign_in_provider_crash_returns_none(self, tab, provider):
        """Errors other than auth rejections should not reach the caller."""
        t = tab()

        with patch.object(provider, "sign_in", AsyncMock(side_effect=ConnectionError("auth service unreachable"))):
            assert await t["triggers"].sign_in("grace@example.com", "pw-123456") is None

        toasts = t["toasts"].drain()
        assert toasts[0].level == NotificationLevel.ERROR
        assert toasts[0].title == "Error signing in"

    @pytest.mark.asyncio
    async def test_start_oauth_provider_crash_returns_none(self, tab, provider):
        t = tab()

        with patch.object(provider, "sign_in_with_oauth", AsyncMock(side_effect=ConnectionError("auth service unreachable"))):
            assert await t["triggers"].start_oauth("google") is None

        assert t["toasts"].drain()[0].title == "Error signing in with google"

    @pytest.mark.asyncio
    async def test_oauth_callback_links_and_routes_to_profile(self, tab, provider, link_function):
        provider.oauth_codes["code-123"] = "grace@example.com"
        t = tab()
        session_id = await start_guest_flow(t["guest_sessions"])

        url = await t["triggers"].start_oauth("google")
        route = await t["triggers"].on_oauth_callback("code-123")
        await t["triggers"].wait_idle()

        assert "redirect_to=/auth/callback" in url
        assert route == PROFILE_ROUTE
        assert len(link_function.link_calls) == 1
        assert link_function.link_calls[0][1] == session_id

    @pytest.mark.asyncio
    async def test_oauth_callback_failure_routes_to_login(self, tab, link_function):
        t = tab()

        route = await t["triggers"].on_oauth_callback("bad-code")

        assert route == LOGIN_ROUTE
        assert link_function.link_calls == []

    @pytest.mark.asyncio
    async def test_restored_session_links_on_start(self, tab, provider, link_function):
        provider.current = provider.issue("grace@example.com")
        t = tab()
        session_id = await start_guest_flow(t["guest_sessions"])

        identity = await t["triggers"].start()

        assert identity is not None
        assert link_function.link_calls == [(identity.user_id, session_id)]

    @pytest.mark.asyncio
    async def test_profile_triggers_without_identity_do_nothing(self, tab, link_function):
        t = tab()
        await start_guest_flow(t["guest_sessions"])

        assert await t["triggers"].on_profile_mount() is False
        assert await t["triggers"].on_profile_saved() is False
        assert link_function.link_calls == []


class TestCompleteMigration:
    """Tests for explicit guest data cleanup."""

    @pytest.mark.asyncio
    async def test_clears_guest_data_after_confirmed_link(self, tab):
        t = tab()
        await start_guest_flow(t["guest_sessions"])
        await t["triggers"].sign_up("grace@example.com", "pw-123456")
        await t["triggers"].wait_idle()

        assert await t["triggers"].complete_migration() is True
        assert await t["guest_sessions"].has_active_session() is False

    @pytest.mark.asyncio
    async def test_keeps_guest_data_when_not_linked(self, tab, link_function):
        link_function.always_fail = LinkTransientError("down")
        t = tab()
        await start_guest_flow(t["guest_sessions"])
        await t["triggers"].sign_up("grace@example.com", "pw-123456")
        await t["triggers"].wait_idle()

        assert await t["triggers"].complete_migration() is False
        assert await t["guest_sessions"].has_active_session() is True


class TestSignOut:
    """Tests for sign-out teardown."""

    @pytest.mark.asyncio
    async def test_sign_out_tears_down_every_tab(self, tab, store, link_function):
        """Signing out in one tab should clear identity and local data everywhere."""
        tab_a, tab_b = tab(), tab()
        await start_guest_flow(tab_a["guest_sessions"])
        await tab_a["triggers"].sign_up("grace@example.com", "pw-123456")
        await tab_a["triggers"].wait_idle()
        await tab_b["triggers"].start()
        assert tab_b["observer"].is_authenticated is True
        assert len(link_function.link_calls) == 1

        await tab_a["triggers"].sign_out()

        assert tab_a["observer"].is_authenticated is False
        assert tab_b["observer"].is_authenticated is False
        assert await tab_b["guest_sessions"].get_session_id() is None
        assert await store.keys("linked-profile-") == []

    @pytest.mark.asyncio
    async def test_sign_out_survives_provider_failure(self, tab):
        t = tab()
        await start_guest_flow(t["guest_sessions"])
        await t["triggers"].sign_up("grace@example.com", "pw-123456")
        t["observer"]._provider.fail_sign_out = True

        await t["triggers"].sign_out()

        assert t["observer"].is_authenticated is False
        assert await t["guest_sessions"].has_active_session() is False
