"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that keep tests hermetic:
- Environment variable isolation (no real Redis, Mongo or secrets)
- Settings cache reset between tests

Plus shared fixtures for an in-memory "tab" wired to a fake auth provider
and a fake merge function.
"""

import os

import pytest

from session_linker.auth.observer import AuthStateObserver
from session_linker.broadcast.memory import InMemoryBroadcastHub
from session_linker.config import get_settings
from session_linker.guest_session import GuestSessionStore
from session_linker.linking.reconciler import LinkingReconciler
from session_linker.linking.records import LinkAttemptStore
from session_linker.linking.retry import RetryPolicy
from session_linker.notifications import ToastQueue
from session_linker.storage.memory import InMemoryStore
from session_linker.triggers import LinkingTriggers
from tests.helpers.fakes import FakeAuthProvider, FakeLinkFunction, RecordingSleep

# Set test environment BEFORE any settings are loaded
os.environ["ENVIRONMENT"] = "development"


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real configuration.

    Prevents a developer's REDIS_URL or MONGODB_URI from leaking into
    tests, and clears the cached settings before and after each test.
    """
    monkeypatch.setenv("ENVIRONMENT", "development")
    for var in ("REDIS_URL", "MONGODB_URI", "LINK_SERVICE_SECRET", "LINK_FUNCTION_URL", "DEBUG_MODE"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def hub():
    return InMemoryBroadcastHub()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def link_function():
    return FakeLinkFunction()


@pytest.fixture
def provider():
    return FakeAuthProvider()


@pytest.fixture
def records(store):
    return LinkAttemptStore(store)


@pytest.fixture
def retry_policy(recording_sleep):
    return RetryPolicy(max_attempts=3, sleep=recording_sleep)


@pytest.fixture
def reconciler(records, link_function, retry_policy):
    return LinkingReconciler(records, link_function, retry_policy=retry_policy)


@pytest.fixture
def tab(store, hub, provider, link_function, recording_sleep):
    """Build one in-memory tab sharing the store and broadcast hub."""

    def _make_tab(auth_provider=None):
        channel = hub.open_channel()
        guest_sessions = GuestSessionStore(store, channel)
        observer = AuthStateObserver(auth_provider or provider, channel)
        records = LinkAttemptStore(store)
        reconciler = LinkingReconciler(
            records,
            link_function,
            retry_policy=RetryPolicy(max_attempts=3, sleep=recording_sleep),
        )
        toasts = ToastQueue()
        triggers = LinkingTriggers(guest_sessions, observer, reconciler, records, notifier=toasts)
        return {
            "channel": channel,
            "guest_sessions": guest_sessions,
            "observer": observer,
            "records": records,
            "reconciler": reconciler,
            "toasts": toasts,
            "triggers": triggers,
        }

    return _make_tab
