"""
Fixtures for merge service tests.

Provides an in-memory profile repository, the merge service over it, and a
FastAPI TestClient with the shared secret configured.
"""

import os
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from session_linker.config import LinkerSettings, get_settings
from session_linker.server.app import create_app
from session_linker.server.merge import ProfileMergeService
from tests.helpers.fakes import InMemoryProfileRepository

os.environ["ENVIRONMENT"] = "development"

SERVICE_SECRET = "merge-service-secret-0042"
FIXED_NOW = datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep real MongoDB URIs and secrets out of the tests."""
    monkeypatch.setenv("ENVIRONMENT", "development")
    for var in ("MONGODB_URI", "LINK_SERVICE_SECRET", "REDIS_URL"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def repository():
    return InMemoryProfileRepository()


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def merge_service(repository, fixed_now):
    return ProfileMergeService(repository, clock=lambda: fixed_now)


@pytest.fixture
def settings():
    return LinkerSettings(link_service_secret=SERVICE_SECRET)


@pytest.fixture
def client(merge_service, settings):
    app = create_app(merge_service=merge_service, settings=settings)
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {SERVICE_SECRET}"}
