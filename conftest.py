"""
Root-level shared test fixtures.

Inherited by the core suite in tests/ and the API suite in
native_secrets/api/tests/.
"""

from __future__ import annotations

import uuid

import pytest

from native_secrets.config import reset_config
from native_secrets.events import bus
from native_secrets.events.notifier import ChangeNotifier
from native_secrets.metadata.engine import MetadataEngine
from native_secrets.store.memory import InMemoryStore


@pytest.fixture
def test_namespace():
    """Unique namespace name for test isolation."""
    return f"test-{uuid.uuid4().hex[:8]}"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove env vars that leak between tests and drop cached singletons."""
    for key in [
        "KUBERNETES_SERVICE_HOST",
        "SECRETS_NAMESPACE",
        "PORT",
        "REDIS_URL",
        "NATIVE_SECRETS_SECRETS_NAMESPACE",
        "NATIVE_SECRETS_NAMESPACE_ANNOTATION",
        "NATIVE_SECRETS_REQUEST_TIMEOUT",
        "NATIVE_SECRETS_WATCH_ENABLED",
        "NATIVE_SECRETS_WATCH_TIMEOUT",
        "NATIVE_SECRETS_WATCH_RETRY_DELAY",
        "NATIVE_SECRETS_EVENT_BUS_ENABLED",
        "NATIVE_SECRETS_HOST",
        "NATIVE_SECRETS_PORT",
        "NATIVE_SECRETS_STORE",
        "NATIVE_SECRETS_MAX_RETRIES",
        "NATIVE_SECRETS_IDENTITY_HEADER",
        "NATIVE_SECRETS_CORS_ORIGIN",
        "NATIVE_SECRETS_LOG_LEVEL",
    ]:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    bus.reset_client()
    yield
    reset_config()
    bus.reset_client()


@pytest.fixture
def store():
    return InMemoryStore(namespaces=["team-a", "team-b"])


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def engine(store, notifier):
    return MetadataEngine(store, notifier, max_retries=5)
