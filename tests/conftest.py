"""
Shared fixtures: a TestClient wired to the in-memory fakes through
``app.dependency_overrides``.

The client is created without entering its context manager so the lifespan
(which connects to Mongo) never runs.
"""

import pytest
from fastapi.testclient import TestClient

from llmdispatch.auth.models import AuthUser
from llmdispatch.core.config import get_settings
from llmdispatch.core.dependencies import (
    authenticate_request,
    get_job_store,
    get_llm_clients,
    get_notifier,
    get_provider_registry,
    get_rate_limiter,
)
from llmdispatch.main import app
from llmdispatch.webhooks.views import get_webhook_log

from tests.fakes import (
    ANTHROPIC,
    GEMINI,
    OPENAI,
    USER,
    FakeClients,
    FakeJobStore,
    FakeNotifier,
    FakeProviderCall,
    FakeRateLimiter,
    FakeRegistry,
    FakeWebhookLog,
)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def store():
    return FakeJobStore()


@pytest.fixture
def rate_limiter():
    return FakeRateLimiter()


@pytest.fixture
def registry():
    return FakeRegistry(OPENAI, ANTHROPIC, GEMINI)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def webhook_log():
    return FakeWebhookLog()


@pytest.fixture
def llm_clients():
    return FakeClients()


@pytest.fixture
def provider_call(monkeypatch):
    fake = FakeProviderCall()
    monkeypatch.setattr("llmdispatch.query.service.call_provider", fake)
    monkeypatch.setattr("llmdispatch.worker.engine.call_provider", fake)
    return fake


@pytest.fixture
def enqueued(monkeypatch):
    runs = []
    monkeypatch.setattr("llmdispatch.query.service.enqueue_worker_run", lambda: runs.append(True))
    return runs


@pytest.fixture
def client(store, rate_limiter, registry, notifier, webhook_log, llm_clients, provider_call, enqueued):
    app.dependency_overrides.update(
        {
            authenticate_request: lambda: USER,
            get_job_store: lambda: store,
            get_rate_limiter: lambda: rate_limiter,
            get_provider_registry: lambda: registry,
            get_notifier: lambda: notifier,
            get_llm_clients: lambda: llm_clients,
            get_webhook_log: lambda: webhook_log,
        }
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login():
    """Switch the authenticated caller for the rest of the test."""

    def _login(user: AuthUser):
        app.dependency_overrides[authenticate_request] = lambda: user

    return _login
