# services/bridge/tests/unit/conftest.py

# Unit test specific fixtures - real components wired to fakes

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from libs.commerce_shared.cache import BoundedTTLCache
from libs.commerce_shared.guardrails import Guardrails
from libs.commerce_shared.health import HealthMonitor


@pytest.fixture
def commerce_client(test_settings, fake_backend):
    from bridge.commerce_client import CommerceClient

    return CommerceClient.from_config(test_settings, transport=fake_backend.transport)


@pytest.fixture
def health_monitor():
    return HealthMonitor(check_interval=3600.0)


@pytest.fixture
def cache():
    return BoundedTTLCache(ttl_seconds=300, max_size=100)


@pytest.fixture
def gateway(commerce_client, cache, health_monitor, test_settings):
    from bridge.gateway import ToolGateway

    return ToolGateway(
        commerce_client,
        cache,
        health_monitor,
        test_settings.retry_policy(),
        sleep=AsyncMock(),
    )


@pytest.fixture
def sessions():
    from bridge.session import SessionStore

    return SessionStore(max_messages=50, max_conversations=100)


@pytest.fixture
def orchestrator(sessions, gateway, fake_provider_factory, test_settings):
    from bridge.orchestrator import ChatOrchestrator

    return ChatOrchestrator(
        sessions,
        gateway,
        fake_provider_factory,
        guardrails=Guardrails(test_settings.guardrail_config()),
        settings=test_settings,
    )


@pytest.fixture
def components(test_settings, fake_backend, fake_provider_factory):
    from bridge.app import build_components

    return build_components(
        test_settings,
        transport=fake_backend.transport,
        provider_factory=fake_provider_factory,
    )


@pytest.fixture
def unit_test_client(components):
    """TestClient over a fully wired app; the lifespan is not run."""
    from bridge.app import create_app

    return TestClient(create_app(components))
