# services/bridge/tests/integration/conftest.py
# Integration test fixtures - full app with lifespan, fake backend and scripted provider

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def integration_test_client(test_settings, fake_backend, fake_provider, fake_provider_factory):
    """
    TestClient running the real lifespan: reference data is loaded and the
    health monitor started before the first request.
    """
    from bridge.app import build_components, create_app

    components = build_components(
        test_settings,
        transport=fake_backend.transport,
        provider_factory=fake_provider_factory,
    )
    app = create_app(components)

    with TestClient(app) as client:
        yield client, fake_provider, fake_backend, components
