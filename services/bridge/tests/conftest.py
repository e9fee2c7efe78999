# services/bridge/tests/conftest.py
# Root level fixtures shared by all tests

import os
import sys
from pathlib import Path

import pytest

os.environ["TESTING"] = "true"


# Set up Python path for testing
def setup_python_path():
    """Set up Python path to allow imports from the service, shared libs and test helpers."""
    bridge_root = Path(__file__).parent.parent.absolute()
    bridge_src = bridge_root / "src"
    project_root = bridge_root.parent.parent.absolute()
    tests_dir = bridge_root / "tests"

    paths_to_add = [str(bridge_src), str(project_root), str(tests_dir)]
    for path in paths_to_add:
        if path not in sys.path:
            sys.path.insert(0, path)


setup_python_path()

# Import after path setup
from bridge.config import BridgeConfig
from bridge.models import DeliveryMode
from fake_commerce import FakeCommerceBackend
from fake_provider import FakeProvider, FakeProviderFactory

# ============== Common Fixtures ==============


@pytest.fixture
def test_settings():
    """Settings with instant retries and fake credentials."""
    return BridgeConfig(
        commerce_base_url="https://commerce.test/occ/v2",
        commerce_base_site="electronics",
        commerce_client_id="bridge-client",
        commerce_client_secret="bridge-secret",
        retry_max_attempts=3,
        retry_initial_delay=0.0,
        retry_max_delay=0.0,
        anthropic_api_key="test-key",
        turn_timeout_seconds=5.0,
        health_check_interval=3600.0,
    )


@pytest.fixture
def fake_backend():
    """In-memory commerce backend behind an httpx.MockTransport."""
    return FakeCommerceBackend()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fake_provider_factory(fake_provider):
    return FakeProviderFactory(fake_provider)


@pytest.fixture
def sample_delivery_modes():
    return [
        DeliveryMode(code="standard-gross", name="Standard Delivery"),
        DeliveryMode(code="premium-gross", name="Premium Delivery"),
    ]


@pytest.fixture
def sample_chat_request():
    """Sample chat request payload."""
    return {"message": "Do you have any cameras?", "user_id": "customer-1"}
