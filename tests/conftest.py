import pytest
from fastapi.testclient import TestClient

from oidc_token_proxy.main import create_application
from tests.factories import MockBackend, TestDataFactory

@pytest.fixture
def mock_backend():
    """Backend that answers every request with the configured response."""
    return MockBackend()

@pytest.fixture
def app_config():
    """Configuration with both token and introspection routes enabled"""
    return TestDataFactory.create_app_config()

@pytest.fixture
def client(app_config, mock_backend):
    """Create a test client for the proxy application backed by the mock backend"""
    test_app = create_application(config=app_config, transport=mock_backend.transport)

    with TestClient(test_app) as test_client:
        yield test_client
