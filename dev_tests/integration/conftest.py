"""
Shared fixtures for integration tests.

These fixtures handle:
- Dependency overrides for the upload gateway and the acting user
- A TestClient bound to the FastAPI application
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def acting_user():
    """User name the overridden auth dependency reports."""
    return "alice"


@pytest.fixture
def paste_client_factory(make_gateway, acting_user):
    """
    Build a TestClient whose paste endpoint uses a test gateway.

    Gateway keyword arguments are forwarded to ``make_gateway``.
    """
    from core.app_state import app
    from core.security import get_acting_user
    from paste_router import get_upload_gateway

    def _factory(**gateway_kwargs):
        gateway = make_gateway(**gateway_kwargs)
        app.dependency_overrides[get_upload_gateway] = lambda: gateway
        app.dependency_overrides[get_acting_user] = lambda: acting_user
        return TestClient(app)

    yield _factory
    app.dependency_overrides.clear()


@pytest.fixture
def paste_client(paste_client_factory):
    """Test client with the default allow-all ACL."""
    return paste_client_factory()
