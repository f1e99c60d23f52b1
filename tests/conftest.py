"""
Test Configuration and Fixtures

Central configuration for pytest including:
- Mock dojo configuration
- Supabase client mocks
- Test client setup with rate limiting disabled

Usage:
    All fixtures defined here are automatically available to all tests.
"""

import pytest
from unittest.mock import MagicMock, patch
import os
import sys

# Ensure the project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ==================== Configuration Fixtures ====================

@pytest.fixture
def mock_config():
    """Create a mock DojoConfig for testing.

    Returns:
        MagicMock: A mock configuration object with the dojo settings.
    """
    config = MagicMock()
    config.name = "Dojo de Prueba"
    config.timezone = "America/Caracas"
    config.supabase_url = "https://test.supabase.co"
    config.supabase_service_key = "test-service-key"
    config.jwt_secret = "test-jwt-secret-key-with-enough-length"
    config.jwt_expiry_hours = 24
    config.password_reset_ttl_minutes = 15
    config.frontend_url = "http://localhost:8080"
    config.lockout_max_attempts = 3
    config.unlock_code_ttl_minutes = 30
    config.from_email = "dojo@example.com"
    config.from_name = "Dojo de Prueba"
    config.smtp_host = "smtp.example.com"
    config.smtp_port = 465
    config.smtp_username = "dojo@example.com"
    config.smtp_password = "secret"
    config.sendgrid_api_key = None
    config.enrollment_fee = 15.0
    config.default_monthly_fee = 50.0
    config.advance_payment_markers = ["Pago adelantado", "Advanced payment"]
    config.belt_base_months = {"Blanco": 4, "Amarillo": 5, "Verde": 7, "Negro": 20}
    config.category_multipliers = {"Infantil": 1.0, "Junior": 1.1, "Senior": 1.2, "Veterano": 1.3}
    config.default_belt_months = 6
    config.default_belt = "Blanco"
    config.default_category = "Senior"
    config.min_preparation_months = 3
    config.max_preparation_months = 24
    return config


@pytest.fixture
def mock_env_vars():
    """Set up common environment variables for testing."""
    env_vars = {
        'SUPABASE_URL': 'https://test.supabase.co',
        'SUPABASE_SERVICE_KEY': 'test-service-key',
        'JWT_SECRET': 'test-jwt-secret-key-with-enough-length',
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


# ==================== Database Fixtures ====================

def create_chainable_mock():
    """Create a mock that supports method chaining for Supabase queries.

    Returns:
        MagicMock: A chainable mock for Supabase queries.
    """
    mock = MagicMock()
    mock.select.return_value = mock
    mock.insert.return_value = mock
    mock.update.return_value = mock
    mock.delete.return_value = mock
    mock.upsert.return_value = mock
    mock.eq.return_value = mock
    mock.neq.return_value = mock
    mock.gt.return_value = mock
    mock.gte.return_value = mock
    mock.lt.return_value = mock
    mock.lte.return_value = mock
    mock.is_.return_value = mock
    mock.in_.return_value = mock
    mock.order.return_value = mock
    mock.limit.return_value = mock
    mock.range.return_value = mock
    return mock


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client whose tables share one chainable query mock."""
    client = MagicMock()
    client.table.return_value = create_chainable_mock()
    return client


@pytest.fixture
def mock_supabase_tool(mock_config, mock_supabase_client):
    """Create a SupabaseTool backed by the mocked client."""
    with patch('dojo.tools.supabase_tool.get_cached_supabase_client') as mock_get_client:
        mock_get_client.return_value = mock_supabase_client

        from dojo.tools.supabase_tool import SupabaseTool
        tool = SupabaseTool(mock_config)
        yield tool


@pytest.fixture
def memory_db():
    """In-memory data layer for multi-step service flows."""
    from tests.fixtures.dojo_fixtures import InMemoryDojoDb
    return InMemoryDojoDb()


@pytest.fixture
def mock_email_sender():
    """EmailSender mock that reports every email as delivered."""
    sender = MagicMock()
    sender.send_email.return_value = True
    sender.send_unlock_code_email.return_value = True
    sender.send_password_reset_email.return_value = True
    return sender


# ==================== App Fixtures ====================

@pytest.fixture(autouse=True)
def disable_rate_limiting():
    """Run route tests without slowapi limits."""
    from dojo.api.auth_routes import limiter
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture
def test_client():
    """Create a TestClient; dependency overrides are cleared afterwards."""
    from fastapi.testclient import TestClient
    from main import app

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def app():
    from main import app
    yield app
    app.dependency_overrides.clear()
