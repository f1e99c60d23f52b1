"""
Test Utilities

Helper functions shared by the test modules:
- Supabase query result helpers
- User rows
- Authenticated requests through the auth middleware

Usage:
    from tests.utils import AUTH_HEADERS, authenticated_as, make_user
"""

from contextlib import contextmanager
from unittest.mock import MagicMock, AsyncMock, patch


AUTH_HEADERS = {"Authorization": "Bearer test-token"}


def set_execute_data(query_mock, data, count=None):
    """Make query_mock.execute() return a result carrying `data`"""
    result = MagicMock()
    result.data = data
    result.count = count if count is not None else len(data or [])
    query_mock.execute.return_value = result
    return result


def make_user(user_id=1, rol="admin", **overrides):
    """Build a usuarios row as returned by SupabaseTool"""
    user = {
        "id": user_id,
        "username": f"user{user_id}",
        "email": f"user{user_id}@dojo.test",
        "nombre_completo": f"User {user_id}",
        "rol": rol,
        "estado": True,
        "idioma_preferido": "es",
    }
    user.update(overrides)
    return user


@contextmanager
def authenticated_as(rol="admin", user_id=1):
    """
    Let requests carrying AUTH_HEADERS through the auth middleware as a user
    with the given role.

    Usage:
        with authenticated_as("recepcionista", user_id=7):
            response = test_client.get(url, headers=AUTH_HEADERS)
    """
    service = MagicMock()
    service.verify_jwt.return_value = (True, {"sub": str(user_id)})
    service.get_active_user = AsyncMock(return_value=make_user(user_id, rol))

    with patch('dojo.middleware.auth_middleware.create_auth_service', return_value=service):
        yield service
