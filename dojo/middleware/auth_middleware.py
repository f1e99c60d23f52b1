"""
Authentication Middleware

Validates Bearer JWTs and attaches the authenticated user to request.state.user
for every non-public path.
"""

import json
import logging
from typing import Callable
from fastapi import Request, HTTPException

from dojo.constants import Role
from dojo.services.auth_service import create_auth_service
from dojo.utils.structured_logger import set_user_id

logger = logging.getLogger(__name__)


# ==================== Public Paths ====================

PUBLIC_PATHS = {
    "/",
    "/health",
    "/health/ready",
    "/health/live",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/password/forgot",
    "/api/v1/auth/password/reset",
    "/api/v1/auth/unlock/resend",
    "/api/v1/auth/unlock/verify",
}

PUBLIC_PREFIXES = [
    "/api/v1/auth/password/reset/",  # token validation link
]

# Readable without a token (login screen branding and language); writes still need auth
PUBLIC_READ_PATHS = {
    "/api/v1/settings",
    "/api/v1/users/system-language",
}

PUBLIC_READ_PREFIXES = [
    "/api/v1/settings/",
]


def is_public_path(path: str, method: str = "GET") -> bool:
    """Check if path is public (no auth required)"""
    if path in PUBLIC_PATHS:
        return True

    for prefix in PUBLIC_PREFIXES:
        if path.startswith(prefix):
            return True

    if method.upper() in ("GET", "HEAD"):
        if path in PUBLIC_READ_PATHS:
            return True
        return any(path.startswith(prefix) for prefix in PUBLIC_READ_PREFIXES)

    return False


# ==================== User Context ====================

class UserContext:
    """Container for authenticated user information"""

    def __init__(
        self,
        user_id: int,
        username: str,
        email: str,
        name: str,
        role: str
    ):
        self.user_id = user_id
        self.username = username
        self.email = email
        self.name = name
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT.value

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role,
        }


# ==================== Auth Middleware ====================

class AuthMiddleware:
    """
    Pure ASGI middleware that validates JWT tokens and attaches user context.

    For authenticated requests:
    - Validates the JWT from the Authorization header
    - Loads the user and rejects deactivated accounts
    - Attaches UserContext to request.state.user

    For public paths request.state.user is None.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if "state" not in scope:
            scope["state"] = {}

        method = scope.get("method", "")
        path = scope.get("path", "")

        # CORS preflight
        if method == "OPTIONS" or is_public_path(path, method):
            scope["state"]["user"] = None
            await self.app(scope, receive, send)
            return

        headers_dict = {}
        for key, value in scope.get("headers", []):
            headers_dict[key.decode("latin-1").lower()] = value.decode("latin-1")

        auth_header = headers_dict.get("authorization")

        if not auth_header:
            await self._send_json(send, 401, {"detail": "Authorization header required"})
            return

        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            await self._send_json(send, 401, {"detail": "Invalid authorization header format"})
            return

        token = parts[1]

        try:
            auth_service = create_auth_service()

            valid, payload = auth_service.verify_jwt(token)
            if not valid:
                await self._send_json(send, 401, {"detail": payload.get("error", "Invalid token")})
                return

            try:
                user_id = int(payload["sub"])
            except (KeyError, TypeError, ValueError):
                await self._send_json(send, 401, {"detail": "Invalid token payload"})
                return

            user = await auth_service.get_active_user(user_id)
            if not user:
                await self._send_json(send, 401, {"detail": "User not found or deactivated"})
                return

            set_user_id(user["id"])

            scope["state"]["user"] = UserContext(
                user_id=user["id"],
                username=user.get("username"),
                email=user.get("email"),
                name=user.get("nombre_completo"),
                role=user.get("rol"),
            )

        except Exception as e:
            logger.error(f"Auth middleware error: {e}")
            await self._send_json(send, 500, {"detail": "Authentication error"})
            return

        await self.app(scope, receive, send)

    async def _send_json(self, send, status_code: int, content: dict):
        body = json.dumps(content).encode()
        await send({
            "type": "http.response.start",
            "status": status_code,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ],
        })
        await send({"type": "http.response.body", "body": body})


# ==================== Dependency Functions ====================

def get_current_user(request: Request) -> UserContext:
    """
    FastAPI dependency to get the current authenticated user.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: UserContext = Depends(get_current_user)):
            ...
    """
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


def require_admin(request: Request) -> UserContext:
    """FastAPI dependency that requires the admin role."""
    user = get_current_user(request)
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_roles(*roles: str) -> Callable[[Request], UserContext]:
    """
    Build a dependency that accepts any of the given roles.

    Usage:
        @router.patch("/{payment_id}/status")
        async def review(user: UserContext = Depends(require_roles("admin", "recepcionista"))):
            ...
    """
    allowed = {getattr(role, "value", role) for role in roles}

    def dependency(request: Request) -> UserContext:
        user = get_current_user(request)
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient role for this action")
        return user

    return dependency
