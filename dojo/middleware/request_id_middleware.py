"""
Request ID Middleware for request tracing.

This middleware:
1. Generates a unique request ID (UUID4) for each request
2. Respects an incoming X-Request-ID header
3. Sets the request_id in contextvars for logging
4. Adds X-Request-ID to response headers
5. Logs request start and completion with timing

Usage in main.py:
    from dojo.middleware.request_id_middleware import RequestIdMiddleware
    app.add_middleware(RequestIdMiddleware)  # Add LAST so it runs FIRST
"""

import uuid
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from dojo.utils.structured_logger import set_request_id, clear_request_id, set_user_id, get_logger

logger = get_logger(__name__)


def get_client_ip(request: Request) -> str:
    """Client IP, honouring proxy headers"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate request IDs.

    Add this middleware LAST so it runs FIRST (Starlette processes middleware
    in reverse order of registration).
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        set_request_id(request_id)
        request.state.request_id = request_id

        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client_ip": get_client_ip(request),
                "user_agent": request.headers.get("User-Agent", "")[:100],
            }
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "Request completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                }
            )

            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000

            logger.error(
                "Request failed with exception",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration_ms, 2),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            raise

        finally:
            clear_request_id()
            set_user_id(None)
