"""
Dojo Management API - Main API Server

FastAPI application behind the dojo admin frontend:
- Authentication with failed-login lockout and emailed unlock codes
- Password recovery
- Payments (period resolution, advance payments, review, pricing)
- Exam preparation estimates
- Account administration
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file BEFORE other imports
load_dotenv()

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from dojo.utils.structured_logger import setup_structured_logging
from dojo.utils.response_models import error_response

setup_structured_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting Dojo Management API...")
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Dojo Management API",
    description="Students' payments, accounts and belt progression for the dojo",
    version="1.0.0",
    lifespan=lifespan
)

# ==================== Rate Limiting ====================

from dojo.api.auth_routes import limiter

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ==================== Middleware Setup ====================
# NOTE: middleware runs in REVERSE order of addition.
# Last added = first to process requests.

# 1. Auth middleware - validates JWT tokens for protected routes
from dojo.middleware.auth_middleware import AuthMiddleware
app.add_middleware(AuthMiddleware)

# 2. Request ID middleware - request tracing and access logs
from dojo.middleware.request_id_middleware import RequestIdMiddleware
app.add_middleware(RequestIdMiddleware)


# 3. CORS middleware - MUST be added LAST so it runs FIRST
def get_cors_origins() -> list:
    """Get allowed CORS origins from environment or use defaults."""
    env_origins = os.getenv("CORS_ORIGINS", "")
    if env_origins:
        return [origin.strip() for origin in env_origins.split(",") if origin.strip()]

    return [
        "http://localhost:8080",
        "http://localhost:5173",
        "http://127.0.0.1:8080",
        "http://127.0.0.1:5173",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ==================== Health & Info Endpoints ====================

@app.get("/")
async def root():
    """Root endpoint - API info"""
    return {
        "name": "Dojo Management API",
        "version": "1.0.0",
        "status": "running",
        "timestamp": utc_now()
    }


@app.get("/health")
async def health_check():
    """Basic health check endpoint for load balancers"""
    return {"status": "healthy", "timestamp": utc_now()}


@app.get("/health/ready")
async def readiness_check():
    """
    Readiness check - verifies the database is reachable.
    """
    checks = {"database": "unknown"}
    all_healthy = True

    try:
        from config.loader import get_config
        from dojo.tools.supabase_tool import SupabaseTool
        SupabaseTool(get_config()).ping()
        checks["database"] = "healthy"
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        checks["database"] = "unhealthy"
        all_healthy = False

    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={
            "status": "ready" if all_healthy else "not_ready",
            "checks": checks,
            "timestamp": utc_now()
        }
    )


@app.get("/health/live")
async def liveness_check():
    """Liveness check - verifies the application is running."""
    return {"status": "alive", "timestamp": utc_now()}


# ==================== Include All Routers ====================

from dojo.api.routes import include_routers
include_routers(app)


# ==================== Error Handlers ====================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_response("Internal server error")
    )


# ==================== Run Server ====================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 3001))
    host = os.getenv("HOST", "127.0.0.1")
    reload = os.getenv("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload={reload})")

    uvicorn.run(
        "main:app" if reload else app,
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )
