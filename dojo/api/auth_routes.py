"""
Authentication API Routes

Endpoints for login, registration, password recovery and unlocking accounts
locked by repeated failed logins.
"""

import logging
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from dojo.api.dependencies import get_auth_service, get_supabase_tool
from dojo.middleware.auth_middleware import get_current_user, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import auth_service as auth
from dojo.services.auth_service import AuthService, FORGOT_PASSWORD_MESSAGE, public_profile
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

# Rate limiter for auth endpoints, keyed by remote IP
limiter = Limiter(key_func=get_remote_address)

auth_router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])

# HTTP status for each login failure kind; unlock code failures answer 400
LOGIN_FAILURE_STATUS = {
    auth.INVALID_CREDENTIALS: 401,
    auth.ACCOUNT_LOCKED: 403,
}


# ==================== Pydantic Models ====================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    unlock_code: Optional[str] = Field(None, min_length=6, max_length=6)


class LoginResponse(BaseModel):
    success: bool
    token: str
    user: dict


class RegisterRequest(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    nombre_completo: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


class ResendUnlockRequest(BaseModel):
    email: EmailStr


class VerifyUnlockRequest(BaseModel):
    email: EmailStr
    unlock_code: str = Field(..., pattern=r"^\d{6}$")


def _extras(result: dict) -> dict:
    return {k: v for k, v in result.items() if k not in ("error", "message")}


# ==================== Login & Registration ====================

@auth_router.post("/login", response_model=LoginResponse)
@limiter.limit("5/minute")  # brute force guard on top of the per-account lockout
async def login(
    request: Request,  # Required for rate limiter
    login_data: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Authenticate with email and password.

    Failures:
    - 401 wrong credentials, with attempts/remaining before lockout
    - 403 account locked (locked=true); retry with unlock_code
    - 400 unlock code rejected (locked=true)
    """
    try:
        success, result = await auth_service.login(
            email=login_data.email,
            password=login_data.password,
            unlock_code=login_data.unlock_code,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
    except Exception as e:
        log_and_raise(500, "logging in", e, logger)

    if not success:
        status_code = LOGIN_FAILURE_STATUS.get(result["error"], 400)
        raise precondition_error(status_code, result["error"], result["message"], **_extras(result))

    return LoginResponse(success=True, token=result["token"], user=result["user"])


@auth_router.post("/register", status_code=201)
async def register(
    register_data: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Create a student account and return a token for it"""
    try:
        success, result = await auth_service.register(
            email=register_data.email,
            username=register_data.username,
            password=register_data.password,
            full_name=register_data.nombre_completo,
        )
    except Exception as e:
        log_and_raise(500, "registering user", e, logger)

    if not success:
        raise precondition_error(400, result["error"], result["message"])

    return {
        "success": True,
        "token": result["token"],
        "user": result["user"],
        "message": "Usuario registrado exitosamente",
    }


@auth_router.get("/me")
async def get_me(
    user: UserContext = Depends(get_current_user),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Profile of the authenticated user"""
    try:
        profile = db.get_user_by_id(user.user_id)
    except Exception as e:
        log_and_raise(500, "loading profile", e, logger)

    if not profile:
        raise precondition_error(404, auth.USER_NOT_FOUND, "Usuario no encontrado")

    return success_response(data=public_profile(profile))


# ==================== Password Recovery ====================

@auth_router.post("/password/forgot")
@limiter.limit("3/minute")  # Strict limit to prevent email enumeration abuse
async def forgot_password(
    request: Request,  # Required for rate limiter
    forgot_data: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Email a password reset link.

    Always answers with the same message so the endpoint can't be used to
    discover registered emails.
    """
    try:
        await auth_service.request_password_reset(forgot_data.email)
    except Exception as e:
        logger.error(f"Password reset request failed: {e}", exc_info=True)

    return success_response(message=FORGOT_PASSWORD_MESSAGE)


@auth_router.get("/password/reset/{token}")
async def validate_reset_token(
    token: str,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Check a reset token before showing the new password form"""
    try:
        valid, result = await auth_service.validate_reset_token(token)
    except Exception as e:
        log_and_raise(500, "validating reset token", e, logger)

    if not valid:
        raise precondition_error(400, result["error"], result["message"])

    return success_response(data=result)


@auth_router.post("/password/reset")
@limiter.limit("5/minute")
async def reset_password(
    request: Request,  # Required for rate limiter
    reset_data: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Set a new password using a reset token"""
    try:
        success, result = await auth_service.reset_password(
            token=reset_data.token,
            new_password=reset_data.password,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
    except Exception as e:
        log_and_raise(500, "resetting password", e, logger)

    if not success:
        raise precondition_error(400, result["error"], result["message"])

    return success_response(message=result["message"])


# ==================== Unlock Codes ====================

@auth_router.post("/unlock/resend")
@limiter.limit("3/minute")
async def resend_unlock_code(
    request: Request,  # Required for rate limiter
    resend_data: ResendUnlockRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Send a fresh unlock code to a locked account"""
    try:
        success, result = await auth_service.resend_unlock_code(resend_data.email)
    except Exception as e:
        log_and_raise(500, "resending unlock code", e, logger)

    if not success:
        raise precondition_error(400, result["error"], result["message"])

    return success_response(message=result["message"])


@auth_router.post("/unlock/verify")
@limiter.limit("5/minute")
async def verify_unlock_code(
    request: Request,  # Required for rate limiter
    verify_data: VerifyUnlockRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Unlock an account with the emailed 6-digit code"""
    try:
        success, result = await auth_service.verify_unlock_code(
            verify_data.email, verify_data.unlock_code
        )
    except Exception as e:
        log_and_raise(500, "verifying unlock code", e, logger)

    if not success:
        status_code = 404 if result["error"] == auth.USER_NOT_FOUND else 400
        raise precondition_error(status_code, result["error"], result["message"])

    return success_response(data={"unlocked": True}, message=result["message"])
