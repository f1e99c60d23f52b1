"""
User Management API Routes

Account administration (listing, staff creation, roles, failed-login locks,
the activity log) plus self service for the signed-in user's password and
language.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional, List

from dojo.api.dependencies import get_account_lock_service, get_auth_service, get_supabase_tool
from dojo.constants import ROLE_DESCRIPTIONS, STAFF_ROLES, Role
from dojo.middleware.auth_middleware import get_current_user, require_admin, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services import auth_service as auth
from dojo.services.account_lock_service import AccountLockService
from dojo.services.auth_service import AuthService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

users_router = APIRouter(prefix="/api/v1/users", tags=["User Management"])

DEFAULT_LANGUAGE = "es"

Language = Literal["es", "en"]

# Staff roles an admin may assign when creating an account
StaffRole = Literal["admin", "instructor", "recepcionista"]


# ==================== Pydantic Models ====================

class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    nombre_completo: Optional[str] = None
    rol: str
    estado: bool
    email_verificado: Optional[bool] = None
    idioma_preferido: Optional[str] = None


class UserListResponse(BaseModel):
    success: bool
    users: List[UserResponse]
    total: int


class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    nombre_completo: str = Field(..., min_length=1)
    rol: StaffRole


class UpdateUserRequest(BaseModel):
    rol: Optional[Role] = None
    estado: Optional[bool] = None


class ChangePasswordRequest(BaseModel):
    password_actual: str = Field(..., min_length=1)
    password_nueva: str = Field(..., min_length=6)


class LanguageRequest(BaseModel):
    idioma: Language


# ==================== User Endpoints ====================

@users_router.get("", response_model=UserListResponse)
async def list_users(
    user: UserContext = Depends(require_admin),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """List all user accounts"""
    try:
        users = db.list_users()
    except Exception as e:
        log_and_raise(500, "listing users", e, logger)

    return UserListResponse(
        success=True,
        users=[UserResponse(**u) for u in users],
        total=len(users)
    )


@users_router.post("", status_code=201)
async def create_user(
    user_data: CreateUserRequest,
    request: Request,
    user: UserContext = Depends(require_admin),
    auth_service: AuthService = Depends(get_auth_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Create a staff account (admin, instructor or recepcionista)"""
    try:
        success, result = await auth_service.create_staff_user(
            email=user_data.email,
            username=user_data.username,
            password=user_data.password,
            full_name=user_data.nombre_completo,
            role=user_data.rol,
        )
    except Exception as e:
        log_and_raise(500, "creating user", e, logger)

    if not success:
        raise precondition_error(400, result["error"], result["message"])

    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.CREATE,
        "usuarios",
        f"Usuario creado: {user_data.username} ({user_data.rol})",
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )

    return success_response(data=result, message="Usuario creado exitosamente")


@users_router.get("/roles")
async def list_roles(user: UserContext = Depends(get_current_user)):
    """Role values with their display names"""
    return success_response(data=[
        {"value": role.value, "label": ROLE_DESCRIPTIONS[role], "staff": role in STAFF_ROLES}
        for role in Role
    ])


@users_router.get("/instructors")
async def list_instructors(
    user: UserContext = Depends(get_current_user),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Active instructor accounts"""
    try:
        instructors = db.list_active_instructors()
    except Exception as e:
        log_and_raise(500, "listing instructors", e, logger)

    return success_response(data=instructors)


# ==================== Language ====================

@users_router.get("/system-language")
async def system_language(db: SupabaseTool = Depends(get_supabase_tool)):
    """Most common preferred language among accounts, used before login"""
    try:
        languages = [lang for lang in db.list_user_languages() if lang]
    except Exception as e:
        log_and_raise(500, "reading system language", e, logger)

    language = Counter(languages).most_common(1)[0][0] if languages else DEFAULT_LANGUAGE
    return success_response(data={"idioma": language})


@users_router.put("/me/language")
async def change_my_language(
    language_data: LanguageRequest,
    user: UserContext = Depends(get_current_user),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Set the signed-in user's preferred language"""
    try:
        db.update_user(user.user_id, {"idioma_preferido": language_data.idioma})
    except Exception as e:
        log_and_raise(500, "changing language", e, logger)

    return success_response(data={"idioma": language_data.idioma}, message="Idioma actualizado exitosamente")


@users_router.put("/language")
async def change_global_language(
    language_data: LanguageRequest,
    request: Request,
    user: UserContext = Depends(require_admin),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Set the preferred language of every account"""
    try:
        updated = db.set_language_for_all_users(language_data.idioma)
    except Exception as e:
        log_and_raise(500, "changing global language", e, logger)

    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.UPDATE,
        "usuarios",
        f"Idioma global cambiado a {language_data.idioma} ({updated} usuarios)",
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )

    return success_response(
        data={"idioma": language_data.idioma, "usuarios_actualizados": updated},
        message="Idioma del sistema actualizado",
    )


# ==================== Password ====================

@users_router.put("/me/password")
async def change_my_password(
    password_data: ChangePasswordRequest,
    request: Request,
    user: UserContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Change the signed-in user's password"""
    try:
        success, result = await auth_service.change_password(
            user.user_id,
            password_data.password_actual,
            password_data.password_nueva,
        )
    except Exception as e:
        log_and_raise(500, "changing password", e, logger)

    if not success:
        status = 404 if result["error"] == auth.USER_NOT_FOUND else 400
        raise precondition_error(status, result["error"], result["message"])

    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.PASSWORD_CHANGE,
        "usuarios",
        "Contraseña cambiada",
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )

    return success_response(message=result["message"])


# ==================== Activity Log ====================

@users_router.get("/logs")
async def list_activity(
    limit: int = Query(100, ge=1, le=1000),
    user: UserContext = Depends(require_admin),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Recent activity, newest first, with the acting user's names"""
    try:
        rows = db.list_activity(limit)
    except Exception as e:
        log_and_raise(500, "listing activity", e, logger)

    for row in rows:
        actor = row.pop("usuario", None) or {}
        row["username"] = actor.get("username")
        row["nombre_completo"] = actor.get("nombre_completo")
    return success_response(data=rows)


@users_router.delete("/logs")
async def cleanup_activity(
    days: int = Query(90, ge=1),
    user: UserContext = Depends(require_admin),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Delete activity older than `days` days"""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    try:
        deleted = db.delete_activity_before(cutoff)
    except Exception as e:
        log_and_raise(500, "cleaning activity log", e, logger)

    logger.info(f"Activity log cleanup removed {deleted} rows older than {days} days")
    return success_response(data={"deleted_count": deleted}, message=f"{deleted} registros eliminados")


# ==================== Account Administration ====================

@users_router.get("/{user_id}/lock")
async def get_lock_status(
    user_id: int,
    user: UserContext = Depends(require_admin),
    lock_service: AccountLockService = Depends(get_account_lock_service)
):
    """Lock status of an account"""
    try:
        status = lock_service.is_locked(user_id)
    except Exception as e:
        log_and_raise(500, "reading lock status", e, logger)

    return success_response(data={
        "user_id": user_id,
        "is_locked": status["locked"],
        "locked_since": status["locked_since"],
    })


@users_router.post("/{user_id}/unlock")
async def unlock_user(
    user_id: int,
    request: Request,
    user: UserContext = Depends(require_admin),
    db: SupabaseTool = Depends(get_supabase_tool),
    lock_service: AccountLockService = Depends(get_account_lock_service)
):
    """Clear the failed-login lock of an account without an unlock code"""
    try:
        if not db.get_user_by_id(user_id):
            raise HTTPException(status_code=404, detail="User not found")

        result = lock_service.admin_unlock(user_id)
    except HTTPException:
        raise
    except Exception as e:
        log_and_raise(500, "unlocking user", e, logger)

    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.UNLOCK,
        "usuarios",
        f"Desbloqueo administrativo de la cuenta {user_id}",
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )

    return success_response(data=result, message="Cuenta desbloqueada")


@users_router.patch("/{user_id}")
async def update_user(
    user_id: int,
    update_data: UpdateUserRequest,
    request: Request,
    user: UserContext = Depends(require_admin),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Change an account's role and/or active flag"""
    updates = {}
    if update_data.rol is not None:
        updates["rol"] = update_data.rol.value
    if update_data.estado is not None:
        updates["estado"] = update_data.estado

    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    demotes_self = updates.get("estado") is False or updates.get("rol", Role.ADMIN.value) != Role.ADMIN.value
    if user_id == user.user_id and demotes_self:
        raise HTTPException(status_code=400, detail="Cannot demote or deactivate your own account")

    try:
        updated = db.update_user(user_id, updates)
    except Exception as e:
        log_and_raise(500, "updating user", e, logger)

    if not updated:
        raise HTTPException(status_code=404, detail="User not found")

    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.UPDATE,
        "usuarios",
        f"Usuario {user_id} actualizado: {updates}",
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )

    return success_response(data=updated, message="Usuario actualizado")
