"""
System Settings API Routes

Dojo branding and theme. Reads are public so the login screen can load
them; writes are admin only.
"""

import logging
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from typing import Any, Dict

from dojo.api.dependencies import get_supabase_tool, get_system_settings_service
from dojo.middleware.auth_middleware import require_admin, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services.settings_service import SystemSettingsService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

settings_router = APIRouter(prefix="/api/v1/settings", tags=["Settings"])


# ==================== Pydantic Models ====================

class SettingsUpdate(BaseModel):
    configuraciones: Dict[str, Any]


class SettingValue(BaseModel):
    valor: Any


def _log(db, user: UserContext, request: Request, description: str):
    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.UPDATE,
        "configuracion",
        description,
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )


# ==================== Endpoints ====================

@settings_router.get("")
async def get_settings(service: SystemSettingsService = Depends(get_system_settings_service)):
    """All settings as a clave -> valor mapping"""
    try:
        settings = service.get_all()
    except Exception as e:
        log_and_raise(500, "loading settings", e, logger)

    return success_response(data=settings)


@settings_router.post("/reset")
async def reset_settings(
    request: Request,
    user: UserContext = Depends(require_admin),
    service: SystemSettingsService = Depends(get_system_settings_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Restore the default branding and theme"""
    try:
        restored = service.reset()
    except Exception as e:
        log_and_raise(500, "resetting settings", e, logger)

    _log(db, user, request, "Configuraciones restauradas a valores por defecto")

    return success_response(data=restored, message="Configuraciones restauradas a valores por defecto")


@settings_router.get("/{clave}")
async def get_setting(
    clave: str,
    service: SystemSettingsService = Depends(get_system_settings_service)
):
    try:
        success, result = service.get(clave)
    except Exception as e:
        log_and_raise(500, "loading setting", e, logger)

    if not success:
        raise precondition_error(404, result["error"], result["message"])
    return success_response(data=result)


@settings_router.put("")
async def update_settings(
    body: SettingsUpdate,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: SystemSettingsService = Depends(get_system_settings_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Write several settings at once, creating unknown keys"""
    try:
        result = service.update_many(body.configuraciones)
    except Exception as e:
        log_and_raise(500, "updating settings", e, logger)

    _log(db, user, request, f"Configuraciones actualizadas: {', '.join(body.configuraciones)}")

    return success_response(data=result, message="Configuraciones actualizadas exitosamente")


@settings_router.put("/{clave}")
async def update_setting(
    clave: str,
    body: SettingValue,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: SystemSettingsService = Depends(get_system_settings_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        result = service.update_one(clave, body.valor)
    except Exception as e:
        log_and_raise(500, "updating setting", e, logger)

    _log(db, user, request, f"Configuración actualizada: {clave}")

    return success_response(data=result, message="Configuración actualizada exitosamente")
