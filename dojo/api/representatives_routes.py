"""
Representatives API Routes

Guardians of students. Students (role usuario) only see the guardians of
their own students; staff manage the list.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from typing import Optional

from dojo.api.dependencies import get_representative_service, get_supabase_tool
from dojo.constants import STAFF_ROLES
from dojo.middleware.auth_middleware import get_current_user, require_roles, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services import representative_service as representatives
from dojo.services.representative_service import RepresentativeService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

representatives_router = APIRouter(prefix="/api/v1/representatives", tags=["Representatives"])

FAILURE_STATUS = {
    representatives.REPRESENTATIVE_NOT_FOUND: 404,
}


# ==================== Pydantic Models ====================

class RepresentativeCreate(BaseModel):
    cedula: str = Field(..., min_length=1)
    nombre: str = Field(..., min_length=1)
    telefono: Optional[str] = None


class RepresentativeUpdate(BaseModel):
    cedula: Optional[str] = Field(None, min_length=1)
    nombre: Optional[str] = Field(None, min_length=1)
    telefono: Optional[str] = None


def _failure(result: dict) -> HTTPException:
    return precondition_error(FAILURE_STATUS.get(result["error"], 400), result["error"], result["message"])


def _log(db, user: UserContext, request: Request, action: str, description: str):
    activity_log.record_activity(
        db,
        user.user_id,
        action,
        "representantes",
        description,
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )


# ==================== Endpoints ====================

@representatives_router.get("")
async def list_representatives(
    user: UserContext = Depends(get_current_user),
    service: RepresentativeService = Depends(get_representative_service)
):
    """Guardians ordered by name with their students' names"""
    try:
        rows = service.list_representatives(user.user_id, user.role)
    except Exception as e:
        log_and_raise(500, "listing representatives", e, logger)

    return success_response(data=rows)


@representatives_router.get("/{representative_id}")
async def get_representative(
    representative_id: int,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: RepresentativeService = Depends(get_representative_service)
):
    try:
        representative = service.get_representative(representative_id)
    except Exception as e:
        log_and_raise(500, "loading representative", e, logger)

    if not representative:
        raise HTTPException(status_code=404, detail="Representante no encontrado")
    return success_response(data=representative)


@representatives_router.post("", status_code=201)
async def create_representative(
    representative: RepresentativeCreate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: RepresentativeService = Depends(get_representative_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.create_representative(representative.model_dump())
    except Exception as e:
        log_and_raise(500, "creating representative", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE,
         f"Representante creado: {representative.nombre} ({representative.cedula})")

    return success_response(data=result, message="Representante creado exitosamente")


@representatives_router.put("/{representative_id}")
async def update_representative(
    representative_id: int,
    representative: RepresentativeUpdate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: RepresentativeService = Depends(get_representative_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.update_representative(
            representative_id, representative.model_dump(exclude_unset=True)
        )
    except Exception as e:
        log_and_raise(500, "updating representative", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Representante actualizado - ID: {representative_id}")

    return success_response(data=result, message="Representante actualizado exitosamente")


@representatives_router.delete("/{representative_id}")
async def delete_representative(
    representative_id: int,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: RepresentativeService = Depends(get_representative_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Delete a guardian that has no linked students"""
    try:
        success, result = service.delete_representative(representative_id)
    except Exception as e:
        log_and_raise(500, "deleting representative", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE,
         f"Representante eliminado - ID: {representative_id}, Nombre: {result.get('nombre')}")

    return success_response(message="Representante eliminado exitosamente")
