"""
Levels API Routes

Age categories and belts, plus the exam preparation estimate for a
combination of both. Anyone signed in can read them; only admins change them.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from typing import Optional

from dojo.api.dependencies import get_level_service, get_preparation_estimator, get_supabase_tool
from dojo.middleware.auth_middleware import get_current_user, require_admin, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services import level_service as levels
from dojo.services.level_service import LevelService
from dojo.services.preparation_service import PreparationEstimator
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

levels_router = APIRouter(prefix="/api/v1/levels", tags=["Levels"])

FAILURE_STATUS = {
    levels.CATEGORY_NOT_FOUND: 404,
    levels.BELT_NOT_FOUND: 404,
}

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


# ==================== Pydantic Models ====================

class CategoryCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    edad_min: int = Field(..., ge=0)
    edad_max: int = Field(..., ge=0)
    precio_mensualidad: Optional[float] = Field(None, ge=0)
    orden: int = 99


class CategoryUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    edad_min: Optional[int] = Field(None, ge=0)
    edad_max: Optional[int] = Field(None, ge=0)
    precio_mensualidad: Optional[float] = Field(None, ge=0)
    orden: Optional[int] = None


class BeltCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    nombre_en: Optional[str] = None
    color_hex: str = Field("#FFFFFF", pattern=HEX_COLOR)
    orden: int = 99
    es_dan: bool = False
    nivel_dan: Optional[int] = Field(None, ge=1)


class BeltUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    nombre_en: Optional[str] = None
    color_hex: Optional[str] = Field(None, pattern=HEX_COLOR)
    orden: Optional[int] = None
    es_dan: Optional[bool] = None
    nivel_dan: Optional[int] = Field(None, ge=1)


def _failure(result: dict) -> HTTPException:
    return precondition_error(FAILURE_STATUS.get(result["error"], 400), result["error"], result["message"])


def _log(db, user: UserContext, request: Request, action: str, description: str):
    activity_log.record_activity(
        db,
        user.user_id,
        action,
        "niveles",
        description,
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )


# ==================== Preparation ====================

@levels_router.get("/preparation")
async def preparation_estimate(
    category_id: Optional[int] = Query(None, ge=1),
    belt_id: Optional[int] = Query(None, ge=1),
    user: UserContext = Depends(get_current_user),
    estimator: PreparationEstimator = Depends(get_preparation_estimator),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Estimated months of preparation and the next exam date"""
    return success_response(data=estimator.estimate(db, category_id, belt_id))


# ==================== Age Categories ====================

@levels_router.get("/categories")
async def list_categories(
    user: UserContext = Depends(get_current_user),
    service: LevelService = Depends(get_level_service)
):
    try:
        rows = service.list_categories()
    except Exception as e:
        log_and_raise(500, "listing age categories", e, logger)

    return success_response(data=rows)


@levels_router.get("/categories/{category_id}")
async def get_category(
    category_id: int,
    user: UserContext = Depends(get_current_user),
    service: LevelService = Depends(get_level_service)
):
    try:
        category = service.get_category(category_id)
    except Exception as e:
        log_and_raise(500, "loading age category", e, logger)

    if not category:
        raise HTTPException(status_code=404, detail="Categoría no encontrada")
    return success_response(data=category)


@levels_router.post("/categories", status_code=201)
async def create_category(
    category: CategoryCreate,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: LevelService = Depends(get_level_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.create_category(category.model_dump())
    except Exception as e:
        log_and_raise(500, "creating age category", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE,
         f"Categoría creada: {category.nombre} ({category.edad_min}-{category.edad_max} años)")

    return success_response(data=result, message="Categoría creada exitosamente")


@levels_router.put("/categories/{category_id}")
async def update_category(
    category_id: int,
    category: CategoryUpdate,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: LevelService = Depends(get_level_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.update_category(category_id, category.model_dump(exclude_unset=True))
    except Exception as e:
        log_and_raise(500, "updating age category", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Categoría actualizada - ID: {category_id}")

    return success_response(data=result, message="Categoría actualizada exitosamente")


@levels_router.delete("/categories/{category_id}")
async def delete_category(
    category_id: int,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: LevelService = Depends(get_level_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.delete_category(category_id)
    except Exception as e:
        log_and_raise(500, "deleting age category", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE,
         f"Categoría eliminada - ID: {category_id}, Nombre: {result.get('nombre')}")

    return success_response(message="Categoría eliminada exitosamente")


# ==================== Belts ====================

@levels_router.get("/belts")
async def list_belts(
    user: UserContext = Depends(get_current_user),
    service: LevelService = Depends(get_level_service)
):
    try:
        rows = service.list_belts()
    except Exception as e:
        log_and_raise(500, "listing belts", e, logger)

    return success_response(data=rows)


@levels_router.get("/belts/{belt_id}")
async def get_belt(
    belt_id: int,
    user: UserContext = Depends(get_current_user),
    service: LevelService = Depends(get_level_service)
):
    try:
        belt = service.get_belt(belt_id)
    except Exception as e:
        log_and_raise(500, "loading belt", e, logger)

    if not belt:
        raise HTTPException(status_code=404, detail="Cinta no encontrada")
    return success_response(data=belt)


@levels_router.post("/belts", status_code=201)
async def create_belt(
    belt: BeltCreate,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: LevelService = Depends(get_level_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.create_belt(belt.model_dump())
    except Exception as e:
        log_and_raise(500, "creating belt", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE, f"Cinta creada: {belt.nombre}")

    return success_response(data=result, message="Cinta creada exitosamente")


@levels_router.put("/belts/{belt_id}")
async def update_belt(
    belt_id: int,
    belt: BeltUpdate,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: LevelService = Depends(get_level_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.update_belt(belt_id, belt.model_dump(exclude_unset=True))
    except Exception as e:
        log_and_raise(500, "updating belt", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Cinta actualizada - ID: {belt_id}")

    return success_response(data=result, message="Cinta actualizada exitosamente")


@levels_router.delete("/belts/{belt_id}")
async def delete_belt(
    belt_id: int,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: LevelService = Depends(get_level_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.delete_belt(belt_id)
    except Exception as e:
        log_and_raise(500, "deleting belt", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE,
         f"Cinta eliminada - ID: {belt_id}, Nombre: {result.get('nombre')}")

    return success_response(message="Cinta eliminada exitosamente")
