"""
Schedules API Routes

Weekly class timetable and dojo holidays. Everyone signed in can read them;
staff maintain them.
"""

import logging
from datetime import date, time
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from typing import Literal, Optional

from dojo.api.dependencies import get_schedule_service, get_supabase_tool
from dojo.constants import STAFF_ROLES
from dojo.middleware.auth_middleware import get_current_user, require_roles, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services import schedule_service as schedules
from dojo.services.schedule_service import ScheduleService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

schedules_router = APIRouter(prefix="/api/v1/schedules", tags=["Schedules"])

FAILURE_STATUS = {
    schedules.SCHEDULE_NOT_FOUND: 404,
    schedules.HOLIDAY_NOT_FOUND: 404,
}

Weekday = Literal["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]


# ==================== Pydantic Models ====================

class ScheduleCreate(BaseModel):
    dia_semana: Weekday
    hora_inicio: time
    hora_fin: time
    id_categoria_edad: Optional[int] = None
    instructor_id: Optional[int] = None
    capacidad_maxima: Optional[int] = Field(None, ge=1)
    activo: bool = True


class ScheduleUpdate(BaseModel):
    dia_semana: Optional[Weekday] = None
    hora_inicio: Optional[time] = None
    hora_fin: Optional[time] = None
    id_categoria_edad: Optional[int] = None
    instructor_id: Optional[int] = None
    capacidad_maxima: Optional[int] = Field(None, ge=1)
    activo: Optional[bool] = None


class HolidayRequest(BaseModel):
    fecha: date
    descripcion: str = Field(..., min_length=1)


def _failure(result: dict) -> HTTPException:
    return precondition_error(FAILURE_STATUS.get(result["error"], 400), result["error"], result["message"])


def _record(model: BaseModel, partial: bool = True) -> dict:
    data = model.model_dump(exclude_unset=partial)
    for field in ("hora_inicio", "hora_fin"):
        if data.get(field):
            data[field] = data[field].strftime("%H:%M")
    return data


def _log(db, user: UserContext, request: Request, action: str, description: str):
    activity_log.record_activity(
        db,
        user.user_id,
        action,
        "horarios",
        description,
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )


# ==================== Holidays ====================

@schedules_router.get("/holidays")
async def list_holidays(
    user: UserContext = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service)
):
    try:
        rows = service.list_holidays()
    except Exception as e:
        log_and_raise(500, "listing holidays", e, logger)

    return success_response(data=rows)


@schedules_router.post("/holidays", status_code=201)
async def create_holiday(
    holiday: HolidayRequest,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: ScheduleService = Depends(get_schedule_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.create_holiday(holiday.fecha.isoformat(), holiday.descripcion)
    except Exception as e:
        log_and_raise(500, "creating holiday", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE,
         f"Día festivo creado: {holiday.descripcion} ({holiday.fecha.isoformat()})")

    return success_response(data=result, message="Día festivo creado exitosamente")


@schedules_router.put("/holidays/{holiday_id}")
async def update_holiday(
    holiday_id: int,
    holiday: HolidayRequest,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: ScheduleService = Depends(get_schedule_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.update_holiday(holiday_id, holiday.fecha.isoformat(), holiday.descripcion)
    except Exception as e:
        log_and_raise(500, "updating holiday", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Día festivo actualizado - ID: {holiday_id}")

    return success_response(data=result, message="Día festivo actualizado exitosamente")


@schedules_router.delete("/holidays/{holiday_id}")
async def delete_holiday(
    holiday_id: int,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: ScheduleService = Depends(get_schedule_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.delete_holiday(holiday_id)
    except Exception as e:
        log_and_raise(500, "deleting holiday", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE, f"Día festivo eliminado - ID: {holiday_id}")

    return success_response(message="Día festivo eliminado exitosamente")


# ==================== Classes ====================

@schedules_router.get("")
async def list_schedules(
    user: UserContext = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service)
):
    """Classes from Monday to Sunday, then by start time"""
    try:
        rows = service.list_schedules(user.user_id, user.role)
    except Exception as e:
        log_and_raise(500, "listing schedules", e, logger)

    return success_response(data=rows)


@schedules_router.post("", status_code=201)
async def create_schedule(
    schedule: ScheduleCreate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: ScheduleService = Depends(get_schedule_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.create_schedule(_record(schedule, partial=False))
    except Exception as e:
        log_and_raise(500, "creating schedule", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE,
         f"Horario creado: {schedule.dia_semana} {schedule.hora_inicio.strftime('%H:%M')}"
         f"-{schedule.hora_fin.strftime('%H:%M')}")

    return success_response(data=result, message="Horario creado exitosamente")


@schedules_router.put("/{schedule_id}")
async def update_schedule(
    schedule_id: int,
    schedule: ScheduleUpdate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: ScheduleService = Depends(get_schedule_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.update_schedule(schedule_id, _record(schedule))
    except Exception as e:
        log_and_raise(500, "updating schedule", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Horario actualizado - ID: {schedule_id}")

    return success_response(data=result, message="Horario actualizado exitosamente")


@schedules_router.delete("/{schedule_id}")
async def delete_schedule(
    schedule_id: int,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: ScheduleService = Depends(get_schedule_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.delete_schedule(schedule_id)
    except Exception as e:
        log_and_raise(500, "deleting schedule", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE, f"Horario eliminado - ID: {schedule_id}")

    return success_response(message="Horario eliminado exitosamente")
