"""
Evaluations API Routes

Belt exams and the examiner's notes per student. Students (role usuario)
see the exams their students are enrolled in; staff run the exams.
"""

import logging
from datetime import date, time
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from typing import List, Optional

from dojo.api.dependencies import get_evaluation_service, get_supabase_tool
from dojo.constants import STAFF_ROLES
from dojo.middleware.auth_middleware import get_current_user, require_roles, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services import evaluation_service as evaluations
from dojo.services.evaluation_service import EvaluationService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

evaluations_router = APIRouter(prefix="/api/v1/evaluations", tags=["Evaluations"])

FAILURE_STATUS = {
    evaluations.EVALUATION_NOT_FOUND: 404,
}


# ==================== Pydantic Models ====================

class EvaluationCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    fecha: date
    hora: time
    descripcion: Optional[str] = None
    alumnos_ids: List[int] = Field(default_factory=list)


class EvaluationUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    fecha: Optional[date] = None
    hora: Optional[time] = None
    descripcion: Optional[str] = None


class ResultCreate(BaseModel):
    id_alumno: int
    notas: Optional[str] = None


def _failure(result: dict) -> HTTPException:
    return precondition_error(FAILURE_STATUS.get(result["error"], 400), result["error"], result["message"])


def _record(model: BaseModel) -> dict:
    data = model.model_dump(exclude_unset=True)
    if data.get("fecha"):
        data["fecha"] = data["fecha"].isoformat()
    if data.get("hora"):
        data["hora"] = data["hora"].strftime("%H:%M")
    return data


def _log(db, user: UserContext, request: Request, action: str, description: str):
    activity_log.record_activity(
        db,
        user.user_id,
        action,
        "evaluaciones",
        description,
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )


# ==================== Evaluations ====================

@evaluations_router.get("")
async def list_evaluations(
    user: UserContext = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service)
):
    """Evaluations, most recent first, with enrolled levels and exam category"""
    try:
        rows = service.list_evaluations(user.user_id, user.role)
    except Exception as e:
        log_and_raise(500, "listing evaluations", e, logger)

    return success_response(data=rows)


@evaluations_router.get("/{evaluation_id}")
async def get_evaluation(
    evaluation_id: int,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: EvaluationService = Depends(get_evaluation_service)
):
    try:
        evaluation = service.get_evaluation(evaluation_id)
    except Exception as e:
        log_and_raise(500, "loading evaluation", e, logger)

    if not evaluation:
        raise HTTPException(status_code=404, detail="Evaluación no encontrada")
    return success_response(data=evaluation)


@evaluations_router.post("", status_code=201)
async def create_evaluation(
    evaluation: EvaluationCreate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: EvaluationService = Depends(get_evaluation_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """
    Create an evaluation and enroll students.

    Students whose belt doesn't match the exam are returned in ``omitidos``.
    """
    try:
        success, result = service.create_evaluation(_record(evaluation))
    except Exception as e:
        log_and_raise(500, "creating evaluation", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE,
         f"Evaluación creada: {evaluation.nombre} - Fecha: {evaluation.fecha.isoformat()}, "
         f"Hora: {evaluation.hora.strftime('%H:%M')}")

    return success_response(data=result, message="Evaluación creada exitosamente")


@evaluations_router.put("/{evaluation_id}")
async def update_evaluation(
    evaluation_id: int,
    evaluation: EvaluationUpdate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: EvaluationService = Depends(get_evaluation_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.update_evaluation(evaluation_id, _record(evaluation))
    except Exception as e:
        log_and_raise(500, "updating evaluation", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Evaluación actualizada - ID: {evaluation_id}")

    return success_response(data=result, message="Evaluación actualizada exitosamente")


@evaluations_router.delete("/{evaluation_id}")
async def delete_evaluation(
    evaluation_id: int,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: EvaluationService = Depends(get_evaluation_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.delete_evaluation(evaluation_id)
    except Exception as e:
        log_and_raise(500, "deleting evaluation", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE, f"Evaluación eliminada - ID: {evaluation_id}")

    return success_response(message="Evaluación eliminada exitosamente")


# ==================== Results ====================

@evaluations_router.get("/{evaluation_id}/results")
async def list_results(
    evaluation_id: int,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: EvaluationService = Depends(get_evaluation_service)
):
    """Results of active students who were due for this exam"""
    try:
        success, result = service.list_results(evaluation_id)
    except Exception as e:
        log_and_raise(500, "listing evaluation results", e, logger)

    if not success:
        raise _failure(result)

    return success_response(data=result)


@evaluations_router.post("/{evaluation_id}/results", status_code=201)
async def add_result(
    evaluation_id: int,
    body: ResultCreate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: EvaluationService = Depends(get_evaluation_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.add_result(evaluation_id, body.id_alumno, body.notas)
    except Exception as e:
        log_and_raise(500, "adding evaluation result", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE,
         f"Resultado registrado - Evaluación: {evaluation_id}, Alumno: {body.id_alumno}")

    return success_response(data=result, message="Resultado de evaluación creado exitosamente")
