"""
Students API Routes

Student roster: enrollment, profile updates, soft delete and restore,
permanent removal and instructor assignment. Students (role usuario) can
only read their own records; staff manage everyone.
"""

import logging
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from typing import List, Optional

from dojo.api.dependencies import get_student_service, get_supabase_tool
from dojo.constants import STAFF_ROLES
from dojo.middleware.auth_middleware import get_current_user, require_admin, require_roles, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services import student_service as students
from dojo.services.student_service import StudentService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

students_router = APIRouter(prefix="/api/v1/students", tags=["Students"])

FAILURE_STATUS = {
    students.STUDENT_NOT_FOUND: 404,
}


# ==================== Pydantic Models ====================

class StudentFields(BaseModel):
    id_categoria_edad: Optional[int] = None
    id_cinta: Optional[int] = None
    usuario_id: Optional[int] = None
    telefono: Optional[str] = None
    email: Optional[str] = None
    direccion: Optional[str] = None
    contacto_emergencia: Optional[str] = None
    telefono_emergencia: Optional[str] = None
    nombre_padre: Optional[str] = None
    telefono_padre: Optional[str] = None
    nombre_madre: Optional[str] = None
    telefono_madre: Optional[str] = None
    id_representante: Optional[int] = None
    representantes: Optional[List[int]] = None


class StudentCreate(StudentFields):
    cedula: str = Field(..., min_length=1)
    nombre: str = Field(..., min_length=1)
    fecha_nacimiento: date


class StudentUpdate(StudentFields):
    cedula: Optional[str] = Field(None, min_length=1)
    nombre: Optional[str] = Field(None, min_length=1)
    fecha_nacimiento: Optional[date] = None
    estado: Optional[bool] = None


class InstructorAssignment(BaseModel):
    sensei_id: int


def _failure(result: dict) -> HTTPException:
    return precondition_error(FAILURE_STATUS.get(result["error"], 400), result["error"], result["message"])


def _record(model: BaseModel) -> dict:
    data = model.model_dump(exclude_unset=True)
    if data.get("fecha_nacimiento"):
        data["fecha_nacimiento"] = data["fecha_nacimiento"].isoformat()
    return data


def _log(db, user: UserContext, request: Request, action: str, description: str):
    activity_log.record_activity(
        db,
        user.user_id,
        action,
        "alumnos",
        description,
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )


# ==================== Queries ====================

@students_router.get("")
async def list_students(
    estado: Optional[bool] = Query(None),
    user: UserContext = Depends(get_current_user),
    service: StudentService = Depends(get_student_service)
):
    """Students ordered by name, optionally filtered by active flag"""
    try:
        rows = service.list_students(user.user_id, user.role, active=estado)
    except Exception as e:
        log_and_raise(500, "listing students", e, logger)

    return success_response(data=rows)


@students_router.get("/deleted")
async def list_deleted_students(
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: StudentService = Depends(get_student_service)
):
    """Soft-deleted students"""
    try:
        rows = service.list_deleted_students()
    except Exception as e:
        log_and_raise(500, "listing deleted students", e, logger)

    return success_response(data=rows)


@students_router.get("/instructors")
async def available_instructors(
    user: UserContext = Depends(get_current_user),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Active instructors a student can be assigned to"""
    try:
        instructors = db.list_active_instructors()
    except Exception as e:
        log_and_raise(500, "listing instructors", e, logger)

    return success_response(data=instructors)


@students_router.get("/{student_id}")
async def get_student(
    student_id: int,
    user: UserContext = Depends(get_current_user),
    service: StudentService = Depends(get_student_service)
):
    try:
        student = service.get_student(student_id)
    except Exception as e:
        log_and_raise(500, "loading student", e, logger)

    if not student:
        raise HTTPException(status_code=404, detail="Alumno no encontrado")
    if user.is_student and student.get("usuario_id") != user.user_id:
        raise HTTPException(status_code=403, detail="Access denied to this student")

    return success_response(data=student)


# ==================== Create & Update ====================

@students_router.post("", status_code=201)
async def create_student(
    student: StudentCreate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: StudentService = Depends(get_student_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """
    Enroll a student.

    The preparation estimate, next exam date and enrollment date are filled
    in, and a random active instructor is assigned.
    """
    try:
        success, result = service.create_student(_record(student))
    except Exception as e:
        log_and_raise(500, "creating student", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.CREATE,
         f"Alumno creado: {student.nombre} ({student.cedula}) - "
         f"Categoría: {student.id_categoria_edad or 'Sin categoría'}, Cinta: {student.id_cinta or 'Sin cinta'}")

    return success_response(data=result, message="Alumno creado exitosamente")


@students_router.put("/{student_id}")
async def update_student(
    student_id: int,
    student: StudentUpdate,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: StudentService = Depends(get_student_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Update the given fields; a belt or category change reschedules the next exam"""
    try:
        success, result = service.update_student(student_id, _record(student))
    except Exception as e:
        log_and_raise(500, "updating student", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Alumno actualizado - ID: {student_id}")

    return success_response(data=result, message="Alumno actualizado exitosamente")


@students_router.put("/{student_id}/instructor")
async def assign_instructor(
    student_id: int,
    assignment: InstructorAssignment,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: StudentService = Depends(get_student_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.assign_instructor(student_id, assignment.sensei_id)
    except Exception as e:
        log_and_raise(500, "assigning instructor", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE,
         f"Sensei {assignment.sensei_id} asignado al alumno {student_id}")

    return success_response(data=result, message="Sensei actualizado exitosamente")


# ==================== Delete & Restore ====================

@students_router.delete("/{student_id}")
async def delete_student(
    student_id: int,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: StudentService = Depends(get_student_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Soft delete; the student can be restored"""
    try:
        success, result = service.deactivate_student(student_id)
    except Exception as e:
        log_and_raise(500, "deleting student", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE,
         f"Alumno eliminado - ID: {student_id}, Nombre: {result.get('nombre')}")

    return success_response(message="Alumno eliminado exitosamente")


@students_router.patch("/{student_id}/restore")
async def restore_student(
    student_id: int,
    request: Request,
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: StudentService = Depends(get_student_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    try:
        success, result = service.restore_student(student_id)
    except Exception as e:
        log_and_raise(500, "restoring student", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.UPDATE, f"Alumno restaurado - ID: {student_id}")

    return success_response(message="Alumno restaurado exitosamente")


@students_router.delete("/{student_id}/permanent")
async def delete_student_permanently(
    student_id: int,
    request: Request,
    user: UserContext = Depends(require_admin),
    service: StudentService = Depends(get_student_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Remove a soft-deleted student with its payments and evaluation results"""
    try:
        success, result = service.delete_student_permanently(student_id)
    except Exception as e:
        log_and_raise(500, "permanently deleting student", e, logger)

    if not success:
        raise _failure(result)

    _log(db, user, request, activity_log.DELETE,
         f"Alumno eliminado PERMANENTEMENTE - ID: {student_id}, Nombre: {result['nombre']}, "
         f"Cédula: {result['cedula']}")

    return success_response(message="Alumno eliminado permanentemente exitosamente")
