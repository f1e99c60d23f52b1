"""
Payments API Routes

Payment registration, history, review, pricing and payment settings.
"""

import logging
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from dojo.api.dependencies import get_payment_service, get_supabase_tool
from dojo.constants import PAYMENT_REVIEWER_ROLES, STAFF_ROLES, PaymentStatus, Role
from dojo.middleware.auth_middleware import get_current_user, require_admin, require_roles, UserContext
from dojo.middleware.request_id_middleware import get_client_ip
from dojo.services import activity_log
from dojo.services.payment_service import PaymentService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.error_handler import log_and_raise, precondition_error
from dojo.utils.response_models import success_response

logger = logging.getLogger(__name__)

payments_router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


# ==================== Pydantic Models ====================

class PaymentCreate(BaseModel):
    id_alumno: Optional[int] = None
    monto: float = Field(..., ge=0)
    metodo_pago: str = Field(..., min_length=1)
    fecha_pago: date
    mes_correspondiente: Optional[str] = None
    estado: Optional[PaymentStatus] = None
    referencia: Optional[str] = None
    banco_origen: Optional[str] = None
    cedula_titular: Optional[str] = None
    telefono_cuenta: Optional[str] = None
    comprobante: Optional[str] = None
    observaciones: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    estado: PaymentStatus


class PaymentConfigUpdate(BaseModel):
    dia_corte: Optional[int] = Field(None, ge=1, le=31)
    descuento_pago_adelantado: Optional[float] = Field(None, ge=0, le=100)
    recargo_mora: Optional[float] = Field(None, ge=0)
    moneda: Optional[str] = None
    metodos_pago: Optional[List[str]] = None
    datos_bancarios: Optional[str] = None
    idioma_sistema: Optional[str] = None
    pais_configuracion: Optional[str] = None


def _ensure_student_access(user: UserContext, student_id: int, service: PaymentService):
    if user.is_student and not service.caller_owns_student(user.user_id, student_id):
        raise HTTPException(status_code=403, detail="Access denied to this student's payments")


# ==================== Registration ====================

@payments_router.post("", status_code=201)
async def create_payment(
    payment: PaymentCreate,
    request: Request,
    user: UserContext = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """
    Register a payment.

    The billing period is derived from the payment date, the corresponding
    month label and the advance marker in the observations. Only reviewers
    (admin, recepcionista) may set the initial status; everyone else
    submits pending payments.
    """
    data: Dict[str, Any] = payment.model_dump()
    if user.role in {r.value for r in PAYMENT_REVIEWER_ROLES} and payment.estado:
        data["estado"] = payment.estado.value
    else:
        data["estado"] = None

    try:
        if payment.id_alumno is not None:
            _ensure_student_access(user, payment.id_alumno, service)
        success, result = service.submit_payment(
            data,
            caller_id=user.user_id,
            caller_role=user.role,
        )
    except HTTPException:
        raise
    except Exception as e:
        log_and_raise(500, "recording payment", e, logger)

    if not success:
        raise precondition_error(400, result["error"], result["message"])

    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.CREATE,
        "pagos",
        f"Pago {result['id']} registrado para {result['month']}/{result['year']}"
        f"{' (adelantado)' if result['is_advance'] else ''}",
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )

    return success_response(data=result, message="Pago registrado exitosamente. Pendiente de verificación.")


# ==================== Queries ====================

@payments_router.get("")
async def list_payments(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1900),
    limit: int = Query(100, ge=1, le=1000),
    user: UserContext = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    """List payments, newest payment date first. Students only see their own."""
    try:
        payments = service.list_payments(
            caller_id=user.user_id,
            caller_role=user.role,
            month=month,
            year=year,
            limit=limit,
        )
    except Exception as e:
        log_and_raise(500, "listing payments", e, logger)

    return success_response(data=payments)


@payments_router.get("/pending")
async def list_pending_students(
    user: UserContext = Depends(require_roles(*PAYMENT_REVIEWER_ROLES, Role.INSTRUCTOR)),
    service: PaymentService = Depends(get_payment_service)
):
    """Active students without a payment for the current month"""
    try:
        students = service.students_without_payment()
    except Exception as e:
        log_and_raise(500, "listing pending students", e, logger)

    return success_response(data=students)


@payments_router.get("/student/{student_id}")
async def student_payments(
    student_id: int,
    from_year: Optional[int] = Query(None, ge=1900),
    from_month: int = Query(1, ge=1, le=12),
    to_year: Optional[int] = Query(None, ge=1900),
    to_month: int = Query(12, ge=1, le=12),
    user: UserContext = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    """Payment history of a student, newest period first, optionally within a month range"""
    try:
        _ensure_student_access(user, student_id, service)
        payments = service.student_history(
            student_id,
            from_period=(from_month, from_year) if from_year else None,
            to_period=(to_month, to_year) if to_year else None,
        )
    except HTTPException:
        raise
    except Exception as e:
        log_and_raise(500, "loading payment history", e, logger)

    return success_response(data=payments)


@payments_router.get("/price/{student_id}")
async def student_price(
    student_id: int,
    user: UserContext = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    """Amount due for a student's next monthly payment"""
    try:
        _ensure_student_access(user, student_id, service)
        price = service.price_for_student(student_id)
    except HTTPException:
        raise
    except Exception as e:
        log_and_raise(500, "calculating price", e, logger)

    if not price:
        raise HTTPException(status_code=404, detail="Student not found")

    return success_response(data=price)


@payments_router.get("/prices")
async def price_list(
    user: UserContext = Depends(require_roles(*STAFF_ROLES)),
    service: PaymentService = Depends(get_payment_service)
):
    """Category price of every active student"""
    try:
        prices = service.price_summary()
    except Exception as e:
        log_and_raise(500, "listing prices", e, logger)

    return success_response(data=prices)


# ==================== Review ====================

@payments_router.patch("/{payment_id}/status")
async def update_payment_status(
    payment_id: int,
    status_data: PaymentStatusUpdate,
    request: Request,
    user: UserContext = Depends(require_roles(*PAYMENT_REVIEWER_ROLES)),
    service: PaymentService = Depends(get_payment_service),
    db: SupabaseTool = Depends(get_supabase_tool)
):
    """Confirm, reject or reopen a payment"""
    try:
        updated = service.update_status(payment_id, status_data.estado.value)
    except Exception as e:
        log_and_raise(500, "updating payment status", e, logger)

    if not updated:
        raise HTTPException(status_code=404, detail="Payment not found")

    activity_log.record_activity(
        db,
        user.user_id,
        activity_log.UPDATE,
        "pagos",
        f"Pago {payment_id} marcado como {status_data.estado.value}",
        get_client_ip(request),
        request.headers.get("User-Agent"),
    )

    return success_response(data=updated, message="Estado del pago actualizado")


# ==================== Settings ====================

@payments_router.get("/config")
async def get_payment_config(
    user: UserContext = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    """Payment settings (cut-off day, surcharges, methods, bank details)"""
    try:
        settings = service.get_settings()
    except Exception as e:
        log_and_raise(500, "loading payment settings", e, logger)

    return success_response(data=settings)


@payments_router.put("/config")
async def update_payment_config(
    config_data: PaymentConfigUpdate,
    user: UserContext = Depends(require_admin),
    service: PaymentService = Depends(get_payment_service)
):
    """Update payment settings; omitted fields keep their value"""
    try:
        settings = service.update_settings(config_data.model_dump(exclude_unset=True))
    except Exception as e:
        log_and_raise(500, "updating payment settings", e, logger)

    return success_response(data=settings, message="Configuración actualizada exitosamente")
