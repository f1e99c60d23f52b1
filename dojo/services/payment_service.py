"""
Payment Service - Payment submission, history, pricing and settings

submit_payment() is the single entry point for registering a payment. It:
1. Resolves the student (explicit id, or the caller's own student record)
2. Resolves the billing period (see payment_period)
3. Enforces the advance-payment precondition
4. Rejects a second payment for the same (student, month, year)
5. Inserts the row; the database unique constraint catches concurrent doubles

Precondition failures come back as (False, {"error": CODE, "message": ...}).
Database errors propagate.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError

from config.database import UNIQUE_VIOLATION
from dojo.constants import PaymentStatus, Role
from dojo.services.payment_period import (
    DEFAULT_ADVANCE_MARKERS,
    has_advance_marker,
    month_label,
    resolve_payment_period,
)
from dojo.utils.clock import local_today

logger = logging.getLogger(__name__)

STUDENT_NOT_RESOLVED = "STUDENT_NOT_RESOLVED"
ADVANCE_PAYMENT_PRECONDITION_UNMET = "ADVANCE_PAYMENT_PRECONDITION_UNMET"
ADVANCE_ALREADY_CONFIRMED = "ADVANCE_ALREADY_CONFIRMED"
ADVANCE_ALREADY_PENDING = "ADVANCE_ALREADY_PENDING"
PERIOD_ALREADY_PAID_NORMALLY = "PERIOD_ALREADY_PAID_NORMALLY"
PERIOD_ALREADY_HAS_PAYMENT = "PERIOD_ALREADY_HAS_PAYMENT"

# Optional columns copied verbatim from the submission
OPTIONAL_PAYMENT_FIELDS = (
    "referencia",
    "banco_origen",
    "cedula_titular",
    "telefono_cuenta",
    "comprobante",
    "observaciones",
)

# config_pagos columns that may be written through the API
PAYMENT_CONFIG_FIELDS = (
    "dia_corte",
    "descuento_pago_adelantado",
    "recargo_mora",
    "moneda",
    "metodos_pago",
    "datos_bancarios",
    "idioma_sistema",
    "pais_configuracion",
)


def _duplicate_failure(
    existing: Dict[str, Any],
    is_advance: bool,
    month: int,
    year: int,
    markers
) -> Tuple[bool, Dict[str, Any]]:
    """Pick the failure for a period that already has a payment"""
    period = f"{month}/{year}"
    existing_is_advance = bool(existing.get("es_adelantado")) or has_advance_marker(
        existing.get("observaciones"), markers
    )

    if is_advance and existing_is_advance:
        if existing.get("estado") == PaymentStatus.CONFIRMED.value:
            return False, {
                "error": ADVANCE_ALREADY_CONFIRMED,
                "message": f"Ya existe un pago adelantado CONFIRMADO para el mes {period}. "
                           f"No se puede registrar otro pago para ese mes.",
            }
        return False, {
            "error": ADVANCE_ALREADY_PENDING,
            "message": f"Ya existe un pago adelantado PENDIENTE para el mes {period}. "
                       f"Contacta al administrador o espera su confirmación.",
        }

    if is_advance:
        return False, {
            "error": PERIOD_ALREADY_PAID_NORMALLY,
            "message": f"Ya existe un pago registrado para el mes {period}. "
                       f"No se puede registrar un pago adelantado para un mes que ya tiene un pago.",
        }

    return False, _period_taken(period)


def _period_taken(period: str) -> Dict[str, Any]:
    return {
        "error": PERIOD_ALREADY_HAS_PAYMENT,
        "message": f"Ya existe un pago registrado para el mes {period}. "
                   f"Si es un pago adelantado, contacta al administrador.",
    }


def years_between(birth_date: Optional[str], today: date) -> Optional[int]:
    if not birth_date:
        return None
    born = date.fromisoformat(str(birth_date)[:10])
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


class PaymentService:
    """Payment ledger operations"""

    def __init__(self, db, config):
        """
        Args:
            db: SupabaseTool
            config: DojoConfig (billing settings)
        """
        self.db = db
        self.config = config
        self.markers = tuple(config.advance_payment_markers or DEFAULT_ADVANCE_MARKERS)

    def today(self) -> date:
        return local_today(self.config.timezone)

    # ==================== Submission ====================

    def resolve_student_id(
        self,
        student_id: Optional[int],
        caller_id: Optional[int],
        caller_role: Optional[str]
    ) -> Optional[int]:
        """Explicit student id, or the student linked to a student-role caller"""
        if student_id:
            return student_id
        if caller_role == Role.STUDENT.value and caller_id is not None:
            return self.db.get_student_id_for_user(caller_id)
        return None

    def submit_payment(
        self,
        payment: Dict[str, Any],
        caller_id: Optional[int] = None,
        caller_role: Optional[str] = None,
        today: Optional[date] = None
    ) -> Tuple[bool, Dict[str, Any]]:
        """
        Register a payment.

        Args:
            payment: Submission with monto, metodo_pago, fecha_pago (date) and
                optional id_alumno, mes_correspondiente, estado, observaciones,
                referencia, banco_origen, cedula_titular, telefono_cuenta, comprobante
            caller_id: Authenticated user recording the payment
            caller_role: Role of the caller
            today: Current date (defaults to the dojo-local date)

        Returns:
            (True, {"id", "month", "year", "is_advance"}) or
            (False, {"error": CODE, "message": ...})
        """
        today = today or self.today()

        student_id = self.resolve_student_id(payment.get("id_alumno"), caller_id, caller_role)
        if not student_id:
            return False, {
                "error": STUDENT_NOT_RESOLVED,
                "message": "No se pudo determinar el alumno asociado",
            }

        resolution = resolve_payment_period(
            payment_date=payment["fecha_pago"],
            corresponding_month=payment.get("mes_correspondiente"),
            observations=payment.get("observaciones"),
            today=today,
            markers=self.markers,
        )
        month, year = resolution.month, resolution.year
        logger.info(
            f"Payment for student {student_id} resolved to {month}/{year} "
            f"(advance={resolution.is_advance}, rule={resolution.rule})"
        )

        if resolution.is_advance:
            current = self.db.find_payment(student_id, today.month, today.year)
            if not current or current.get("estado") != PaymentStatus.CONFIRMED.value:
                return False, {
                    "error": ADVANCE_PAYMENT_PRECONDITION_UNMET,
                    "message": f"No se puede realizar un pago adelantado. Debe pagar primero el mes "
                               f"actual ({today.month}/{today.year}) y que esté confirmado.",
                }

        existing = self.db.find_payment(student_id, month, year)
        if existing:
            return _duplicate_failure(existing, resolution.is_advance, month, year, self.markers)

        record = {
            "id_alumno": student_id,
            "mes": month,
            "anio": year,
            "monto": payment["monto"],
            "metodo_pago": payment["metodo_pago"],
            "fecha_pago": payment["fecha_pago"].isoformat(),
            "mes_correspondiente": payment.get("mes_correspondiente") or month_label(month, year),
            "estado": payment.get("estado") or PaymentStatus.PENDING.value,
            "es_adelantado": resolution.is_advance,
            "registrado_por": caller_id,
        }
        for field in OPTIONAL_PAYMENT_FIELDS:
            record[field] = payment.get(field) or None

        try:
            created = self.db.insert_payment(record)
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning(f"Concurrent payment for student {student_id} in {month}/{year} rejected")
                return False, _period_taken(f"{month}/{year}")
            raise

        return True, {
            "id": (created or {}).get("id"),
            "month": month,
            "year": year,
            "is_advance": resolution.is_advance,
        }

    # ==================== Queries ====================

    def student_history(
        self,
        student_id: int,
        from_period: Optional[Tuple[int, int]] = None,
        to_period: Optional[Tuple[int, int]] = None
    ) -> List[Dict[str, Any]]:
        """
        Payments of one student, newest (year, month) first.

        Args:
            from_period: Inclusive lower bound as (month, year)
            to_period: Inclusive upper bound as (month, year)
        """
        if not from_period and not to_period:
            payments = self.db.list_student_payments(student_id)
        else:
            from_year = from_period[1] if from_period else 1900
            to_year = to_period[1] if to_period else 9999
            payments = self.db.list_student_payments_in_years(student_id, from_year, to_year)

            def key(row):
                return (row["anio"], row["mes"])

            if from_period:
                payments = [p for p in payments if key(p) >= (from_period[1], from_period[0])]
            if to_period:
                payments = [p for p in payments if key(p) <= (to_period[1], to_period[0])]

        for payment in payments:
            payment["registrado_por_nombre"] = (payment.pop("usuario", None) or {}).get("nombre_completo")
        return payments

    def list_payments(
        self,
        caller_id: Optional[int],
        caller_role: Optional[str],
        month: Optional[int] = None,
        year: Optional[int] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Payment listing; student-role callers only see their own students"""
        payments = self.db.list_payments(month=month, year=year, limit=limit)

        result = []
        for payment in payments:
            student = payment.pop("alumno", None) or {}
            recorder = payment.pop("usuario", None) or {}
            if caller_role == Role.STUDENT.value and student.get("usuario_id") != caller_id:
                continue
            payment["alumno_nombre"] = student.get("nombre")
            payment["registrado_por_nombre"] = recorder.get("nombre_completo")
            result.append(payment)
        return result

    def students_without_payment(self, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Active students with no payment booked for the current month"""
        today = today or self.today()
        paid = set(self.db.list_student_ids_paid_for(today.month, today.year))
        return [s for s in self.db.list_active_students() if s["id"] not in paid]

    def caller_owns_student(self, caller_id: int, student_id: int) -> bool:
        return student_id in self.db.get_student_ids_for_user(caller_id)

    # ==================== Review ====================

    def update_status(self, payment_id: int, status: str) -> Optional[Dict[str, Any]]:
        """Set the review status of a payment. Returns None if it doesn't exist."""
        if status not in {s.value for s in PaymentStatus}:
            raise ValueError(f"Invalid payment status: {status}")

        if not self.db.get_payment(payment_id):
            return None

        updated = self.db.update_payment_status(payment_id, status)
        logger.info(f"Payment {payment_id} marked {status}")
        return updated

    # ==================== Pricing ====================

    def price_for_student(self, student_id: int, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
        """
        Monthly price for a student.

        The category price (or the default monthly fee) is the base; students
        with no payments yet also pay the enrollment fee.
        """
        student = self.db.get_student(student_id)
        if not student:
            return None

        category = student.get("categoria") or {}
        category_price = category.get("precio_mensualidad")
        base = round(float(category_price or self.config.default_monthly_fee), 2)

        is_new = self.db.count_student_payments(student_id) == 0
        enrollment = self.config.enrollment_fee if is_new else 0

        return {
            "alumno_id": student["id"],
            "nombre": student.get("nombre"),
            "edad": years_between(student.get("fecha_nacimiento"), today or self.today()),
            "categoria_nombre": category.get("nombre"),
            "precio_categoria": category_price,
            "es_alumno_nuevo": is_new,
            "costo_inscripcion": enrollment,
            "precio_base": base,
            "precio_final": round(base + enrollment, 2),
        }

    def price_summary(self, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Monthly category price of every active student, by category then name"""
        today = today or self.today()
        rows = []
        for student in self.db.list_active_students_with_category():
            category = student.get("categoria") or {}
            price = category.get("precio_mensualidad")
            rows.append({
                "id": student["id"],
                "nombre": student.get("nombre"),
                "edad": years_between(student.get("fecha_nacimiento"), today),
                "categoria_nombre": category.get("nombre") or "Sin categoría",
                "precio_final": round(float(price or self.config.default_monthly_fee), 2),
            })
        return sorted(rows, key=lambda r: (r["categoria_nombre"], r["nombre"] or ""))

    # ==================== Settings ====================

    def get_settings(self) -> Dict[str, Any]:
        return self.db.get_payment_config()

    def update_settings(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Write whitelisted config_pagos fields; unknown keys are ignored"""
        allowed = {k: v for k, v in updates.items() if k in PAYMENT_CONFIG_FIELDS}
        if not allowed:
            return self.db.get_payment_config()
        return self.db.update_payment_config(allowed)
