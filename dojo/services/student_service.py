"""
Student Service - Student records, guardians and instructor assignment

Creating a student fills in the exam preparation estimate and enrollment
date and assigns a random active instructor. Changing the belt or the age
category recomputes the estimate from that day.

Deleting is a soft delete (estado = False) that also deactivates the linked
student account; only soft-deleted students may be removed for good.
"""

import logging
import random
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dojo.constants import Role
from dojo.services.preparation_service import PreparationEstimator
from dojo.utils.clock import local_today

logger = logging.getLogger(__name__)

STUDENT_NOT_FOUND = "STUDENT_NOT_FOUND"
STUDENT_CEDULA_TAKEN = "STUDENT_CEDULA_TAKEN"
STUDENT_STILL_ACTIVE = "STUDENT_STILL_ACTIVE"
INSTRUCTOR_NOT_FOUND = "INSTRUCTOR_NOT_FOUND"

# alumno columns written from a create/update request
STUDENT_FIELDS = (
    "cedula",
    "nombre",
    "fecha_nacimiento",
    "estado",
    "id_categoria_edad",
    "id_cinta",
    "usuario_id",
    "telefono",
    "email",
    "direccion",
    "contacto_emergencia",
    "telefono_emergencia",
    "nombre_padre",
    "telefono_padre",
    "nombre_madre",
    "telefono_madre",
)

NOT_FOUND = {"error": STUDENT_NOT_FOUND, "message": "Alumno no encontrado"}


def flatten_student(row: Dict[str, Any], links: Iterable[Dict[str, Any]] = ()) -> Dict[str, Any]:
    """Replace the embedded category, belt and instructor with flat name columns"""
    student = dict(row)
    category = student.pop("categoria", None) or {}
    belt = student.pop("cinta", None) or {}
    sensei = student.pop("sensei", None) or {}

    representatives = [link["representante"] for link in links if link.get("representante")]

    student["categoria_edad_nombre"] = category.get("nombre")
    student["cinta_nombre"] = belt.get("nombre")
    student["cinta_color"] = belt.get("color_hex")
    student["instructor_nombre"] = sensei.get("nombre_completo")
    student["representantes"] = representatives
    student["representantes_ids"] = [r["id"] for r in representatives]
    student["representantes_nombres"] = ", ".join(r["nombre"] for r in representatives if r.get("nombre")) or None
    return student


def _representative_ids(data: Dict[str, Any]) -> Optional[List[int]]:
    """Guardian ids from either id_representante or representantes; None when neither was sent"""
    if "id_representante" not in data and "representantes" not in data:
        return None
    ids = list(data.get("representantes") or [])
    if data.get("id_representante"):
        ids.insert(0, data["id_representante"])
    return list(dict.fromkeys(ids))


class StudentService:
    """Student roster operations"""

    def __init__(self, db, estimator: PreparationEstimator):
        self.db = db
        self.estimator = estimator

    def _with_representatives(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        links = self.db.list_representative_links(student_ids=[r["id"] for r in rows])
        by_student: Dict[int, List[Dict[str, Any]]] = {}
        for link in links:
            by_student.setdefault(link["id_alumno"], []).append(link)
        return [flatten_student(row, by_student.get(row["id"], [])) for row in rows]

    def _preparation(self, category_id, belt_id, today: date) -> Dict[str, Any]:
        estimate = self.estimator.estimate(self.db, category_id, belt_id, today=today)
        return {
            "tiempo_preparacion_meses": estimate["meses_preparacion"],
            "proximo_examen_fecha": estimate["proximo_examen"],
        }

    # ==================== Queries ====================

    def list_students(
        self,
        caller_id: Optional[int],
        caller_role: Optional[str],
        active: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """Students ordered by name; student-role callers only see their own"""
        user_id = caller_id if caller_role == Role.STUDENT.value else None
        return self._with_representatives(self.db.list_students(user_id=user_id, active=active))

    def list_deleted_students(self) -> List[Dict[str, Any]]:
        return self._with_representatives(self.db.list_students(active=False))

    def get_student(self, student_id: int) -> Optional[Dict[str, Any]]:
        row = self.db.get_student_profile(student_id)
        if not row:
            return None
        return self._with_representatives([row])[0]

    # ==================== Create & Update ====================

    def create_student(
        self,
        data: Dict[str, Any],
        today: Optional[date] = None
    ) -> Tuple[bool, Dict[str, Any]]:
        """
        Register a student.

        Args:
            data: cedula, nombre, fecha_nacimiento and optional alumno columns,
                plus id_representante and/or representantes (guardian ids)
            today: Enrollment date (defaults to the dojo-local date)

        Returns:
            (True, created student) or (False, {"error", "message"})
        """
        today = today or local_today(self.estimator.timezone)

        if self.db.student_cedula_taken(data["cedula"]):
            return False, {"error": STUDENT_CEDULA_TAKEN, "message": "Ya existe un alumno con esta cédula"}

        record = {field: data.get(field) for field in STUDENT_FIELDS}
        record["estado"] = True
        record.update(self._preparation(data.get("id_categoria_edad"), data.get("id_cinta"), today))
        record["fecha_inscripcion"] = today.isoformat()

        instructors = self.db.list_active_instructors()
        if instructors:
            record["sensei_id"] = random.choice(instructors)["id"]

        created = self.db.insert_student(record)
        if not created:
            raise RuntimeError(f"Student insert returned no row for {data['cedula']}")

        representatives = _representative_ids(data)
        if representatives:
            self.db.link_representatives(created["id"], representatives)

        logger.info(
            f"Student {created['id']} enrolled, exam in {record['tiempo_preparacion_meses']} months "
            f"(instructor {record.get('sensei_id')})"
        )
        return True, created

    def update_student(
        self,
        student_id: int,
        updates: Dict[str, Any],
        today: Optional[date] = None
    ) -> Tuple[bool, Dict[str, Any]]:
        """
        Update the given columns of a student.

        A new belt or age category restarts the preparation estimate from
        today. Sending id_representante or representantes replaces the
        guardian links.
        """
        existing = self.db.get_student_profile(student_id)
        if not existing:
            return False, NOT_FOUND

        cedula = updates.get("cedula")
        if cedula and cedula != existing.get("cedula") and self.db.student_cedula_taken(cedula, exclude_id=student_id):
            return False, {"error": STUDENT_CEDULA_TAKEN, "message": "Ya existe otro alumno con esta cédula"}

        record = {field: updates[field] for field in STUDENT_FIELDS if field in updates}

        level_changed = any(
            field in record and record[field] != existing.get(field)
            for field in ("id_categoria_edad", "id_cinta")
        )
        if level_changed:
            today = today or local_today(self.estimator.timezone)
            record.update(self._preparation(
                record.get("id_categoria_edad", existing.get("id_categoria_edad")),
                record.get("id_cinta", existing.get("id_cinta")),
                today,
            ))
            logger.info(f"Student {student_id} changed level, exam moved to {record['proximo_examen_fecha']}")

        updated = self.db.update_student(student_id, record) if record else existing

        representatives = _representative_ids(updates)
        if representatives is not None:
            self.db.unlink_representatives(student_id)
            self.db.link_representatives(student_id, representatives)

        return True, updated

    def assign_instructor(self, student_id: int, instructor_id: int) -> Tuple[bool, Dict[str, Any]]:
        instructor = self.db.get_active_instructor(instructor_id)
        if not instructor:
            return False, {"error": INSTRUCTOR_NOT_FOUND, "message": "Sensei no encontrado o no válido"}

        updated = self.db.update_student(student_id, {"sensei_id": instructor_id})
        if not updated:
            return False, NOT_FOUND
        return True, updated

    # ==================== Delete & Restore ====================

    def _set_active(self, student_id: int, active: bool) -> Tuple[bool, Dict[str, Any]]:
        student = self.db.get_student_profile(student_id)
        if not student:
            return False, NOT_FOUND

        updated = self.db.update_student(student_id, {"estado": active})
        if student.get("usuario_id"):
            self.db.update_user(student["usuario_id"], {"estado": active})
        return True, updated or {**student, "estado": active}

    def deactivate_student(self, student_id: int) -> Tuple[bool, Dict[str, Any]]:
        """Soft delete; the linked student account can no longer sign in"""
        return self._set_active(student_id, False)

    def restore_student(self, student_id: int) -> Tuple[bool, Dict[str, Any]]:
        return self._set_active(student_id, True)

    def delete_student_permanently(self, student_id: int) -> Tuple[bool, Dict[str, Any]]:
        """
        Remove a soft-deleted student with its payments, results and guardian
        links, and its student account.
        """
        student = self.db.get_student_profile(student_id)
        if not student:
            return False, NOT_FOUND

        if student.get("estado"):
            return False, {
                "error": STUDENT_STILL_ACTIVE,
                "message": "Solo se pueden eliminar permanentemente alumnos que ya estén eliminados",
            }

        self.db.delete_student(student_id)
        if student.get("usuario_id"):
            self.db.delete_user(student["usuario_id"])
        return True, {"id": student_id, "nombre": student.get("nombre"), "cedula": student.get("cedula")}
