"""
Evaluation Service - Belt exams and their results

An evaluation is a dated exam; students are enrolled through alumnoevaluacion,
which also carries the examiner's notes. Exam names follow the
"<from belt> → <to belt>" pattern and only students wearing the from-belt
are enrolled when the evaluation is created.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from dojo.constants import Role

logger = logging.getLogger(__name__)

EVALUATION_NOT_FOUND = "EVALUATION_NOT_FOUND"
EVALUATION_HAS_RESULTS = "EVALUATION_HAS_RESULTS"

NOT_FOUND = {"error": EVALUATION_NOT_FOUND, "message": "Evaluación no encontrada"}

# Exam name fragment -> belt a candidate must currently wear
EXAM_SOURCE_BELT = {
    "Blanco → Amarillo": "blanco",
    "White → Yellow": "blanco",
    "Amarillo → Naranja": "amarillo",
    "Yellow → Orange": "amarillo",
    "Naranja → Verde": "naranja",
    "Orange → Green": "naranja",
    "Verde → Azul": "verde",
    "Green → Blue": "verde",
    "Azul → Marrón": "azul",
    "Blue → Brown": "azul",
    "Marrón → Negro": "marrón",
    "Brown → Black": "marrón",
    "Dan Avanzado": "negro",
    "Advanced Dan": "negro",
}

BELT_SPELLINGS = {
    "blanco": {"blanco", "blanca"},
    "amarillo": {"amarillo", "amarilla"},
    "naranja": {"naranja"},
    "verde": {"verde"},
    "azul": {"azul"},
    "marrón": {"marrón", "marron"},
    "negro": {"negro", "negra"},
}

# Display category, checked in order against the exam name
EXAM_CATEGORIES = [
    ("Blanco", "Blanco → Amarillo"),
    ("Amarillo", "Amarillo → Naranja"),
    ("Naranja", "Naranja → Verde"),
    ("Verde", "Verde → Azul"),
    ("Azul", "Azul → Marrón"),
    ("Marrón", "Marrón → Negro"),
    ("Dan Avanzado", "Negro → Dan Avanzado"),
    ("Negro", "Negro → Dan Avanzado"),
]


def required_belt(exam_name: str) -> Optional[str]:
    for fragment, belt in EXAM_SOURCE_BELT.items():
        if fragment in exam_name:
            return belt
    return None


def belt_matches(required: str, belt_name: Optional[str]) -> bool:
    return (belt_name or "").lower() in BELT_SPELLINGS.get(required, set())


def exam_category(exam_name: Optional[str]) -> Optional[str]:
    if not exam_name:
        return exam_name
    for fragment, category in EXAM_CATEGORIES:
        if fragment in exam_name:
            return category
    return exam_name


def _embedded_name(row: Dict[str, Any], key: str) -> Optional[str]:
    return (row.get(key) or {}).get("nombre")


class EvaluationService:

    def __init__(self, db):
        self.db = db

    def list_evaluations(self, caller_id: Optional[int], caller_role: Optional[str]) -> List[Dict[str, Any]]:
        """
        Evaluations, most recent first, with the enrolled levels.

        Student-role callers only see evaluations one of their active
        students is enrolled in.
        """
        if caller_role == Role.STUDENT.value:
            student_ids = [s["id"] for s in self.db.list_students(user_id=caller_id, active=True)]
            if not student_ids:
                return []
            ids = list(dict.fromkeys(self.db.list_evaluation_ids_for_students(student_ids)))
            if not ids:
                return []
            evaluations = self.db.list_evaluations(ids=ids)
        else:
            evaluations = self.db.list_evaluations()

        if not evaluations:
            return []

        levels: Dict[int, List[str]] = {}
        for row in self.db.list_evaluation_results([e["id"] for e in evaluations]):
            student = row.get("alumno") or {}
            category = _embedded_name(student, "categoria")
            belt = _embedded_name(student, "cinta")
            if category and belt:
                levels.setdefault(row["id_evaluacion"], []).append(f"{category} - {belt}")

        return [
            {
                **evaluation,
                "niveles": ", ".join(levels.get(evaluation["id"], [])) or None,
                "categoria_examen": exam_category(evaluation.get("nombre")),
            }
            for evaluation in evaluations
        ]

    def get_evaluation(self, evaluation_id: int) -> Optional[Dict[str, Any]]:
        return self.db.get_evaluation(evaluation_id)

    def create_evaluation(self, data: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        """
        Create an evaluation and enroll the given students.

        Students whose current belt doesn't match the exam's starting belt
        are left out and reported in ``omitidos``.
        """
        created = self.db.insert_evaluation({
            "nombre": data["nombre"],
            "fecha": data["fecha"],
            "hora": data["hora"],
            "descripcion": data.get("descripcion"),
        })
        if not created:
            raise RuntimeError(f"Evaluation insert returned no row for {data['nombre']}")

        belt = required_belt(data["nombre"])
        enrolled, skipped = [], []
        for student_id in dict.fromkeys(data.get("alumnos_ids") or []):
            if belt:
                student = self.db.get_student_profile(student_id)
                if not student:
                    skipped.append(student_id)
                    continue
                if not belt_matches(belt, _embedded_name(student, "cinta")):
                    logger.warning(
                        f"Student {student_id} not enrolled in '{data['nombre']}': "
                        f"wears {_embedded_name(student, 'cinta')}, requires {belt}"
                    )
                    skipped.append(student_id)
                    continue
            self.db.insert_evaluation_result({"id_alumno": student_id, "id_evaluacion": created["id"]})
            enrolled.append(student_id)

        return True, {**created, "inscritos": enrolled, "omitidos": skipped}

    def update_evaluation(self, evaluation_id: int, updates: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_evaluation(evaluation_id)
        if not existing:
            return False, NOT_FOUND

        record = {f: updates[f] for f in ("nombre", "fecha", "hora", "descripcion") if f in updates}
        if not record:
            return True, existing
        return True, self.db.update_evaluation(evaluation_id, record)

    def delete_evaluation(self, evaluation_id: int) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_evaluation(evaluation_id)
        if not existing:
            return False, NOT_FOUND

        if self.db.count_evaluation_results(evaluation_id) > 0:
            return False, {
                "error": EVALUATION_HAS_RESULTS,
                "message": "No se puede eliminar la evaluación porque tiene resultados asociados",
            }

        self.db.delete_evaluation(evaluation_id)
        return True, existing

    # ==================== Results ====================

    def list_results(self, evaluation_id: int) -> Tuple[bool, Any]:
        """
        Results of active students who were due for the exam on its date
        (no scheduled exam date, or one on or before the evaluation).
        """
        evaluation = self.db.get_evaluation(evaluation_id)
        if not evaluation:
            return False, NOT_FOUND

        exam_date = str(evaluation["fecha"])
        results = []
        for row in self.db.list_evaluation_results([evaluation_id]):
            student = row.get("alumno") or {}
            if not student.get("estado"):
                continue
            due = student.get("proximo_examen_fecha")
            if due and str(due) > exam_date:
                continue
            results.append({
                "id": row["id"],
                "id_alumno": row["id_alumno"],
                "notas": row.get("notas"),
                "alumno_nombre": student.get("nombre"),
                "alumno_cedula": student.get("cedula"),
                "proximo_examen_fecha": due,
                "tiempo_preparacion_meses": student.get("tiempo_preparacion_meses"),
            })
        return True, results

    def add_result(self, evaluation_id: int, student_id: int, notes: Optional[str]) -> Tuple[bool, Dict[str, Any]]:
        if not self.db.get_evaluation(evaluation_id):
            return False, NOT_FOUND

        created = self.db.insert_evaluation_result({
            "id_alumno": student_id,
            "id_evaluacion": evaluation_id,
            "notas": notes,
        })
        if not created:
            raise RuntimeError(f"Result insert returned no row for evaluation {evaluation_id}")
        return True, created
