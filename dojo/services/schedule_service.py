"""
Schedule Service - Weekly class timetable and holidays

Classes are listed Monday to Sunday, then by start time. Student-role
callers only see the classes of their students' age categories plus the
classes open to every category.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from dojo.constants import Role

logger = logging.getLogger(__name__)

SCHEDULE_NOT_FOUND = "SCHEDULE_NOT_FOUND"
INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
HOLIDAY_NOT_FOUND = "HOLIDAY_NOT_FOUND"
HOLIDAY_DATE_TAKEN = "HOLIDAY_DATE_TAKEN"

WEEKDAY_ORDER = {
    "Lunes": 1,
    "Martes": 2,
    "Miércoles": 3,
    "Jueves": 4,
    "Viernes": 5,
    "Sábado": 6,
    "Domingo": 7,
}
UNKNOWN_WEEKDAY = 99

SCHEDULE_FIELDS = ("dia_semana", "hora_inicio", "hora_fin", "id_categoria_edad", "capacidad_maxima", "activo")

SCHEDULE_MISSING = {"error": SCHEDULE_NOT_FOUND, "message": "Horario no encontrado"}
HOLIDAY_MISSING = {"error": HOLIDAY_NOT_FOUND, "message": "Día festivo no encontrado"}


def schedule_sort_key(schedule: Dict[str, Any]):
    return (
        WEEKDAY_ORDER.get(schedule.get("dia_semana"), UNKNOWN_WEEKDAY),
        str(schedule.get("hora_inicio") or ""),
    )


class ScheduleService:

    def __init__(self, db):
        self.db = db

    # ==================== Classes ====================

    def list_schedules(self, caller_id: Optional[int], caller_role: Optional[str]) -> List[Dict[str, Any]]:
        schedules = self.db.list_schedules()

        if caller_role == Role.STUDENT.value:
            categories = {
                s["id_categoria_edad"]
                for s in self.db.list_students(user_id=caller_id, active=True)
                if s.get("id_categoria_edad")
            }
            schedules = [
                s for s in schedules
                if s.get("id_categoria_edad") is None or s["id_categoria_edad"] in categories
            ]

        result = []
        for schedule in schedules:
            category = schedule.pop("categoria", None) or {}
            schedule["categoria_edad_nombre"] = category.get("nombre")
            result.append(schedule)
        return sorted(result, key=schedule_sort_key)

    def _record(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = {f: data[f] for f in SCHEDULE_FIELDS if f in data}
        if "instructor_id" in data:
            instructor = self.db.get_user_by_id(data["instructor_id"]) if data["instructor_id"] else None
            record["instructor"] = (instructor or {}).get("nombre_completo")
        return record

    def create_schedule(self, data: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        if data["hora_fin"] <= data["hora_inicio"]:
            return False, {"error": INVALID_TIME_RANGE, "message": "La hora de fin debe ser posterior a la de inicio"}

        created = self.db.insert_schedule(self._record(data))
        if not created:
            raise RuntimeError("Schedule insert returned no row")
        return True, created

    def update_schedule(self, schedule_id: int, updates: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_schedule(schedule_id)
        if not existing:
            return False, SCHEDULE_MISSING

        start = updates.get("hora_inicio") or existing.get("hora_inicio")
        end = updates.get("hora_fin") or existing.get("hora_fin")
        if start and end and str(end) <= str(start):
            return False, {"error": INVALID_TIME_RANGE, "message": "La hora de fin debe ser posterior a la de inicio"}

        record = self._record(updates)
        if not record:
            return True, existing
        return True, self.db.update_schedule(schedule_id, record)

    def delete_schedule(self, schedule_id: int) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_schedule(schedule_id)
        if not existing:
            return False, SCHEDULE_MISSING
        self.db.delete_schedule(schedule_id)
        return True, existing

    # ==================== Holidays ====================

    def list_holidays(self) -> List[Dict[str, Any]]:
        return self.db.list_holidays()

    def create_holiday(self, holiday_date: str, description: str) -> Tuple[bool, Dict[str, Any]]:
        if self.db.holiday_date_taken(holiday_date):
            return False, {"error": HOLIDAY_DATE_TAKEN, "message": "Ya existe un día festivo en esa fecha"}

        created = self.db.insert_holiday({"fecha": holiday_date, "descripcion": description})
        if not created:
            raise RuntimeError(f"Holiday insert returned no row for {holiday_date}")
        return True, created

    def update_holiday(self, holiday_id: int, holiday_date: str, description: str) -> Tuple[bool, Dict[str, Any]]:
        if not self.db.get_holiday(holiday_id):
            return False, HOLIDAY_MISSING

        if self.db.holiday_date_taken(holiday_date, exclude_id=holiday_id):
            return False, {"error": HOLIDAY_DATE_TAKEN, "message": "Ya existe otro día festivo en esa fecha"}

        return True, self.db.update_holiday(holiday_id, {"fecha": holiday_date, "descripcion": description})

    def delete_holiday(self, holiday_id: int) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_holiday(holiday_id)
        if not existing:
            return False, HOLIDAY_MISSING
        self.db.delete_holiday(holiday_id)
        return True, existing
