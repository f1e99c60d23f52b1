"""
Level Service - Age categories and belts

Both tables feed the preparation estimate and the monthly price, so a
category or belt that still has students assigned cannot be deleted.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
BELT_NOT_FOUND = "BELT_NOT_FOUND"
LEVEL_IN_USE = "LEVEL_IN_USE"
INVALID_AGE_RANGE = "INVALID_AGE_RANGE"

CATEGORY_FIELDS = ("nombre", "edad_min", "edad_max", "precio_mensualidad", "orden")
BELT_FIELDS = ("nombre", "nombre_en", "color_hex", "orden", "es_dan", "nivel_dan")

CATEGORY_MISSING = {"error": CATEGORY_NOT_FOUND, "message": "Categoría no encontrada"}
BELT_MISSING = {"error": BELT_NOT_FOUND, "message": "Cinta no encontrada"}
AGE_RANGE = {"error": INVALID_AGE_RANGE, "message": "La edad mínima no puede ser mayor que la máxima"}


class LevelService:

    def __init__(self, db):
        self.db = db

    # ==================== Age Categories ====================

    def list_categories(self) -> List[Dict[str, Any]]:
        return self.db.list_age_categories()

    def get_category(self, category_id: int) -> Optional[Dict[str, Any]]:
        return self.db.get_age_category(category_id)

    def create_category(self, data: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        if data["edad_min"] > data["edad_max"]:
            return False, AGE_RANGE

        created = self.db.insert_age_category({f: data[f] for f in CATEGORY_FIELDS if f in data})
        if not created:
            raise RuntimeError(f"Category insert returned no row for {data['nombre']}")
        return True, created

    def update_category(self, category_id: int, updates: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_age_category(category_id)
        if not existing:
            return False, CATEGORY_MISSING

        low = updates.get("edad_min", existing.get("edad_min"))
        high = updates.get("edad_max", existing.get("edad_max"))
        if low is not None and high is not None and low > high:
            return False, AGE_RANGE

        record = {f: updates[f] for f in CATEGORY_FIELDS if f in updates}
        if not record:
            return True, existing
        return True, self.db.update_age_category(category_id, record)

    def delete_category(self, category_id: int) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_age_category(category_id)
        if not existing:
            return False, CATEGORY_MISSING

        if self.db.count_students_in_category(category_id) > 0:
            return False, {
                "error": LEVEL_IN_USE,
                "message": "No se puede eliminar la categoría porque hay alumnos asignados",
            }

        self.db.delete_age_category(category_id)
        logger.info(f"Age category {category_id} deleted")
        return True, existing

    # ==================== Belts ====================

    def list_belts(self) -> List[Dict[str, Any]]:
        return self.db.list_belts()

    def get_belt(self, belt_id: int) -> Optional[Dict[str, Any]]:
        return self.db.get_belt(belt_id)

    def create_belt(self, data: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        created = self.db.insert_belt({f: data[f] for f in BELT_FIELDS if f in data})
        if not created:
            raise RuntimeError(f"Belt insert returned no row for {data['nombre']}")
        return True, created

    def update_belt(self, belt_id: int, updates: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_belt(belt_id)
        if not existing:
            return False, BELT_MISSING

        record = {f: updates[f] for f in BELT_FIELDS if f in updates}
        if not record:
            return True, existing
        return True, self.db.update_belt(belt_id, record)

    def delete_belt(self, belt_id: int) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_belt(belt_id)
        if not existing:
            return False, BELT_MISSING

        if self.db.count_students_with_belt(belt_id) > 0:
            return False, {
                "error": LEVEL_IN_USE,
                "message": "No se puede eliminar la cinta porque hay alumnos asignados",
            }

        self.db.delete_belt(belt_id)
        logger.info(f"Belt {belt_id} deleted")
        return True, existing
