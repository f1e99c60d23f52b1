"""
Representative Service - Guardians of students

A guardian (representante) is identified by cedula and linked to students
through alumnorepresentante. Guardians with linked students cannot be
deleted.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from dojo.constants import Role

logger = logging.getLogger(__name__)

REPRESENTATIVE_NOT_FOUND = "REPRESENTATIVE_NOT_FOUND"
REPRESENTATIVE_CEDULA_TAKEN = "REPRESENTATIVE_CEDULA_TAKEN"
REPRESENTATIVE_IN_USE = "REPRESENTATIVE_IN_USE"

REPRESENTATIVE_FIELDS = ("cedula", "nombre", "telefono")

NOT_FOUND = {"error": REPRESENTATIVE_NOT_FOUND, "message": "Representante no encontrado"}


class RepresentativeService:

    def __init__(self, db):
        self.db = db

    def list_representatives(self, caller_id: Optional[int], caller_role: Optional[str]) -> List[Dict[str, Any]]:
        """
        Guardians ordered by name with the names of their students.

        Student-role callers only see the guardians of their active students.
        """
        if caller_role == Role.STUDENT.value:
            student_ids = [s["id"] for s in self.db.list_students(user_id=caller_id, active=True)]
            if not student_ids:
                return []
            links = self.db.list_representative_links(student_ids=student_ids)
            ids = list(dict.fromkeys(link["id_representante"] for link in links))
            if not ids:
                return []
            representatives = self.db.list_representatives(ids=ids)
        else:
            representatives = self.db.list_representatives()

        if not representatives:
            return []

        links = self.db.list_representative_links(representative_ids=[r["id"] for r in representatives])
        names: Dict[int, List[str]] = {}
        for link in links:
            student = link.get("alumno") or {}
            if student.get("nombre"):
                names.setdefault(link["id_representante"], []).append(student["nombre"])

        return [
            {**rep, "alumnos_nombres": ", ".join(names.get(rep["id"], [])) or None}
            for rep in representatives
        ]

    def get_representative(self, representative_id: int) -> Optional[Dict[str, Any]]:
        """A guardian with its linked students"""
        representative = self.db.get_representative(representative_id)
        if not representative:
            return None
        links = self.db.list_representative_links(representative_ids=[representative_id])
        representative["alumnos"] = [link["alumno"] for link in links if link.get("alumno")]
        return representative

    def create_representative(self, data: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        if self.db.representative_cedula_taken(data["cedula"]):
            return False, {
                "error": REPRESENTATIVE_CEDULA_TAKEN,
                "message": "Ya existe un representante con esta cédula",
            }

        created = self.db.insert_representative({f: data.get(f) for f in REPRESENTATIVE_FIELDS})
        if not created:
            raise RuntimeError(f"Representative insert returned no row for {data['cedula']}")
        return True, created

    def update_representative(self, representative_id: int, updates: Dict[str, Any]) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_representative(representative_id)
        if not existing:
            return False, NOT_FOUND

        cedula = updates.get("cedula")
        if cedula and cedula != existing.get("cedula") and \
                self.db.representative_cedula_taken(cedula, exclude_id=representative_id):
            return False, {
                "error": REPRESENTATIVE_CEDULA_TAKEN,
                "message": "Ya existe otro representante con esta cédula",
            }

        record = {f: updates[f] for f in REPRESENTATIVE_FIELDS if f in updates}
        if not record:
            return True, existing
        return True, self.db.update_representative(representative_id, record)

    def delete_representative(self, representative_id: int) -> Tuple[bool, Dict[str, Any]]:
        existing = self.db.get_representative(representative_id)
        if not existing:
            return False, NOT_FOUND

        if self.db.count_representative_links(representative_id) > 0:
            return False, {
                "error": REPRESENTATIVE_IN_USE,
                "message": "No se puede eliminar el representante porque tiene alumnos asociados",
            }

        self.db.delete_representative(representative_id)
        logger.info(f"Representative {representative_id} deleted")
        return True, existing
