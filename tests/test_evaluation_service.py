"""
Evaluation Service Tests

Tests for exam listing (levels, exam category, student-role filter),
belt-checked enrollment, the delete guard and result eligibility.
"""

import pytest
from unittest.mock import MagicMock


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.get_evaluation.return_value = {"id": 3, "nombre": "Examen Blanco → Amarillo", "fecha": "2025-06-15"}
    return db


@pytest.fixture
def service(mock_db):
    from dojo.services.evaluation_service import EvaluationService
    return EvaluationService(mock_db)


class TestExamNames:

    @pytest.mark.parametrize("name,belt", [
        ("Examen Blanco → Amarillo", "blanco"),
        ("Exam Green → Blue", "verde"),
        ("Dan Avanzado 2025", "negro"),
        ("Clase abierta", None),
    ])
    def test_required_belt(self, name, belt):
        from dojo.services.evaluation_service import required_belt

        assert required_belt(name) == belt

    @pytest.mark.parametrize("belt_name,ok", [
        ("Blanca", True),
        ("blanco", True),
        ("Amarillo", False),
        (None, False),
    ])
    def test_belt_spellings(self, belt_name, ok):
        from dojo.services.evaluation_service import belt_matches

        assert belt_matches("blanco", belt_name) is ok

    def test_exam_category(self):
        from dojo.services.evaluation_service import exam_category

        assert exam_category("Examen Verde") == "Verde → Azul"
        assert exam_category("Negro 1er Dan") == "Negro → Dan Avanzado"
        assert exam_category("Clase abierta") == "Clase abierta"


class TestListEvaluations:

    def test_levels_and_category(self, service, mock_db):
        mock_db.list_evaluations.return_value = [
            {"id": 3, "nombre": "Examen Blanco → Amarillo"},
            {"id": 4, "nombre": "Clase abierta"},
        ]
        mock_db.list_evaluation_results.return_value = [
            {"id_evaluacion": 3, "alumno": {"categoria": {"nombre": "Infantil"}, "cinta": {"nombre": "Blanco"}}},
            {"id_evaluacion": 3, "alumno": {"categoria": None, "cinta": {"nombre": "Blanco"}}},
        ]

        rows = service.list_evaluations(caller_id=1, caller_role="admin")

        assert rows[0]["niveles"] == "Infantil - Blanco"
        assert rows[0]["categoria_examen"] == "Blanco → Amarillo"
        assert rows[1]["niveles"] is None

    def test_student_sees_enrolled_only(self, service, mock_db):
        mock_db.list_students.return_value = [{"id": 50}]
        mock_db.list_evaluation_ids_for_students.return_value = [3, 3]
        mock_db.list_evaluations.return_value = [{"id": 3, "nombre": "Examen"}]
        mock_db.list_evaluation_results.return_value = []

        rows = service.list_evaluations(caller_id=20, caller_role="usuario")

        mock_db.list_evaluations.assert_called_once_with(ids=[3])
        assert len(rows) == 1

    def test_student_not_enrolled(self, service, mock_db):
        mock_db.list_students.return_value = [{"id": 50}]
        mock_db.list_evaluation_ids_for_students.return_value = []

        assert service.list_evaluations(caller_id=20, caller_role="usuario") == []
        mock_db.list_evaluations.assert_not_called()


class TestCreateEvaluation:

    def test_enrolls_students_with_matching_belt(self, service, mock_db):
        mock_db.insert_evaluation.return_value = {"id": 9}
        mock_db.get_student_profile.side_effect = lambda sid: {
            50: {"id": 50, "cinta": {"nombre": "Blanca"}},
            51: {"id": 51, "cinta": {"nombre": "Verde"}},
        }.get(sid)

        ok, result = service.create_evaluation({
            "nombre": "Examen Blanco → Amarillo",
            "fecha": "2025-06-15",
            "hora": "10:00",
            "alumnos_ids": [50, 51, 52],
        })

        assert ok is True
        assert result["inscritos"] == [50]
        assert result["omitidos"] == [51, 52]
        mock_db.insert_evaluation_result.assert_called_once_with({"id_alumno": 50, "id_evaluacion": 9})

    def test_unrecognised_exam_enrolls_everyone(self, service, mock_db):
        mock_db.insert_evaluation.return_value = {"id": 9}

        ok, result = service.create_evaluation({
            "nombre": "Clase abierta",
            "fecha": "2025-06-15",
            "hora": "10:00",
            "alumnos_ids": [50, 51],
        })

        assert result["inscritos"] == [50, 51]
        mock_db.get_student_profile.assert_not_called()


class TestDeleteEvaluation:

    def test_blocked_by_results(self, service, mock_db):
        from dojo.services.evaluation_service import EVALUATION_HAS_RESULTS

        mock_db.count_evaluation_results.return_value = 1

        ok, result = service.delete_evaluation(3)

        assert ok is False
        assert result["error"] == EVALUATION_HAS_RESULTS
        mock_db.delete_evaluation.assert_not_called()

    def test_delete(self, service, mock_db):
        mock_db.count_evaluation_results.return_value = 0

        ok, _ = service.delete_evaluation(3)

        assert ok is True
        mock_db.delete_evaluation.assert_called_once_with(3)


class TestResults:

    def test_only_active_students_due_by_exam_date(self, service, mock_db):
        mock_db.list_evaluation_results.return_value = [
            {"id": 1, "id_alumno": 50, "notas": "Bien",
             "alumno": {"estado": True, "nombre": "Lucía", "proximo_examen_fecha": None}},
            {"id": 2, "id_alumno": 51, "notas": None,
             "alumno": {"estado": True, "nombre": "Tomás", "proximo_examen_fecha": "2025-06-15"}},
            {"id": 3, "id_alumno": 52, "notas": None,
             "alumno": {"estado": True, "nombre": "Ana", "proximo_examen_fecha": "2025-09-01"}},
            {"id": 4, "id_alumno": 53, "notas": None,
             "alumno": {"estado": False, "nombre": "Luis", "proximo_examen_fecha": None}},
        ]

        ok, results = service.list_results(3)

        assert ok is True
        assert [r["alumno_nombre"] for r in results] == ["Lucía", "Tomás"]

    def test_missing_evaluation(self, service, mock_db):
        from dojo.services.evaluation_service import EVALUATION_NOT_FOUND

        mock_db.get_evaluation.return_value = None

        ok, result = service.list_results(99)

        assert result["error"] == EVALUATION_NOT_FOUND

    def test_add_result(self, service, mock_db):
        mock_db.insert_evaluation_result.return_value = {"id": 7}

        ok, _ = service.add_result(3, 50, "Excelente")

        assert ok is True
        mock_db.insert_evaluation_result.assert_called_once_with(
            {"id_alumno": 50, "id_evaluacion": 3, "notas": "Excelente"}
        )
