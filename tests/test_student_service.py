"""
Student Service Tests

Tests for enrollment (preparation estimate, instructor assignment, guardian
links), updates that change the belt or category, listing and the
soft delete / restore / permanent delete lifecycle.
"""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch


TODAY = date(2025, 3, 10)

CATEGORIES = {1: {"id": 1, "nombre": "Junior"}, 2: {"id": 2, "nombre": "Senior"}}
BELTS = {1: {"id": 1, "nombre": "Verde"}, 2: {"id": 2, "nombre": "Negro"}}


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.student_cedula_taken.return_value = False
    db.get_age_category.side_effect = CATEGORIES.get
    db.get_belt.side_effect = BELTS.get
    db.list_active_instructors.return_value = [{"id": 3}, {"id": 4}]
    db.insert_student.side_effect = lambda record: {"id": 50, **record}
    db.list_representative_links.return_value = []
    return db


@pytest.fixture
def student_service(mock_db, mock_config):
    from dojo.services.preparation_service import PreparationEstimator
    from dojo.services.student_service import StudentService

    return StudentService(mock_db, PreparationEstimator.from_config(mock_config))


def new_student(**overrides):
    data = {
        "cedula": "V-1234",
        "nombre": "Lucía Gómez",
        "fecha_nacimiento": "2009-04-02",
        "id_categoria_edad": 1,
        "id_cinta": 1,
    }
    data.update(overrides)
    return data


class TestCreateStudent:

    def test_fills_preparation_and_enrollment(self, student_service, mock_db):
        ok, created = student_service.create_student(new_student(), today=TODAY)

        assert ok is True
        record = mock_db.insert_student.call_args.args[0]
        # Verde (7) x Junior (1.1) rounds to 8
        assert record["tiempo_preparacion_meses"] == 8
        assert record["proximo_examen_fecha"] == "2025-11-10"
        assert record["fecha_inscripcion"] == "2025-03-10"
        assert record["estado"] is True
        assert created["id"] == 50

    def test_assigns_random_instructor(self, student_service, mock_db):
        with patch("dojo.services.student_service.random.choice", side_effect=lambda items: items[-1]):
            student_service.create_student(new_student(), today=TODAY)

        assert mock_db.insert_student.call_args.args[0]["sensei_id"] == 4

    def test_no_instructors(self, student_service, mock_db):
        mock_db.list_active_instructors.return_value = []

        student_service.create_student(new_student(), today=TODAY)

        assert "sensei_id" not in mock_db.insert_student.call_args.args[0]

    def test_links_representatives_once(self, student_service, mock_db):
        student_service.create_student(new_student(id_representante=7, representantes=[8, 7]), today=TODAY)

        mock_db.link_representatives.assert_called_once_with(50, [7, 8])

    def test_without_representatives(self, student_service, mock_db):
        student_service.create_student(new_student(), today=TODAY)

        mock_db.link_representatives.assert_not_called()

    def test_duplicate_cedula(self, student_service, mock_db):
        from dojo.services.student_service import STUDENT_CEDULA_TAKEN

        mock_db.student_cedula_taken.return_value = True

        ok, result = student_service.create_student(new_student(), today=TODAY)

        assert ok is False
        assert result["error"] == STUDENT_CEDULA_TAKEN
        assert result["message"] == "Ya existe un alumno con esta cédula"
        mock_db.insert_student.assert_not_called()

    def test_enrollment_date_is_dojo_local(self, student_service, mock_db):
        with patch("dojo.services.student_service.local_today", return_value=date(2025, 2, 28)) as today:
            student_service.create_student(new_student())

        today.assert_called_once_with("America/Caracas")
        assert mock_db.insert_student.call_args.args[0]["fecha_inscripcion"] == "2025-02-28"


class TestUpdateStudent:

    EXISTING = {"id": 50, "cedula": "V-1234", "nombre": "Lucía", "id_categoria_edad": 2, "id_cinta": 1}

    @pytest.fixture(autouse=True)
    def existing(self, mock_db):
        mock_db.get_student_profile.return_value = dict(self.EXISTING)
        mock_db.update_student.side_effect = lambda student_id, record: {**self.EXISTING, **record}

    def test_belt_change_recomputes_exam(self, student_service, mock_db):
        ok, updated = student_service.update_student(50, {"id_cinta": 2}, today=TODAY)

        assert ok is True
        record = mock_db.update_student.call_args.args[1]
        # Negro (20) x Senior (1.2) is 24, the upper bound
        assert record["tiempo_preparacion_meses"] == 24
        assert record["proximo_examen_fecha"] == "2027-03-10"

    def test_same_level_keeps_exam(self, student_service, mock_db):
        student_service.update_student(50, {"id_cinta": 1, "telefono": "0414"}, today=TODAY)

        record = mock_db.update_student.call_args.args[1]
        assert record == {"id_cinta": 1, "telefono": "0414"}

    def test_duplicate_cedula(self, student_service, mock_db):
        mock_db.student_cedula_taken.return_value = True

        ok, result = student_service.update_student(50, {"cedula": "V-9999"})

        assert ok is False
        assert result["message"] == "Ya existe otro alumno con esta cédula"
        mock_db.student_cedula_taken.assert_called_once_with("V-9999", exclude_id=50)
        mock_db.update_student.assert_not_called()

    def test_unchanged_cedula_not_checked(self, student_service, mock_db):
        student_service.update_student(50, {"cedula": "V-1234"})

        mock_db.student_cedula_taken.assert_not_called()

    def test_replaces_representatives(self, student_service, mock_db):
        student_service.update_student(50, {"id_representante": 9})

        mock_db.unlink_representatives.assert_called_once_with(50)
        mock_db.link_representatives.assert_called_once_with(50, [9])

    def test_clearing_representatives(self, student_service, mock_db):
        student_service.update_student(50, {"id_representante": None})

        mock_db.unlink_representatives.assert_called_once_with(50)
        mock_db.link_representatives.assert_called_once_with(50, [])

    def test_missing_student(self, student_service, mock_db):
        from dojo.services.student_service import STUDENT_NOT_FOUND

        mock_db.get_student_profile.return_value = None

        ok, result = student_service.update_student(99, {"nombre": "X"})

        assert ok is False
        assert result["error"] == STUDENT_NOT_FOUND


class TestListStudents:

    ROW = {
        "id": 50,
        "nombre": "Lucía",
        "categoria": {"nombre": "Junior"},
        "cinta": {"nombre": "Verde", "color_hex": "#00AA00"},
        "sensei": {"nombre_completo": "Kenji Sato"},
    }

    def test_flattens_relations(self, student_service, mock_db):
        mock_db.list_students.return_value = [dict(self.ROW)]
        mock_db.list_representative_links.return_value = [
            {"id_alumno": 50, "representante": {"id": 7, "nombre": "Marta"}},
            {"id_alumno": 50, "representante": {"id": 8, "nombre": "Pedro"}},
            {"id_alumno": 51, "representante": {"id": 9, "nombre": "Otro"}},
        ]

        rows = student_service.list_students(caller_id=1, caller_role="admin")

        student = rows[0]
        assert student["categoria_edad_nombre"] == "Junior"
        assert student["cinta_color"] == "#00AA00"
        assert student["instructor_nombre"] == "Kenji Sato"
        assert student["representantes_ids"] == [7, 8]
        assert student["representantes_nombres"] == "Marta, Pedro"
        assert "categoria" not in student
        mock_db.list_students.assert_called_once_with(user_id=None, active=None)

    def test_student_role_sees_own(self, student_service, mock_db):
        mock_db.list_students.return_value = []

        assert student_service.list_students(caller_id=20, caller_role="usuario") == []
        mock_db.list_students.assert_called_once_with(user_id=20, active=None)
        mock_db.list_representative_links.assert_not_called()

    def test_deleted(self, student_service, mock_db):
        mock_db.list_students.return_value = []

        student_service.list_deleted_students()

        mock_db.list_students.assert_called_once_with(active=False)

    def test_get_missing(self, student_service, mock_db):
        mock_db.get_student_profile.return_value = None

        assert student_service.get_student(99) is None


class TestLifecycle:

    def test_soft_delete_deactivates_account(self, student_service, mock_db):
        mock_db.get_student_profile.return_value = {"id": 50, "estado": True, "usuario_id": 20}

        ok, _ = student_service.deactivate_student(50)

        assert ok is True
        mock_db.update_student.assert_called_once_with(50, {"estado": False})
        mock_db.update_user.assert_called_once_with(20, {"estado": False})

    def test_restore_reactivates_account(self, student_service, mock_db):
        mock_db.get_student_profile.return_value = {"id": 50, "estado": False, "usuario_id": 20}

        student_service.restore_student(50)

        mock_db.update_student.assert_called_once_with(50, {"estado": True})
        mock_db.update_user.assert_called_once_with(20, {"estado": True})

    def test_soft_delete_without_account(self, student_service, mock_db):
        mock_db.get_student_profile.return_value = {"id": 50, "estado": True, "usuario_id": None}

        student_service.deactivate_student(50)

        mock_db.update_user.assert_not_called()

    def test_permanent_delete_requires_soft_delete(self, student_service, mock_db):
        from dojo.services.student_service import STUDENT_STILL_ACTIVE

        mock_db.get_student_profile.return_value = {"id": 50, "estado": True, "usuario_id": 20}

        ok, result = student_service.delete_student_permanently(50)

        assert ok is False
        assert result["error"] == STUDENT_STILL_ACTIVE
        mock_db.delete_student.assert_not_called()

    def test_permanent_delete(self, student_service, mock_db):
        mock_db.get_student_profile.return_value = {"id": 50, "estado": False, "usuario_id": 20, "nombre": "Lucía"}

        ok, result = student_service.delete_student_permanently(50)

        assert ok is True
        assert result["nombre"] == "Lucía"
        mock_db.delete_student.assert_called_once_with(50)
        mock_db.delete_user.assert_called_once_with(20)

    def test_missing_student(self, student_service, mock_db):
        mock_db.get_student_profile.return_value = None

        ok, _ = student_service.restore_student(99)

        assert ok is False
        mock_db.update_student.assert_not_called()


class TestAssignInstructor:

    def test_assigns(self, student_service, mock_db):
        mock_db.get_active_instructor.return_value = {"id": 3}
        mock_db.update_student.return_value = {"id": 50, "sensei_id": 3}

        ok, updated = student_service.assign_instructor(50, 3)

        assert ok is True
        mock_db.update_student.assert_called_once_with(50, {"sensei_id": 3})

    def test_not_an_instructor(self, student_service, mock_db):
        from dojo.services.student_service import INSTRUCTOR_NOT_FOUND

        mock_db.get_active_instructor.return_value = None

        ok, result = student_service.assign_instructor(50, 20)

        assert ok is False
        assert result["error"] == INSTRUCTOR_NOT_FOUND
        assert result["message"] == "Sensei no encontrado o no válido"
