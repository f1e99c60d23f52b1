"""
Schedule Service Tests

Tests for the weekly timetable ordering, the student-role category filter,
instructor name resolution and holiday date uniqueness.
"""

import pytest
from unittest.mock import MagicMock


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.get_schedule.return_value = {"id": 1, "hora_inicio": "16:00", "hora_fin": "17:00"}
    db.get_holiday.return_value = {"id": 4, "fecha": "2025-12-25", "descripcion": "Navidad"}
    db.holiday_date_taken.return_value = False
    return db


@pytest.fixture
def service(mock_db):
    from dojo.services.schedule_service import ScheduleService
    return ScheduleService(mock_db)


class TestListSchedules:

    def test_ordered_by_weekday_then_start(self, service, mock_db):
        mock_db.list_schedules.return_value = [
            {"id": 1, "dia_semana": "Viernes", "hora_inicio": "16:00", "categoria": None},
            {"id": 2, "dia_semana": "Lunes", "hora_inicio": "18:00", "categoria": {"nombre": "Junior"}},
            {"id": 3, "dia_semana": "Lunes", "hora_inicio": "09:00", "categoria": None},
            {"id": 4, "dia_semana": "Feriado", "hora_inicio": "08:00", "categoria": None},
        ]

        rows = service.list_schedules(caller_id=1, caller_role="admin")

        assert [r["id"] for r in rows] == [3, 2, 1, 4]
        assert rows[1]["categoria_edad_nombre"] == "Junior"
        assert "categoria" not in rows[1]

    def test_student_sees_own_categories_and_open_classes(self, service, mock_db):
        mock_db.list_students.return_value = [{"id": 50, "id_categoria_edad": 2}]
        mock_db.list_schedules.return_value = [
            {"id": 1, "dia_semana": "Lunes", "hora_inicio": "16:00", "id_categoria_edad": 2},
            {"id": 2, "dia_semana": "Lunes", "hora_inicio": "17:00", "id_categoria_edad": 3},
            {"id": 3, "dia_semana": "Martes", "hora_inicio": "16:00", "id_categoria_edad": None},
        ]

        rows = service.list_schedules(caller_id=20, caller_role="usuario")

        assert [r["id"] for r in rows] == [1, 3]
        mock_db.list_students.assert_called_once_with(user_id=20, active=True)

    def test_student_without_students_sees_open_classes_only(self, service, mock_db):
        mock_db.list_students.return_value = []
        mock_db.list_schedules.return_value = [
            {"id": 1, "dia_semana": "Lunes", "hora_inicio": "16:00", "id_categoria_edad": 2},
            {"id": 3, "dia_semana": "Martes", "hora_inicio": "16:00", "id_categoria_edad": None},
        ]

        rows = service.list_schedules(caller_id=20, caller_role="usuario")

        assert [r["id"] for r in rows] == [3]


class TestWriteSchedule:

    def test_create_resolves_instructor_name(self, service, mock_db):
        mock_db.get_user_by_id.return_value = {"id": 3, "nombre_completo": "Kenji Sato"}
        mock_db.insert_schedule.return_value = {"id": 9}

        ok, _ = service.create_schedule({
            "dia_semana": "Lunes",
            "hora_inicio": "16:00",
            "hora_fin": "17:30",
            "instructor_id": 3,
        })

        assert ok is True
        record = mock_db.insert_schedule.call_args.args[0]
        assert record["instructor"] == "Kenji Sato"
        assert "instructor_id" not in record

    def test_create_rejects_inverted_times(self, service, mock_db):
        from dojo.services.schedule_service import INVALID_TIME_RANGE

        ok, result = service.create_schedule({"dia_semana": "Lunes", "hora_inicio": "18:00", "hora_fin": "17:00"})

        assert ok is False
        assert result["error"] == INVALID_TIME_RANGE
        mock_db.insert_schedule.assert_not_called()

    def test_update_checks_against_stored_times(self, service, mock_db):
        ok, result = service.update_schedule(1, {"hora_fin": "15:00"})

        assert ok is False
        mock_db.update_schedule.assert_not_called()

    def test_update_clears_instructor(self, service, mock_db):
        mock_db.update_schedule.return_value = {"id": 1}

        ok, _ = service.update_schedule(1, {"instructor_id": None, "activo": False})

        assert ok is True
        mock_db.update_schedule.assert_called_once_with(1, {"activo": False, "instructor": None})

    def test_update_missing(self, service, mock_db):
        from dojo.services.schedule_service import SCHEDULE_NOT_FOUND

        mock_db.get_schedule.return_value = None

        ok, result = service.update_schedule(99, {"activo": False})

        assert result["error"] == SCHEDULE_NOT_FOUND

    def test_delete(self, service, mock_db):
        ok, _ = service.delete_schedule(1)

        assert ok is True
        mock_db.delete_schedule.assert_called_once_with(1)


class TestHolidays:

    def test_create(self, service, mock_db):
        mock_db.insert_holiday.return_value = {"id": 5, "fecha": "2025-01-01"}

        ok, _ = service.create_holiday("2025-01-01", "Año nuevo")

        assert ok is True
        mock_db.insert_holiday.assert_called_once_with({"fecha": "2025-01-01", "descripcion": "Año nuevo"})

    def test_create_on_taken_date(self, service, mock_db):
        from dojo.services.schedule_service import HOLIDAY_DATE_TAKEN

        mock_db.holiday_date_taken.return_value = True

        ok, result = service.create_holiday("2025-12-25", "Otra")

        assert ok is False
        assert result["error"] == HOLIDAY_DATE_TAKEN
        mock_db.insert_holiday.assert_not_called()

    def test_update_to_date_of_another_holiday(self, service, mock_db):
        mock_db.holiday_date_taken.return_value = True

        ok, result = service.update_holiday(4, "2025-01-01", "Navidad")

        assert ok is False
        assert result["message"] == "Ya existe otro día festivo en esa fecha"
        mock_db.holiday_date_taken.assert_called_once_with("2025-01-01", exclude_id=4)

    def test_delete_missing(self, service, mock_db):
        from dojo.services.schedule_service import HOLIDAY_NOT_FOUND

        mock_db.get_holiday.return_value = None

        ok, result = service.delete_holiday(99)

        assert ok is False
        assert result["error"] == HOLIDAY_NOT_FOUND
