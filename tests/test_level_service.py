"""
Level Service Tests

Tests for age category and belt writes and the in-use delete guard.
"""

import pytest
from unittest.mock import MagicMock


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.get_age_category.return_value = {"id": 2, "nombre": "Junior", "edad_min": 13, "edad_max": 17}
    db.get_belt.return_value = {"id": 3, "nombre": "Verde"}
    return db


@pytest.fixture
def service(mock_db):
    from dojo.services.level_service import LevelService
    return LevelService(mock_db)


class TestCategories:

    def test_create(self, service, mock_db):
        mock_db.insert_age_category.return_value = {"id": 5}

        ok, _ = service.create_category({"nombre": "Cadete", "edad_min": 15, "edad_max": 17, "orden": 99})

        assert ok is True
        mock_db.insert_age_category.assert_called_once_with(
            {"nombre": "Cadete", "edad_min": 15, "edad_max": 17, "orden": 99}
        )

    def test_create_inverted_ages(self, service, mock_db):
        from dojo.services.level_service import INVALID_AGE_RANGE

        ok, result = service.create_category({"nombre": "Mal", "edad_min": 20, "edad_max": 10})

        assert ok is False
        assert result["error"] == INVALID_AGE_RANGE

    def test_update_checks_stored_bounds(self, service, mock_db):
        ok, result = service.update_category(2, {"edad_min": 18})

        assert ok is False
        mock_db.update_age_category.assert_not_called()

    def test_update_price(self, service, mock_db):
        mock_db.update_age_category.return_value = {"id": 2, "precio_mensualidad": 55.0}

        ok, result = service.update_category(2, {"precio_mensualidad": 55.0})

        assert ok is True
        mock_db.update_age_category.assert_called_once_with(2, {"precio_mensualidad": 55.0})

    def test_delete_in_use(self, service, mock_db):
        from dojo.services.level_service import LEVEL_IN_USE

        mock_db.count_students_in_category.return_value = 4

        ok, result = service.delete_category(2)

        assert ok is False
        assert result["error"] == LEVEL_IN_USE
        assert "categoría" in result["message"]
        mock_db.delete_age_category.assert_not_called()

    def test_delete_missing(self, service, mock_db):
        from dojo.services.level_service import CATEGORY_NOT_FOUND

        mock_db.get_age_category.return_value = None

        ok, result = service.delete_category(99)

        assert result["error"] == CATEGORY_NOT_FOUND


class TestBelts:

    def test_delete_in_use(self, service, mock_db):
        mock_db.count_students_with_belt.return_value = 1

        ok, result = service.delete_belt(3)

        assert ok is False
        assert result["message"] == "No se puede eliminar la cinta porque hay alumnos asignados"

    def test_delete(self, service, mock_db):
        mock_db.count_students_with_belt.return_value = 0

        ok, result = service.delete_belt(3)

        assert ok is True
        assert result["nombre"] == "Verde"
        mock_db.delete_belt.assert_called_once_with(3)

    def test_update_missing(self, service, mock_db):
        from dojo.services.level_service import BELT_NOT_FOUND

        mock_db.get_belt.return_value = None

        ok, result = service.update_belt(99, {"nombre": "X"})

        assert result["error"] == BELT_NOT_FOUND
