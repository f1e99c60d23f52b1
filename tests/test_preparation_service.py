"""
Preparation Estimator Tests
"""

import pytest
from datetime import date
from unittest.mock import MagicMock


@pytest.fixture
def estimator(mock_config):
    from dojo.services.preparation_service import PreparationEstimator
    return PreparationEstimator.from_config(mock_config)


class TestAddMonths:

    def test_simple(self):
        from dojo.services.preparation_service import add_months

        assert add_months(date(2025, 3, 10), 4) == date(2025, 7, 10)

    def test_across_year(self):
        from dojo.services.preparation_service import add_months

        assert add_months(date(2025, 11, 1), 3) == date(2026, 2, 1)

    def test_clamps_to_month_end(self):
        from dojo.services.preparation_service import add_months

        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2023, 12, 31), 2) == date(2024, 2, 29)


class TestMonthsFor:
    """Tests for belt base months times category multiplier."""

    def test_multiplies_base_by_category(self, estimator):
        # Verde 7 * Junior 1.1 = 7.7
        assert estimator.months_for("Verde", "Junior") == 8

    def test_half_rounds_up(self, estimator):
        # Amarillo 5 * Junior 1.1 = 5.5
        assert estimator.months_for("Amarillo", "Junior") == 6

    def test_unknown_belt_uses_default(self, estimator):
        # 6 * Infantil 1.0
        assert estimator.months_for("Arcoíris", "Infantil") == 6

    def test_unknown_category_multiplier_is_one(self, estimator):
        assert estimator.months_for("Verde", "Desconocida") == 7

    def test_clamped_to_minimum(self, estimator):
        estimator.belt_base_months["Blanco"] = 1
        assert estimator.months_for("Blanco", "Infantil") == 3

    def test_clamped_to_maximum(self, estimator):
        # Negro 20 * Veterano 1.3 = 26
        assert estimator.months_for("Negro", "Veterano") == 24

    def test_missing_names_use_defaults(self, estimator):
        # Blanco 4 * Senior 1.2 = 4.8
        assert estimator.months_for(None, None) == 5


class TestEstimate:

    def test_looks_up_names(self, estimator):
        db = MagicMock()
        db.get_age_category.return_value = {"id": 3, "nombre": "Junior"}
        db.get_belt.return_value = {"id": 4, "nombre": "Verde"}

        result = estimator.estimate(db, 3, 4, today=date(2025, 3, 10))

        assert result == {
            "categoria": "Junior",
            "cinta": "Verde",
            "meses_preparacion": 8,
            "proximo_examen": "2025-11-10",
        }

    def test_defaults_without_ids(self, estimator):
        db = MagicMock()

        result = estimator.estimate(db, None, None, today=date(2025, 3, 10))

        assert result["categoria"] == "Senior"
        assert result["cinta"] == "Blanco"
        db.get_age_category.assert_not_called()
        db.get_belt.assert_not_called()

    def test_lookup_failure_falls_back(self, estimator):
        db = MagicMock()
        db.get_age_category.side_effect = Exception("timeout")

        result = estimator.estimate(db, 3, 4, today=date(2025, 3, 10))

        assert result["meses_preparacion"] == 6
        assert result["proximo_examen"] == "2025-09-10"

    def test_default_date_is_dojo_local(self, estimator):
        from unittest.mock import patch

        with patch('dojo.services.preparation_service.local_today', return_value=date(2025, 2, 28)) as mock_today:
            result = estimator.estimate(MagicMock(), None, None)

        mock_today.assert_called_once_with("America/Caracas")
        # Blanco 4 * Senior 1.2 = 4.8 -> 5 months
        assert result["proximo_examen"] == "2025-07-28"
