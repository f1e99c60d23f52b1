"""
Exam preparation estimator.

Estimates how many months a student needs before the next belt exam from the
current belt (base months) and the age category (multiplier). Both tables
come from the `preparation` section of the dojo configuration.
"""

import calendar
import logging
import math
from datetime import date
from typing import Any, Dict, Optional

from dojo.utils.clock import local_today

logger = logging.getLogger(__name__)


def add_months(start: date, months: int) -> date:
    """Same day `months` later, clamped to the last day of the target month"""
    index = start.month - 1 + months
    year = start.year + index // 12
    month = index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class PreparationEstimator:
    """Belt/category based preparation time"""

    def __init__(
        self,
        belt_base_months: Dict[str, float],
        category_multipliers: Dict[str, float],
        default_belt_months: int = 6,
        default_belt: str = "Blanco",
        default_category: str = "Senior",
        min_months: int = 3,
        max_months: int = 24,
        timezone: str = "UTC"
    ):
        self.belt_base_months = belt_base_months
        self.category_multipliers = category_multipliers
        self.default_belt_months = default_belt_months
        self.default_belt = default_belt
        self.default_category = default_category
        self.min_months = min_months
        self.max_months = max_months
        self.timezone = timezone

    @classmethod
    def from_config(cls, config) -> "PreparationEstimator":
        return cls(
            belt_base_months=config.belt_base_months,
            category_multipliers=config.category_multipliers,
            default_belt_months=config.default_belt_months,
            default_belt=config.default_belt,
            default_category=config.default_category,
            min_months=config.min_preparation_months,
            max_months=config.max_preparation_months,
            timezone=config.timezone,
        )

    def months_for(self, belt: Optional[str], category: Optional[str]) -> int:
        """
        Estimated months of preparation.

        Unknown belts use default_belt_months, unknown categories a 1.0
        multiplier. Halves round up.
        """
        base = self.belt_base_months.get(belt or self.default_belt, self.default_belt_months)
        multiplier = self.category_multipliers.get(category or self.default_category, 1.0)
        months = math.floor(float(base) * float(multiplier) + 0.5)
        return max(self.min_months, min(self.max_months, months))

    def estimate(
        self,
        db,
        category_id: Optional[int],
        belt_id: Optional[int],
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Look up the category and belt names and estimate the next exam.

        Falls back to default_belt_months if the lookups fail.
        """
        today = today or local_today(self.timezone)
        category = self.default_category
        belt = self.default_belt

        try:
            if category_id:
                row = db.get_age_category(category_id)
                if row:
                    category = row["nombre"]
            if belt_id:
                row = db.get_belt(belt_id)
                if row:
                    belt = row["nombre"]
            months = self.months_for(belt, category)
        except Exception as e:
            logger.error(f"Preparation estimate failed for category={category_id} belt={belt_id}: {e}")
            months = self.default_belt_months

        return {
            "categoria": category,
            "cinta": belt,
            "meses_preparacion": months,
            "proximo_examen": add_months(today, months).isoformat(),
        }
