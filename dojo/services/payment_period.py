"""
Payment Period Resolution

Decides which billing month a submitted payment belongs to and whether it is
an advance payment. Pure functions only: the caller supplies "today", so the
rules can be exercised against a fixed calendar.

Resolution order (first applicable rule wins):

1. Parse the corresponding-month label for a month name and optional year.
2. Label names a month strictly after the current one: advance, that month.
3. Observations carry an advance marker: advance, the month after the
   current one.
4. Label names a month other than the payment date's month: that month,
   advance only if it is in the future.
5. Otherwise the payment date's month, ordinary.
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import IntEnum
from typing import Dict, Iterable, Optional, Tuple


class Month(IntEnum):
    JANUARY = 1
    FEBRUARY = 2
    MARCH = 3
    APRIL = 4
    MAY = 5
    JUNE = 6
    JULY = 7
    AUGUST = 8
    SEPTEMBER = 9
    OCTOBER = 10
    NOVEMBER = 11
    DECEMBER = 12


SPANISH_MONTHS: Dict[str, Month] = {
    "enero": Month.JANUARY,
    "febrero": Month.FEBRUARY,
    "marzo": Month.MARCH,
    "abril": Month.APRIL,
    "mayo": Month.MAY,
    "junio": Month.JUNE,
    "julio": Month.JULY,
    "agosto": Month.AUGUST,
    "septiembre": Month.SEPTEMBER,
    "setiembre": Month.SEPTEMBER,
    "octubre": Month.OCTOBER,
    "noviembre": Month.NOVEMBER,
    "diciembre": Month.DECEMBER,
}

ENGLISH_MONTHS: Dict[str, Month] = {
    "january": Month.JANUARY,
    "february": Month.FEBRUARY,
    "march": Month.MARCH,
    "april": Month.APRIL,
    "may": Month.MAY,
    "june": Month.JUNE,
    "july": Month.JULY,
    "august": Month.AUGUST,
    "september": Month.SEPTEMBER,
    "october": Month.OCTOBER,
    "november": Month.NOVEMBER,
    "december": Month.DECEMBER,
}

# Lookup order matters: Spanish is tried before English for every token
MONTH_TABLES: Tuple[Tuple[str, Dict[str, Month]], ...] = (
    ("es", SPANISH_MONTHS),
    ("en", ENGLISH_MONTHS),
)

DEFAULT_ADVANCE_MARKERS = ("Pago adelantado", "Advanced payment")

# Words (letters only) or runs of digits
_TOKEN_RE = re.compile(r"[^\W\d_]+|\d+")


@dataclass(frozen=True)
class ParsedLabel:
    month: Optional[Month]
    year: Optional[int]


@dataclass(frozen=True)
class PeriodResolution:
    month: int
    year: int
    is_advance: bool
    rule: str


def tokenize(label: str):
    return _TOKEN_RE.findall(label.lower())


def lookup_month(token: str) -> Optional[Month]:
    """Month named by a single lowercase token, Spanish table first"""
    for _, table in MONTH_TABLES:
        month = table.get(token)
        if month is not None:
            return month
    return None


def parse_month_label(label: Optional[str]) -> ParsedLabel:
    """
    Extract a month and a year from a free-text label.

    Matching is by whole token, so "Enero-Febrero" yields January (the first
    token naming a month) and "Mayordomo" yields nothing. The year is the
    first standalone 4-digit number.
    """
    if not label:
        return ParsedLabel(month=None, year=None)

    month = None
    year = None
    for token in tokenize(label):
        if token.isdigit():
            if year is None and len(token) == 4:
                year = int(token)
            continue
        if month is None:
            month = lookup_month(token)

    return ParsedLabel(month=month, year=year)


def month_label(month: int, year: int) -> str:
    """Spanish "<month> de <year>" label, e.g. "marzo de 2025" """
    name = next(key for key, value in SPANISH_MONTHS.items() if value == month)
    return f"{name} de {year}"


def next_period(month: int, year: int) -> Tuple[int, int]:
    if month == 12:
        return 1, year + 1
    return month + 1, year


def is_later(period: Tuple[int, int], other: Tuple[int, int]) -> bool:
    """True when (month, year) `period` is strictly after `other`"""
    return (period[1], period[0]) > (other[1], other[0])


def has_advance_marker(text: Optional[str], markers: Iterable[str] = DEFAULT_ADVANCE_MARKERS) -> bool:
    if not text:
        return False
    return any(marker in text for marker in markers)


def resolve_payment_period(
    payment_date: date,
    corresponding_month: Optional[str],
    observations: Optional[str],
    today: date,
    markers: Iterable[str] = DEFAULT_ADVANCE_MARKERS,
) -> PeriodResolution:
    """
    Assign a payment to exactly one (month, year) billing period.

    Args:
        payment_date: Date the payment was made
        corresponding_month: Free-text label, e.g. "Abril 2025"
        observations: Free-text notes, may contain an advance marker
        today: Current calendar date
        markers: Phrases that flag an advance payment in observations

    Returns:
        PeriodResolution with the target period, the advance flag and the
        name of the rule that decided it
    """
    current = (today.month, today.year)
    parsed = parse_month_label(corresponding_month)

    labelled = None
    if parsed.month is not None:
        labelled = (int(parsed.month), parsed.year or today.year)

    if labelled and is_later(labelled, current):
        return PeriodResolution(labelled[0], labelled[1], True, "future_label")

    if has_advance_marker(observations, markers):
        month, year = next_period(*current)
        return PeriodResolution(month, year, True, "advance_marker")

    # Labels after the current period were booked as advances above
    if labelled and labelled != (payment_date.month, payment_date.year):
        return PeriodResolution(labelled[0], labelled[1], False, "label")

    return PeriodResolution(payment_date.month, payment_date.year, False, "payment_date")
