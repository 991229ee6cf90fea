"""
HILALWATCH Hijri Helpers

Arithmetic (tabular) Gregorian to Hijri conversion through the Julian day
number. Used only to put a name on an astronomically determined month: the
name is taken from a day near mid-month, where the tabular and observed
calendars agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

__all__ = [
    "ISLAMIC_MONTHS",
    "HijriDate",
    "julian_day_number",
    "gregorian_to_hijri",
    "islamic_month_name",
    "hijri_year",
]

ISLAMIC_MONTHS = (
    "Muharram",
    "Safar",
    "Rabi al-Awwal",
    "Rabi al-Thani",
    "Jumada al-Awwal",
    "Jumada al-Thani",
    "Rajab",
    "Shaban",
    "Ramadan",
    "Shawwal",
    "Dhul-Qidah",
    "Dhul-Hijjah",
)

UNKNOWN_MONTH = "Unknown"


@dataclass(frozen=True)
class HijriDate:
    year: int
    month: int  # 1-12
    day: int


def julian_day_number(day: date) -> int:
    """Julian day number of a proleptic Gregorian date."""
    a = (14 - day.month) // 12
    y = day.year + 4800 - a
    m = day.month + 12 * a - 3
    return (
        day.day
        + (153 * m + 2) // 5
        + 365 * y
        + y // 4
        - y // 100
        + y // 400
        - 32045
    )


def gregorian_to_hijri(day: date) -> HijriDate:
    """Tabular Hijri date for a Gregorian date."""
    l = julian_day_number(day) - 1948440 + 10632
    n = (l - 1) // 10631
    l = l - 10631 * n + 354
    j = ((10985 - l) // 5316) * ((50 * l) // 17719) + (l // 5670) * ((43 * l) // 15238)
    l = (
        l
        - ((30 - j) // 15) * ((17719 * j) // 50)
        - (j // 16) * ((15238 * j) // 43)
        + 29
    )
    month = (24 * l) // 709
    return HijriDate(
        year=30 * n + j - 30,
        month=month,
        day=l - (709 * month) // 24,
    )


def islamic_month_name(day: date) -> str:
    """Name of the Hijri month containing ``day``; "Unknown" if out of range."""
    month = gregorian_to_hijri(day).month
    if 1 <= month <= len(ISLAMIC_MONTHS):
        return ISLAMIC_MONTHS[month - 1]
    return UNKNOWN_MONTH


def hijri_year(day: date) -> int:
    return gregorian_to_hijri(day).year
