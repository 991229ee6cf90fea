"""
HILALWATCH Conjunction Search

Geocentric new moon lookups built on the provider's
phase-angle search. Every search is bounded: 40 days for previous/next,
20 days each way for the nearest.

Failures raise ConjunctionSearchError; there is no "unknown conjunction".
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from hilalwatch import constants
from hilalwatch.ephemeris import EphemerisProvider, get_default_ephemeris
from hilalwatch.exceptions import ConjunctionSearchError

__all__ = [
    "utc_midnight",
    "previous_conjunction",
    "next_conjunction",
    "nearest_conjunction",
]


def utc_midnight(day: date) -> datetime:
    """00:00 UTC of a calendar date."""
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def _search(
    angle: float,
    when: datetime,
    window_days: float,
    ephemeris: Optional[EphemerisProvider],
    label: str,
) -> datetime:
    eph = ephemeris or get_default_ephemeris()
    found = eph.find_moon_phase(angle, when, window_days)
    if found is None:
        raise ConjunctionSearchError(
            f"No {label} within {abs(window_days):g} days of {when.isoformat()}",
            search_start=when,
        )
    return found


def previous_conjunction(
    when: datetime,
    ephemeris: Optional[EphemerisProvider] = None,
) -> datetime:
    """Last new moon at or before ``when``."""
    return _search(
        constants.NEW_MOON_PHASE_DEG,
        when,
        -constants.CONJUNCTION_SEARCH_DAYS,
        ephemeris,
        "previous new moon",
    )


def next_conjunction(
    when: datetime,
    ephemeris: Optional[EphemerisProvider] = None,
) -> datetime:
    """First new moon at or after ``when``."""
    return _search(
        constants.NEW_MOON_PHASE_DEG,
        when,
        constants.CONJUNCTION_SEARCH_DAYS,
        ephemeris,
        "next new moon",
    )


def nearest_conjunction(
    when: datetime,
    ephemeris: Optional[EphemerisProvider] = None,
) -> datetime:
    """New moon closest to ``when``, searching 20 days each way.

    Ties go to the following new moon.
    """
    eph = ephemeris or get_default_ephemeris()
    span = constants.NEAREST_CONJUNCTION_SEARCH_DAYS

    before = eph.find_moon_phase(constants.NEW_MOON_PHASE_DEG, when, -span)
    after = eph.find_moon_phase(constants.NEW_MOON_PHASE_DEG, when, span)

    if before is None and after is None:
        raise ConjunctionSearchError(
            f"No new moon within {span:g} days of {when.isoformat()}",
            search_start=when,
        )
    if before is None:
        return after
    if after is None:
        return before
    return before if (when - before) < (after - when) else after
