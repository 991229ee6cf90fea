"""
HILALWATCH Crescent Visibility (Odeh Criterion)

Classifies one observer/date pair: is the young crescent visible on the
evening of that local calendar date?

Pipeline:
    1. Sunset after local noon (longitude timezone)
    2. Moonset after sunset, lag = moonset - sunset
    3. Conjunction rule: a new moon between sunset and the next sunrise
       makes a sighting impossible, whatever the optics say
    4. Best time Tb = sunset + 4/9 lag
    5. ARCV (airless topocentric altitude difference at Tb)
    6. Crescent width W from lunar semi-diameter and elongation
    7. V = ARCV - L(W), mapped to the Odeh zones

Reference: Odeh, M. (2006). New Criterion for Lunar Crescent Visibility.
Experimental Astronomy 18, 39-64.

The classifier never raises for geometry failures; they come back as an
Undetermined result with a reason. Only an unusable ephemeris provider
(EphemerisError) propagates.

Usage:
    from hilalwatch.visibility import classify_visibility

    result = classify_visibility(Observer(21.4, 39.8), date(2025, 3, 1))
    print(result.classification.zone_name, result.v_value)
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Optional

from hilalwatch import constants
from hilalwatch.config import CalendarConfig
from hilalwatch.ephemeris import Body, Direction, EphemerisProvider, get_default_ephemeris
from hilalwatch.exceptions import EphemerisError
from hilalwatch.logging_config import get_logger
from hilalwatch.models import Observer, VisibilityClass, VisibilityResult

__all__ = [
    "classify_visibility",
    "find_sunset",
    "lunar_semi_diameter_arcmin",
    "crescent_width_arcmin",
    "odeh_limit",
    "classify_v_value",
]

logger = get_logger(__name__)


# =============================================================================
# Criterion Formulas
# =============================================================================


def lunar_semi_diameter_arcmin(distance_au: float) -> float:
    """Apparent lunar semi-diameter in arcminutes from geocentric distance."""
    distance_km = distance_au * constants.AU_KM
    return math.degrees(constants.MOON_RADIUS_KM / distance_km) * 60.0


def crescent_width_arcmin(semi_diameter_arcmin: float, elongation_deg: float) -> float:
    """Crescent width W = SD * (1 - cos(elongation))."""
    return semi_diameter_arcmin * (1.0 - math.cos(math.radians(elongation_deg)))


def odeh_limit(width_arcmin: float) -> float:
    """L(W): the ARCV a crescent of width W needs to be on the visibility limit."""
    w = width_arcmin
    return (
        constants.ODEH_C3 * w ** 3
        + constants.ODEH_C2 * w ** 2
        + constants.ODEH_C1 * w
        + constants.ODEH_C0
    )


def classify_v_value(v: float) -> VisibilityClass:
    """Map V to an Odeh zone. Each threshold belongs to the higher zone."""
    if v >= constants.ODEH_EASILY_VISIBLE_V:
        return VisibilityClass.EASILY_VISIBLE
    if v >= constants.ODEH_PERFECT_CONDITIONS_V:
        return VisibilityClass.VISIBLE_PERFECT_CONDITIONS
    if v >= constants.ODEH_OPTICAL_AID_V:
        return VisibilityClass.VISIBLE_OPTICAL_AID
    return VisibilityClass.NOT_VISIBLE


# =============================================================================
# Sunset
# =============================================================================


def find_sunset(
    observer: Observer,
    day: date,
    ephemeris: EphemerisProvider,
    config: Optional[CalendarConfig] = None,
) -> Optional[datetime]:
    """Sunset on the evening of ``day`` as seen at the observer's longitude.

    The search starts at local noon, so a date always means the same local
    evening wherever the observer is.
    """
    cfg = config or CalendarConfig()
    return ephemeris.find_rise_set(
        Body.SUN,
        observer,
        Direction.SET,
        observer.local_noon(day),
        cfg.sunset_window_days,
    )


# =============================================================================
# Classification
# =============================================================================


def classify_visibility(
    observer: Observer,
    day: date,
    conjunction_time: Optional[datetime] = None,
    *,
    ephemeris: Optional[EphemerisProvider] = None,
    config: Optional[CalendarConfig] = None,
) -> VisibilityResult:
    """
    Classify crescent visibility for one observer on one local evening.

    Args:
        observer: Sea-level observer (longitude already normalized)
        day: Local calendar date whose evening is checked
        conjunction_time: New moon instant used by the conjunction rule
        ephemeris: Provider (shared Skyfield provider when None)
        config: Search windows (defaults when None)

    Returns:
        VisibilityResult; Undetermined with a reason on any failure
    """
    eph = ephemeris or get_default_ephemeris()
    cfg = config or CalendarConfig()

    try:
        return _classify(observer, day, conjunction_time, eph, cfg)
    except EphemerisError:
        raise
    except Exception as e:
        logger.debug(f"Visibility failed at {observer} on {day}: {e}")
        return VisibilityResult(
            observer=observer,
            date=day,
            classification=VisibilityClass.UNDETERMINED,
            conjunction_time=conjunction_time,
            failure_reason=f"Calculation error: {e}",
        )


def _classify(
    observer: Observer,
    day: date,
    conjunction_time: Optional[datetime],
    eph: EphemerisProvider,
    cfg: CalendarConfig,
) -> VisibilityResult:
    sunset = find_sunset(observer, day, eph, cfg)
    if sunset is None:
        return VisibilityResult(
            observer=observer,
            date=day,
            classification=VisibilityClass.UNDETERMINED,
            conjunction_time=conjunction_time,
            failure_reason="No sunset found",
        )

    moonset = eph.find_rise_set(
        Body.MOON, observer, Direction.SET, sunset, cfg.moonset_window_days
    )
    if moonset is None:
        return VisibilityResult(
            observer=observer,
            date=day,
            classification=VisibilityClass.UNDETERMINED,
            sunset=sunset,
            conjunction_time=conjunction_time,
            failure_reason="No moonset found",
        )

    lag_minutes = (moonset - sunset).total_seconds() / 60.0
    if lag_minutes <= 0:
        return VisibilityResult(
            observer=observer,
            date=day,
            classification=VisibilityClass.IMPOSSIBLE,
            sunset=sunset,
            moonset=moonset,
            lag_minutes=lag_minutes,
            conjunction_time=conjunction_time,
            failure_reason="Moon sets before or at sunset",
        )

    # Conjunction rule takes precedence over the optical criterion
    if conjunction_time is not None and conjunction_time > sunset:
        next_sunrise = eph.find_rise_set(
            Body.SUN,
            observer,
            Direction.RISE,
            sunset,
            constants.CONJUNCTION_SUNRISE_SEARCH_DAYS,
        )
        if next_sunrise is None or conjunction_time < next_sunrise:
            return VisibilityResult(
                observer=observer,
                date=day,
                classification=VisibilityClass.IMPOSSIBLE,
                sunset=sunset,
                moonset=moonset,
                lag_minutes=lag_minutes,
                conjunction_time=conjunction_time,
                conjunction_triggered=True,
                failure_reason="Conjunction occurs after sunset",
            )

    best_time = sunset + timedelta(
        minutes=lag_minutes * constants.BEST_TIME_LAG_FRACTION
    )

    moon_alt = eph.topocentric_altitude(Body.MOON, observer, best_time)
    sun_alt = eph.topocentric_altitude(Body.SUN, observer, best_time)
    arcv = moon_alt - sun_alt

    elongation = eph.elongation(Body.MOON, best_time)
    semi_diameter = lunar_semi_diameter_arcmin(
        eph.geocentric_distance(Body.MOON, best_time)
    )
    width = crescent_width_arcmin(semi_diameter, elongation)

    v = arcv - odeh_limit(width)
    classification = classify_v_value(v)

    logger.debug(
        f"{observer} {day}: lag={lag_minutes:.1f}min ARCV={arcv:.2f} "
        f"W={width:.3f}' V={v:.2f} -> {classification.value}"
    )

    return VisibilityResult(
        observer=observer,
        date=day,
        classification=classification,
        v_value=v,
        sunset=sunset,
        moonset=moonset,
        lag_minutes=lag_minutes,
        best_time=best_time,
        arcv=arcv,
        crescent_width_arcmin=width,
        elongation_deg=elongation,
        moon_semi_diameter_arcmin=semi_diameter,
        conjunction_time=conjunction_time,
    )
