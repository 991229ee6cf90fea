"""
HILALWATCH Night Window

The night window of a location on a date is [sunset, astronomical twilight
end): the stretch of one evening during which a crescent sighting there can
count. Two locations whose windows overlap share a night.

Fallbacks at high latitudes:
    - Sun never reaches -18 deg      -> window ends at next sunrise
    - Fallback longer than 20 hours  -> synthetic 12 hour window (approximate)
    - No sunset, or no sunrise       -> None (excluded from shared nights)

Usage:
    from hilalwatch.night_window import compute_night_window

    window = compute_night_window(Observer(-37.8, 145.0), date(2025, 3, 1))
    if window:
        print(window.night_start, window.night_end, window.duration_minutes)
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from hilalwatch import constants
from hilalwatch.config import CalendarConfig
from hilalwatch.ephemeris import Body, Direction, EphemerisProvider, get_default_ephemeris
from hilalwatch.exceptions import EphemerisError
from hilalwatch.logging_config import get_logger
from hilalwatch.models import NightWindow, Observer
from hilalwatch.visibility import find_sunset

__all__ = [
    "compute_night_window",
    "find_twilight_end",
]

logger = get_logger(__name__)


def _next_sunrise(
    observer: Observer,
    after: datetime,
    eph: EphemerisProvider,
) -> Optional[datetime]:
    return eph.find_rise_set(
        Body.SUN, observer, Direction.RISE, after, constants.SUNRISE_SEARCH_DAYS
    )


def find_twilight_end(
    observer: Observer,
    sunset: datetime,
    ephemeris: EphemerisProvider,
    config: Optional[CalendarConfig] = None,
) -> Optional[datetime]:
    """First time after sunset the Sun descends through -18 degrees.

    A crossing found after the next sunrise belongs to the following night
    and is rejected.
    """
    cfg = config or CalendarConfig()

    twilight_end = ephemeris.find_altitude(
        Body.SUN,
        observer,
        Direction.SET,
        sunset,
        cfg.twilight_window_hours / 24.0,
        constants.SUN_ALTITUDE_ASTRONOMICAL_DEG,
    )
    if twilight_end is None:
        return None

    sunrise = _next_sunrise(observer, sunset, ephemeris)
    if sunrise is not None and twilight_end > sunrise:
        return None

    return twilight_end


def compute_night_window(
    observer: Observer,
    day: date,
    conjunction_time: Optional[datetime] = None,
    known_sunset: Optional[datetime] = None,
    *,
    ephemeris: Optional[EphemerisProvider] = None,
    config: Optional[CalendarConfig] = None,
) -> Optional[NightWindow]:
    """
    Compute the night window of an observer on the evening of ``day``.

    Args:
        observer: Sea-level observer
        day: Local calendar date
        conjunction_time: Accepted for call symmetry with classify_visibility;
            the window does not depend on it
        known_sunset: Sunset already computed for this observer and date
        ephemeris: Provider (shared Skyfield provider when None)
        config: Search windows and fallback limits

    Returns:
        NightWindow, or None when there is no night to speak of
    """
    eph = ephemeris or get_default_ephemeris()
    cfg = config or CalendarConfig()

    try:
        return _compute(observer, day, known_sunset, eph, cfg)
    except EphemerisError:
        raise
    except Exception as e:
        logger.debug(f"Night window failed at {observer} on {day}: {e}")
        return None


def _compute(
    observer: Observer,
    day: date,
    known_sunset: Optional[datetime],
    eph: EphemerisProvider,
    cfg: CalendarConfig,
) -> Optional[NightWindow]:
    sunset = known_sunset or find_sunset(observer, day, eph, cfg)
    if sunset is None:
        return None

    twilight_end = find_twilight_end(observer, sunset, eph, cfg)
    if twilight_end is not None:
        return NightWindow(night_start=sunset, night_end=twilight_end)

    # Twilight never ends tonight: fall back to sunrise
    sunrise = _next_sunrise(observer, sunset, eph)
    if sunrise is None:
        return None

    night_hours = (sunrise - sunset).total_seconds() / constants.SECONDS_PER_HOUR
    if night_hours > cfg.max_night_hours:
        logger.warning(
            f"Unusually long night at {observer}: {night_hours:.2f} hours, "
            f"using a {cfg.synthetic_night_hours:g} hour window"
        )
        return NightWindow(
            night_start=sunset,
            night_end=sunset + timedelta(hours=cfg.synthetic_night_hours),
            approximate=True,
        )

    return NightWindow(night_start=sunset, night_end=sunrise)
