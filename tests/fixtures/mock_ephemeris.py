"""
Mock Ephemeris Provider for Testing.

A deterministic stand-in for the Skyfield provider so engine tests never
need a JPL kernel. Every location lives on local mean time (UTC shifted by
longitude / 15 hours) and every day looks the same:

    06:00  sunrise
    18:00  sunset
    18:00 + moonset_lag_minutes  moonset
    sunset + twilight_hours      Sun reaches -18 degrees (default 19:30)

Positions are constants or callables:

    moon_altitude(observer, when, age_days) -> degrees
    sun_altitude                            -> degrees (constant)
    elongation_deg, distance_au             -> constants

With the default elongation of 0 the crescent width W is 0, so
V = ARCV - 7.1651 and the Odeh zones depend on ARCV alone:

    ARCV >= 12.8151  EV      ARCV >= 9.1651  VP
    ARCV >= 6.2051   VO      otherwise       NV

New moons come from an explicit list; other phase angle crossings are
interpolated linearly between consecutive new moons.
"""

import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Union

from hilalwatch.ephemeris import Body, Direction
from hilalwatch.exceptions import EphemerisError
from hilalwatch.models import Observer

SYNODIC_MONTH_DAYS = 29.530588

# Real geocentric new moons, 2024-2025 (UTC, minute precision)
DEFAULT_NEW_MOONS = [
    datetime(2024, 12, 1, 6, 21, tzinfo=timezone.utc),
    datetime(2024, 12, 30, 22, 27, tzinfo=timezone.utc),
    datetime(2025, 1, 29, 12, 36, tzinfo=timezone.utc),
    datetime(2025, 2, 28, 0, 45, tzinfo=timezone.utc),
    datetime(2025, 3, 29, 10, 58, tzinfo=timezone.utc),
    datetime(2025, 4, 27, 19, 31, tzinfo=timezone.utc),
    datetime(2025, 5, 27, 3, 2, tzinfo=timezone.utc),
    datetime(2025, 6, 25, 10, 31, tzinfo=timezone.utc),
]

# W = 0 makes L(W) = c0
ODEH_C0 = 7.1651
NOT_VISIBLE_MOON_ALTITUDE = 1.0  # ARCV 5 with the default Sun altitude
EASILY_VISIBLE_MOON_ALTITUDE = 10.0  # ARCV 14

MoonAltitude = Union[float, Callable[[Observer, datetime, float], float]]


class MockEphemeris:
    """
    Deterministic EphemerisProvider.

    Args:
        moonset_lag_minutes: Moonset minus sunset, every day
        twilight_hours: Sunset to astronomical twilight end
        moon_altitude: Constant, or callable(observer, when, age_days)
        sun_altitude: Constant Sun altitude at the best time
        elongation_deg: Constant Sun-Moon elongation
        distance_au: Constant lunar distance
        polar_latitude: |lat| at or above which the Sun neither rises nor sets
        no_twilight_latitude: |lat| at or above which the Sun stays above -18
        new_moons: Sorted UTC new moon instants
        fail_latitudes: Latitudes whose queries raise RuntimeError
        fatal_latitudes: Latitudes whose queries raise EphemerisError
    """

    SUNRISE_HOUR = 6.0
    SUNSET_HOUR = 18.0

    def __init__(
        self,
        moonset_lag_minutes: float = 60.0,
        twilight_hours: float = 1.5,
        moon_altitude: MoonAltitude = NOT_VISIBLE_MOON_ALTITUDE,
        sun_altitude: float = -4.0,
        elongation_deg: float = 0.0,
        distance_au: float = 0.00257,
        polar_latitude: Optional[float] = None,
        no_twilight_latitude: Optional[float] = None,
        new_moons: Optional[List[datetime]] = None,
        fail_latitudes: Optional[List[float]] = None,
        fatal_latitudes: Optional[List[float]] = None,
    ):
        self.moonset_lag_minutes = moonset_lag_minutes
        self.twilight_hours = twilight_hours
        self.moon_altitude = moon_altitude
        self.sun_altitude = sun_altitude
        self.elongation_deg = elongation_deg
        self.distance_au = distance_au
        self.polar_latitude = polar_latitude
        self.no_twilight_latitude = no_twilight_latitude
        self.new_moons = sorted(new_moons or DEFAULT_NEW_MOONS)
        self.fail_latitudes = set(fail_latitudes or [])
        self.fatal_latitudes = set(fatal_latitudes or [])

        self.calls: Counter = Counter()
        self._lock = threading.Lock()

    def __getstate__(self):
        state = self.__dict__.copy()
        del state["_lock"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _record(self, name: str) -> None:
        with self._lock:
            self.calls[name] += 1

    def _check_failure(self, observer: Observer) -> None:
        if observer.latitude in self.fatal_latitudes:
            raise EphemerisError(f"Kernel unavailable at latitude {observer.latitude}")
        if observer.latitude in self.fail_latitudes:
            raise RuntimeError(f"Injected failure at latitude {observer.latitude}")

    @staticmethod
    def lmt_offset(observer: Observer) -> timedelta:
        """Local mean time minus UTC."""
        return timedelta(hours=observer.longitude / 15.0)

    def _next_daily(
        self,
        observer: Observer,
        local_hour: float,
        search_start: datetime,
        window_days: float,
    ) -> Optional[datetime]:
        """First instant at or after ``search_start`` when local time is ``local_hour``."""
        offset = self.lmt_offset(observer)
        local_start = search_start + offset
        local_midnight = local_start.replace(hour=0, minute=0, second=0, microsecond=0)
        candidate = local_midnight + timedelta(hours=local_hour)
        while candidate < local_start:
            candidate += timedelta(days=1)
        event = candidate - offset
        if event > search_start + timedelta(days=window_days):
            return None
        return event

    def _sun_up_all_day(self, observer: Observer) -> bool:
        return self.polar_latitude is not None and abs(observer.latitude) >= self.polar_latitude

    def age_days(self, when: datetime) -> float:
        """Days since the last new moon at or before ``when``."""
        previous = [nm for nm in self.new_moons if nm <= when]
        if not previous:
            return SYNODIC_MONTH_DAYS
        return (when - previous[-1]).total_seconds() / 86400.0

    def _phase_crossings(self, angle_degrees: float) -> List[datetime]:
        fraction = (angle_degrees % 360.0) / 360.0
        crossings = []
        for current, following in zip(self.new_moons, self.new_moons[1:]):
            crossings.append(current + (following - current) * fraction)
        if fraction == 0.0:
            crossings.append(self.new_moons[-1])
        return crossings

    # -------------------------------------------------------------------------
    # EphemerisProvider
    # -------------------------------------------------------------------------

    def find_rise_set(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        search_start: datetime,
        window_days: float,
    ) -> Optional[datetime]:
        self._record(f"find_rise_set:{body.value}:{direction.value}")
        self._check_failure(observer)

        if body is Body.SUN:
            if self._sun_up_all_day(observer):
                return None
            hour = self.SUNSET_HOUR if direction is Direction.SET else self.SUNRISE_HOUR
        else:
            base = self.SUNSET_HOUR if direction is Direction.SET else self.SUNRISE_HOUR
            hour = base + self.moonset_lag_minutes / 60.0

        return self._next_daily(observer, hour, search_start, window_days)

    def find_altitude(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        search_start: datetime,
        window_days: float,
        altitude_degrees: float,
    ) -> Optional[datetime]:
        self._record(f"find_altitude:{body.value}:{direction.value}")
        self._check_failure(observer)

        if body is not Body.SUN or altitude_degrees != -18.0:
            raise ValueError(f"Unsupported altitude search: {body} at {altitude_degrees}")
        if self._sun_up_all_day(observer):
            return None
        if (
            self.no_twilight_latitude is not None
            and abs(observer.latitude) >= self.no_twilight_latitude
        ):
            return None

        if direction is Direction.SET:
            hour = self.SUNSET_HOUR + self.twilight_hours
        else:
            hour = self.SUNRISE_HOUR - self.twilight_hours
        return self._next_daily(observer, hour, search_start, window_days)

    def find_moon_phase(
        self,
        angle_degrees: float,
        search_start: datetime,
        window_days: float,
    ) -> Optional[datetime]:
        self._record("find_moon_phase")
        end = search_start + timedelta(days=window_days)

        if window_days >= 0:
            hits = [t for t in self._phase_crossings(angle_degrees) if search_start <= t <= end]
            return hits[0] if hits else None

        hits = [t for t in self._phase_crossings(angle_degrees) if end <= t <= search_start]
        return hits[-1] if hits else None

    def topocentric_altitude(self, body: Body, observer: Observer, when: datetime) -> float:
        self._record(f"topocentric_altitude:{body.value}")
        self._check_failure(observer)

        if body is Body.SUN:
            return self.sun_altitude
        if callable(self.moon_altitude):
            return self.moon_altitude(observer, when, self.age_days(when))
        return self.moon_altitude

    def elongation(self, body: Body, when: datetime) -> float:
        self._record("elongation")
        return self.elongation_deg

    def geocentric_distance(self, body: Body, when: datetime) -> float:
        self._record("geocentric_distance")
        return self.distance_au


class VisibleEastThenEverywhere:
    """Moon altitude rule: visible east of a meridian first, everywhere later.

    Picklable, so a mock using it can be shipped to worker processes.
    """

    def __init__(
        self,
        east_of: float = 20.0,
        east_age: float = 1.0,
        everywhere_age: float = 2.0,
    ):
        self.east_of = east_of
        self.east_age = east_age
        self.everywhere_age = everywhere_age

    def __call__(self, observer: Observer, when: datetime, age_days: float) -> float:
        if age_days >= self.everywhere_age:
            return EASILY_VISIBLE_MOON_ALTITUDE
        if observer.longitude >= self.east_of and age_days >= self.east_age:
            return EASILY_VISIBLE_MOON_ALTITUDE
        return NOT_VISIBLE_MOON_ALTITUDE
