"""
HILALWATCH Ephemeris Service
Skyfield-based Sun and Moon Geometry

This module implements the engine's EphemerisProvider protocol:
- Sunrise/sunset and moonrise/moonset searches
- Sun altitude crossings (astronomical twilight)
- Airless topocentric altitudes
- Geocentric Sun-Moon elongation and lunar distance
- Lunar phase-angle searches (new moon, full moon)

Uses the Skyfield library with a JPL DE-series kernel (de421.bsp by default).
The kernel is loaded lazily on first query. Only the configuration is
pickled, so each worker process loads its own copy.

Usage:
    from services.ephemeris.skyfield_service import SkyfieldEphemeris
    from hilalwatch.ephemeris import Body, Direction

    eph = SkyfieldEphemeris()
    sunset = eph.find_rise_set(Body.SUN, observer, Direction.SET, noon, 1.0)
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import numpy as np

from hilalwatch.config import EphemerisConfig
from hilalwatch.ephemeris import Body, Direction
from hilalwatch.exceptions import EphemerisError
from hilalwatch.logging_config import get_logger
from hilalwatch.models import Observer

try:
    from skyfield import almanac
    from skyfield.api import Loader, load, wgs84
    from skyfield.almanac import find_discrete
    SKYFIELD_AVAILABLE = True
except ImportError:
    SKYFIELD_AVAILABLE = False

__all__ = [
    "SkyfieldEphemeris",
    "SKYFIELD_AVAILABLE",
]

logger = get_logger(__name__)

# Lunar phase angle changes by 180 degrees in ~14.8 days
PHASE_STEP_DAYS = 7.0


class SkyfieldEphemeris:
    """
    Skyfield-backed ephemeris provider for HILALWATCH.

    Rise and set use the standard almanac horizons: the Sun's upper limb
    with refraction (-0.8333 deg) and, for the Moon, Skyfield's own default
    (upper limb with refraction, from the Moon's topocentric altitude).
    Altitudes are airless.
    """

    # Body name mappings for Skyfield
    BODY_NAMES = {
        Body.SUN: "sun",
        Body.MOON: "moon",
    }

    # Rise/set horizon per body (degrees); None selects Skyfield's default
    HORIZON_DEGREES = {
        Body.SUN: -0.8333,
        Body.MOON: None,
    }

    def __init__(self, config: Optional[EphemerisConfig] = None):
        """
        Initialize ephemeris service.

        Args:
            config: Kernel selection (defaults to de421.bsp in Skyfield's
                default directory)
        """
        self.config = config or EphemerisConfig()
        self._ts = None
        self._eph = None
        self._earth = None
        self._initialized = False

    def __getstate__(self):
        return {"config": self.config}

    def __setstate__(self, state):
        self.__init__(state["config"])

    def initialize(self):
        """Load ephemeris data (can be slow on first run)."""
        if not SKYFIELD_AVAILABLE:
            raise EphemerisError("Skyfield library not available")

        if self.config.data_dir:
            data_dir = Path(self.config.data_dir).expanduser()
            data_dir.mkdir(parents=True, exist_ok=True)
            loader = Loader(str(data_dir))
        else:
            loader = load

        try:
            self._ts = loader.timescale()
            # Downloads the kernel if not cached
            self._eph = loader(self.config.kernel)
        except (OSError, ValueError) as e:
            raise EphemerisError(
                f"Cannot load ephemeris kernel {self.config.kernel}: {e}"
            ) from e

        self._earth = self._eph["earth"]
        self._initialized = True
        logger.info(f"Ephemeris kernel {self.config.kernel} loaded")

    def _ensure_initialized(self):
        """Ensure service is initialized."""
        if not self._initialized:
            self.initialize()

    def _get_time(self, dt: datetime):
        """Get Skyfield time object."""
        if dt.tzinfo is None:
            # Assume UTC if no timezone
            dt = dt.replace(tzinfo=timezone.utc)
        return self._ts.from_datetime(dt)

    def _site(self, observer: Observer):
        """Observer vector at sea level, relative to the solar system barycentre."""
        return self._earth + wgs84.latlon(observer.latitude, observer.longitude)

    # =========================================================================
    # HORIZON SEARCHES
    # =========================================================================

    def _find_crossing(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        search_start: datetime,
        window_days: float,
        horizon_degrees: Optional[float],
    ) -> Optional[datetime]:
        """First true crossing of ``horizon_degrees`` inside the window."""
        self._ensure_initialized()
        t0 = self._get_time(search_start)
        t1 = self._get_time(search_start + timedelta(days=window_days))

        finder = almanac.find_risings if direction is Direction.RISE else almanac.find_settings
        times, crossed = finder(
            self._site(observer),
            self._eph[self.BODY_NAMES[body]],
            t0,
            t1,
            horizon_degrees=horizon_degrees,
        )

        # A False flag marks a grazing extremum that never reached the horizon
        for t, real in zip(times, crossed):
            if real:
                return t.utc_datetime()
        return None

    def find_rise_set(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        search_start: datetime,
        window_days: float,
    ) -> Optional[datetime]:
        """
        Find the first rise or set of a body.

        Args:
            body: Sun or Moon
            observer: Sea-level observer
            direction: RISE or SET
            search_start: Start of the search (UTC)
            window_days: Search span in days

        Returns:
            Event time (UTC) or None if there is none in the window
        """
        return self._find_crossing(
            body,
            observer,
            direction,
            search_start,
            window_days,
            self.HORIZON_DEGREES[body],
        )

    def find_altitude(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        search_start: datetime,
        window_days: float,
        altitude_degrees: float,
    ) -> Optional[datetime]:
        """Find when a body crosses an altitude, e.g. the Sun at -18 deg."""
        return self._find_crossing(
            body, observer, direction, search_start, window_days, altitude_degrees
        )

    # =========================================================================
    # POSITIONS
    # =========================================================================

    def topocentric_altitude(
        self,
        body: Body,
        observer: Observer,
        when: datetime,
    ) -> float:
        """Airless altitude of a body in degrees."""
        self._ensure_initialized()
        t = self._get_time(when)

        target = self._eph[self.BODY_NAMES[body]]
        apparent = self._site(observer).at(t).observe(target).apparent()

        # No temperature/pressure: no refraction
        alt, _, _ = apparent.altaz()
        return alt.degrees

    def elongation(self, body: Body, when: datetime) -> float:
        """Geocentric angular separation between a body and the Sun (degrees)."""
        self._ensure_initialized()
        t = self._get_time(when)

        e = self._earth.at(t)
        sun = e.observe(self._eph["sun"]).apparent()
        target = e.observe(self._eph[self.BODY_NAMES[body]]).apparent()

        return target.separation_from(sun).degrees

    def geocentric_distance(self, body: Body, when: datetime) -> float:
        """Distance from the Earth's centre in AU."""
        self._ensure_initialized()
        t = self._get_time(when)

        target = self._eph[self.BODY_NAMES[body]]
        return self._earth.at(t).observe(target).apparent().distance().au

    # =========================================================================
    # LUNAR PHASE
    # =========================================================================

    def find_moon_phase(
        self,
        angle_degrees: float,
        search_start: datetime,
        window_days: float,
    ) -> Optional[datetime]:
        """
        Find when the Moon's ecliptic phase angle reaches ``angle_degrees``.

        0 is new moon (conjunction), 180 full moon. A negative window searches
        backwards and returns the crossing nearest ``search_start``.

        Returns:
            Crossing time (UTC) or None if none lies inside the window
        """
        self._ensure_initialized()
        end = search_start + timedelta(days=window_days)
        t0 = self._get_time(min(search_start, end))
        t1 = self._get_time(max(search_start, end))

        eph = self._eph

        def phase_half(t):
            # 0 for the half-cycle starting at the target angle, 1 otherwise
            offset = (almanac.moon_phase(eph, t).degrees - angle_degrees) % 360.0
            return (np.asarray(offset) // 180.0).astype(int)

        phase_half.step_days = PHASE_STEP_DAYS

        times, values = find_discrete(t0, t1, phase_half)
        crossings = [t.utc_datetime() for t, v in zip(times, values) if v == 0]

        if not crossings:
            return None
        return crossings[-1] if window_days < 0 else crossings[0]
