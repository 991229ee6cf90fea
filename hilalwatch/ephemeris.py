"""
HILALWATCH Ephemeris Provider Interface

The engine never talks to an astronomy library directly. Everything it needs
from the sky goes through the small EphemerisProvider protocol defined here:
rise/set and altitude-crossing searches, airless topocentric altitudes,
geocentric elongation and distance, and lunar phase-angle searches.

The production implementation is services.ephemeris.skyfield_service
.SkyfieldEphemeris; tests substitute tests.fixtures.mock_ephemeris.

Usage:
    from hilalwatch.ephemeris import Body, Direction, get_default_ephemeris

    eph = get_default_ephemeris()
    sunset = eph.find_rise_set(Body.SUN, observer, Direction.SET, noon, 1.0)
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hilalwatch.config import EphemerisConfig
    from hilalwatch.models import Observer

__all__ = [
    "Body",
    "Direction",
    "EphemerisProvider",
    "get_default_ephemeris",
    "set_default_ephemeris",
]


class Body(Enum):
    """Bodies the engine asks about."""

    SUN = "sun"
    MOON = "moon"


class Direction(Enum):
    """Crossing direction for rise/set and altitude searches."""

    RISE = "rise"  # Ascending through the horizon or altitude
    SET = "set"  # Descending


@runtime_checkable
class EphemerisProvider(Protocol):
    """Sun and Moon geometry consumed by the engine.

    All instants are timezone-aware UTC datetimes. Searches return None when
    no event occurs inside the window; they never search unboundedly.
    Implementations must be picklable so process workers can rebuild them.
    """

    def find_rise_set(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        search_start: datetime,
        window_days: float,
    ) -> Optional[datetime]:
        """First rise or set of ``body`` after ``search_start``."""
        ...

    def find_altitude(
        self,
        body: Body,
        observer: Observer,
        direction: Direction,
        search_start: datetime,
        window_days: float,
        altitude_degrees: float,
    ) -> Optional[datetime]:
        """First time ``body`` crosses ``altitude_degrees`` in ``direction``."""
        ...

    def find_moon_phase(
        self,
        angle_degrees: float,
        search_start: datetime,
        window_days: float,
    ) -> Optional[datetime]:
        """Moon phase angle crossing; a negative window searches backwards."""
        ...

    def topocentric_altitude(
        self,
        body: Body,
        observer: Observer,
        when: datetime,
    ) -> float:
        """Airless altitude in degrees."""
        ...

    def elongation(self, body: Body, when: datetime) -> float:
        """Geocentric angular separation of ``body`` from the Sun, degrees."""
        ...

    def geocentric_distance(self, body: Body, when: datetime) -> float:
        """Distance from the Earth's centre in AU."""
        ...


# =============================================================================
# Default Provider
# =============================================================================

_default_provider: Optional[EphemerisProvider] = None


def get_default_ephemeris(
    config: Optional[EphemerisConfig] = None,
) -> EphemerisProvider:
    """Get or create the shared Skyfield provider.

    The kernel itself is loaded lazily on first query.
    """
    global _default_provider
    if _default_provider is None:
        from services.ephemeris.skyfield_service import SkyfieldEphemeris

        _default_provider = SkyfieldEphemeris(config)
    return _default_provider


def set_default_ephemeris(provider: Optional[EphemerisProvider]) -> None:
    """Replace the shared provider (None resets to lazy creation)."""
    global _default_provider
    _default_provider = provider
