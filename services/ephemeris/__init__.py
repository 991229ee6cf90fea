"""
HILALWATCH Ephemeris Service

Provides Sun and Moon geometry using the Skyfield library.
"""

from .skyfield_service import (
    SKYFIELD_AVAILABLE,
    SkyfieldEphemeris,
)

__all__ = [
    "SkyfieldEphemeris",
    "SKYFIELD_AVAILABLE",
]
