"""
HILALWATCH Shared Constants

Centralizes the physical constants, criterion coefficients and search limits
used by the crescent visibility engine. This module is the single source of
truth for numbers that would otherwise be scattered through the geometry,
night window, grid and calendar modules.

Constants are organized by category:
    - Version and identity
    - Physical constants
    - Odeh (2006) visibility criterion
    - Ephemeris search windows
    - Night window limits
    - Global grid lattice
    - Worker pool sizing
    - Lunar month search
"""

from typing import Final

# =============================================================================
# Version and Identity
# =============================================================================

HILALWATCH_VERSION: Final[str] = "0.1.0"
HILALWATCH_NAME: Final[str] = "HILALWATCH"

# =============================================================================
# Physical Constants
# =============================================================================

MOON_RADIUS_KM: Final[float] = 1737.4
AU_KM: Final[float] = 149597870.7

SECONDS_PER_HOUR: Final[int] = 3600
MINUTES_PER_DAY: Final[int] = 1440

# Longitude-derived timezone: one hour per 15 degrees
DEGREES_PER_HOUR: Final[float] = 15.0

# =============================================================================
# Odeh Criterion (Experimental Astronomy 18, 39-64, 2006)
# =============================================================================

# L(W) = c3*W^3 + c2*W^2 + c1*W + c0, W in arcminutes
ODEH_C3: Final[float] = -0.1018
ODEH_C2: Final[float] = 0.7319
ODEH_C1: Final[float] = -6.3226
ODEH_C0: Final[float] = 7.1651

# V thresholds, inclusive on the higher tier
ODEH_EASILY_VISIBLE_V: Final[float] = 5.65
ODEH_PERFECT_CONDITIONS_V: Final[float] = 2.0
ODEH_OPTICAL_AID_V: Final[float] = -0.96

# Best observation time: sunset + 4/9 of the lag
BEST_TIME_LAG_FRACTION: Final[float] = 4.0 / 9.0

# =============================================================================
# Ephemeris Search Windows
# =============================================================================

SUNSET_SEARCH_DAYS: Final[float] = 1.0
MOONSET_SEARCH_DAYS: Final[float] = 2.0
SUNRISE_SEARCH_DAYS: Final[float] = 1.0
CONJUNCTION_SUNRISE_SEARCH_DAYS: Final[float] = 2.0

# New moon phase angle and search spans (days)
NEW_MOON_PHASE_DEG: Final[float] = 0.0
CONJUNCTION_SEARCH_DAYS: Final[float] = 40.0
NEAREST_CONJUNCTION_SEARCH_DAYS: Final[float] = 20.0

# =============================================================================
# Night Window Limits
# =============================================================================

SUN_ALTITUDE_ASTRONOMICAL_DEG: Final[float] = -18.0
TWILIGHT_SEARCH_HOURS: Final[float] = 12.0
MAX_NIGHT_HOURS: Final[float] = 20.0
SYNTHETIC_NIGHT_HOURS: Final[float] = 12.0

# =============================================================================
# Global Grid Lattice
# =============================================================================

GRID_LAT_STEP_DEG: Final[float] = 2.0
GRID_LON_STEP_DEG: Final[float] = 2.0
GRID_LAT_LIMIT_DEG: Final[float] = 59.0  # Outermost cell centre
GRID_LON_START_DEG: Final[float] = -179.0  # First cell centre
GRID_BAND_LIMIT_DEG: Final[float] = 60.0  # Latitude range split into bands

# Two cells closer than this (degrees) are the same cell
CELL_MATCH_TOLERANCE_DEG: Final[float] = 0.1

# =============================================================================
# Worker Pool Sizing
# =============================================================================

MIN_WORKERS: Final[int] = 4
MAX_WORKERS: Final[int] = 16

# =============================================================================
# Lunar Month Search
# =============================================================================

MAX_NIGHT1_DAYS: Final[int] = 35
DEFAULT_MONTH_COUNT: Final[int] = 12

# Night-1 + 13 days lands near full moon, used to name the month
MONTH_NAME_OFFSET_DAYS: Final[int] = 13

# Share of one month's progress slice given to the day-by-day search
ESTIMATED_DAYS_PER_MONTH: Final[int] = 30

PASS1_PROGRESS_SPAN: Final[float] = 50.0
PASS2_PROGRESS_START: Final[float] = 50.0
PROGRESS_TOTAL: Final[float] = 100.0
