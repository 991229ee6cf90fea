"""
HILALWATCH Data Model

Value types passed between the engine layers. Every type here is a frozen
dataclass: a computation always produces new values and nothing is mutated
after construction, which is what lets grid cells travel between worker
processes and be compared as sets.

Layers:
    Observer                        -> input to every computation
    VisibilityResult, NightWindow   -> per observer/date geometry
    SharedNightResult, GridCell     -> grid scans
    Night1Result, MonthRecord,
    CalendarResult                  -> lunar month assembly
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from hilalwatch import hijri
from hilalwatch.constants import DEGREES_PER_HOUR

__all__ = [
    "normalize_longitude",
    "longitude_timezone",
    "Observer",
    "VisibilityClass",
    "VisibilityResult",
    "NightWindow",
    "SharedNightResult",
    "NightOrder",
    "GridCell",
    "FullGridResult",
    "Night1Method",
    "Night1Result",
    "LunarDay",
    "MonthRecord",
    "CalendarResult",
]


# =============================================================================
# Longitude Helpers
# =============================================================================


def normalize_longitude(lon: float) -> float:
    """Map any longitude into [-180, 180).

    +180 maps to -180 so the antimeridian has a single representation.
    """
    if -180.0 <= lon < 180.0:
        return lon
    normalized = ((lon + 180.0) % 360.0) - 180.0
    if normalized >= 180.0:
        normalized -= 360.0
    return normalized


def longitude_timezone(lon: float) -> int:
    """Whole-hour offset implied by a longitude, halves rounded away from zero.

    ``7.5 -> +1``, ``-7.5 -> -1``, ``7.4 -> 0``. This is never a civil
    timezone; it only anchors "the evening of a calendar date" to a place.
    """
    hours = math.floor(abs(lon) / DEGREES_PER_HOUR + 0.5)
    return -hours if lon < 0 else hours


# =============================================================================
# Observer
# =============================================================================


@dataclass(frozen=True)
class Observer:
    """A point on the Earth's surface at sea level."""

    latitude: float  # Degrees, [-90, 90]
    longitude: float  # Degrees, normalized to [-180, 180) on construction
    name: str = field(default="", compare=False)

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        object.__setattr__(self, "longitude", normalize_longitude(self.longitude))

    @property
    def timezone_hours(self) -> int:
        """Longitude-derived whole-hour offset."""
        return longitude_timezone(self.longitude)

    @property
    def tzinfo(self) -> timezone:
        """Fixed-offset tzinfo for rendering instants as local times."""
        return timezone(timedelta(hours=self.timezone_hours))

    def local_midnight(self, day: date) -> datetime:
        """UTC instant of local midnight starting ``day`` at this longitude."""
        utc_midnight = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        return utc_midnight - timedelta(hours=self.timezone_hours)

    def local_noon(self, day: date) -> datetime:
        """UTC instant of local noon on ``day``; sunset searches start here."""
        return self.local_midnight(day) + timedelta(hours=12)

    def local_time(self, instant: Optional[datetime]) -> Optional[datetime]:
        """Render a UTC instant in the longitude timezone."""
        if instant is None:
            return None
        return instant.astimezone(self.tzinfo)

    def __str__(self) -> str:
        ns = "N" if self.latitude >= 0 else "S"
        ew = "E" if self.longitude >= 0 else "W"
        coords = f"{abs(self.latitude):.1f}°{ns}, {abs(self.longitude):.1f}°{ew}"
        return f"{self.name} ({coords})" if self.name else coords


# =============================================================================
# Visibility
# =============================================================================


class VisibilityClass(Enum):
    """Odeh visibility zones plus the two non-optical outcomes."""

    EASILY_VISIBLE = "EV"
    VISIBLE_PERFECT_CONDITIONS = "VP"
    VISIBLE_OPTICAL_AID = "VO"
    NOT_VISIBLE = "NV"
    IMPOSSIBLE = "I"  # Moonset before sunset, or conjunction after sunset
    UNDETERMINED = "U"  # No sunset/moonset, or geometry failed

    @property
    def zone_name(self) -> str:
        """Human-readable zone name."""
        return _ZONE_NAMES[self]

    @property
    def is_visible(self) -> bool:
        """True for the three zones that count as a sighting."""
        return self in (
            VisibilityClass.EASILY_VISIBLE,
            VisibilityClass.VISIBLE_PERFECT_CONDITIONS,
            VisibilityClass.VISIBLE_OPTICAL_AID,
        )


_ZONE_NAMES = {
    VisibilityClass.EASILY_VISIBLE: "Easily Visible",
    VisibilityClass.VISIBLE_PERFECT_CONDITIONS: "Visible Under Perfect Conditions",
    VisibilityClass.VISIBLE_OPTICAL_AID: "Visible With Optical Aid",
    VisibilityClass.NOT_VISIBLE: "Not Visible",
    VisibilityClass.IMPOSSIBLE: "Impossible",
    VisibilityClass.UNDETERMINED: "Undetermined",
}


@dataclass(frozen=True)
class VisibilityResult:
    """Outcome of the Odeh check for one observer on one local evening.

    Fields after ``classification`` are filled as far as the computation got:
    an Undetermined result may have no sunset, an Impossible one has sunset,
    moonset and lag but no best time.
    """

    observer: Observer
    date: date
    classification: VisibilityClass
    v_value: Optional[float] = None
    sunset: Optional[datetime] = None
    moonset: Optional[datetime] = None
    lag_minutes: Optional[float] = None
    best_time: Optional[datetime] = None
    arcv: Optional[float] = None  # Degrees
    crescent_width_arcmin: Optional[float] = None
    elongation_deg: Optional[float] = None
    moon_semi_diameter_arcmin: Optional[float] = None
    conjunction_time: Optional[datetime] = None
    conjunction_triggered: bool = False
    failure_reason: Optional[str] = None

    @property
    def is_visible(self) -> bool:
        return self.classification.is_visible

    @property
    def zone_name(self) -> str:
        return self.classification.zone_name


# =============================================================================
# Night Windows
# =============================================================================


@dataclass(frozen=True)
class NightWindow:
    """Interval [sunset, astronomical twilight end) of one local night."""

    night_start: datetime
    night_end: datetime
    approximate: bool = False  # Synthetic window; twilight search failed

    def __post_init__(self):
        if self.night_end <= self.night_start:
            raise ValueError(
                f"Night end {self.night_end.isoformat()} does not follow "
                f"start {self.night_start.isoformat()}"
            )

    @property
    def duration_minutes(self) -> float:
        return (self.night_end - self.night_start).total_seconds() / 60.0


@dataclass(frozen=True)
class SharedNightResult:
    """Overlap between two night windows."""

    overlaps: bool
    overlap_minutes: float = 0.0


class NightOrder(Enum):
    """Where a cell's sunset falls relative to a reference night."""

    EARLIER_OR_SAME = "earlier"  # Sunset at or before the reference: east
    LATER = "later"  # Sunset after the reference: west


# =============================================================================
# Grid
# =============================================================================


@dataclass(frozen=True)
class GridCell:
    """One sampled lattice point with its geometry.

    ``shared_night`` and ``night_order`` are set only when the scan compared
    the cell against a reference (a target or an anchor).
    """

    observer: Observer
    visibility: Optional[VisibilityResult]
    night_window: Optional[NightWindow]
    shared_night: Optional[SharedNightResult] = None
    night_order: Optional[NightOrder] = None

    @property
    def latitude(self) -> float:
        return self.observer.latitude

    @property
    def longitude(self) -> float:
        return self.observer.longitude

    @property
    def is_visible(self) -> bool:
        return self.visibility is not None and self.visibility.is_visible


@dataclass(frozen=True)
class FullGridResult:
    """Every lattice cell for one date, plus optional anchor comparison."""

    date: date
    cells: tuple[GridCell, ...]
    conjunction_time: Optional[datetime] = None
    previous_conjunction: Optional[datetime] = None
    next_conjunction: Optional[datetime] = None
    anchor_cell: Optional[GridCell] = None
    anchor_window: Optional[NightWindow] = None
    max_shared_latitude: Optional[float] = None
    max_shared_count: int = 0

    @property
    def earlier_cells(self) -> tuple[GridCell, ...]:
        """Cells sharing the anchor's night whose sunset is at or before it."""
        return tuple(
            c for c in self.cells if c.night_order is NightOrder.EARLIER_OR_SAME
        )

    @property
    def later_cells(self) -> tuple[GridCell, ...]:
        """Cells sharing the anchor's night whose sunset is after it."""
        return tuple(c for c in self.cells if c.night_order is NightOrder.LATER)


# =============================================================================
# Lunar Months
# =============================================================================


class Night1Method(Enum):
    """How the first night of a month was established."""

    DIRECT = "direct"
    SHARED_NIGHT = "shared_night"


@dataclass(frozen=True)
class Night1Result:
    """First night of one lunar month for one location."""

    date: date
    method: Night1Method
    inherited_from_cells: tuple[GridCell, ...] = ()
    classification: Optional[VisibilityClass] = None  # Direct sightings only


@dataclass(frozen=True)
class LunarDay:
    """One night of a lunar month and the Gregorian date it falls on."""

    night_number: int  # 1-based
    date: date


@dataclass(frozen=True)
class MonthRecord:
    """One assembled lunar month."""

    month_name: str
    conjunction_date: datetime
    night1: Night1Result
    next_conjunction_date: datetime
    days: tuple[LunarDay, ...]

    @property
    def length(self) -> int:
        return len(self.days)

    @property
    def first_day(self) -> Optional[LunarDay]:
        return self.days[0] if self.days else None

    @property
    def last_day(self) -> Optional[LunarDay]:
        return self.days[-1] if self.days else None

    @property
    def hijri_year(self) -> int:
        """Tabular Hijri year, read on the tenth night (the last one if shorter)."""
        if not self.days:
            return hijri.hijri_year(self.night1.date)
        return hijri.hijri_year(self.days[min(9, len(self.days) - 1)].date)


@dataclass(frozen=True)
class CalendarResult:
    """Lunar months for one location, owned by the caller that asked."""

    location: Observer
    months: tuple[MonthRecord, ...]
    generated_at: datetime
