"""
HILALWATCH - Crescent Visibility and Lunar Month Engine

Predicts whether the young lunar crescent is visible anywhere on Earth on a
given evening (Odeh 2006 criterion) and derives the first night of each
lunar month for a location, using the shared-night rule for places that
did not see the crescent themselves.

Usage:
    import asyncio
    from datetime import date
    from hilalwatch import Observer, classify_visibility, compute_lunar_calendar

    result = classify_visibility(Observer(21.42, 39.83), date(2025, 3, 1))
    calendar = asyncio.run(compute_lunar_calendar(date(2025, 1, 1), Observer(51.5, -0.1)))
"""

from hilalwatch.constants import HILALWATCH_VERSION as __version__
from hilalwatch.exceptions import (
    ConfigurationError,
    ConjunctionSearchError,
    EphemerisError,
    HilalwatchError,
    Night1NotFoundError,
    WorkerFaultError,
)
from hilalwatch.lunar_calendar import compute_lunar_calendar, find_night1
from hilalwatch.models import (
    CalendarResult,
    FullGridResult,
    GridCell,
    LunarDay,
    MonthRecord,
    Night1Method,
    Night1Result,
    NightOrder,
    NightWindow,
    Observer,
    SharedNightResult,
    VisibilityClass,
    VisibilityResult,
)
from hilalwatch.night_window import compute_night_window
from hilalwatch.progress import CancellationToken
from hilalwatch.scheduler import compute_full_grid, search_grid_for_shared_visibility
from hilalwatch.shared_night import InheritanceRule, relative_order, shared_night
from hilalwatch.visibility import classify_visibility

__all__ = [
    "__version__",
    # Operations
    "classify_visibility",
    "compute_night_window",
    "shared_night",
    "relative_order",
    "search_grid_for_shared_visibility",
    "compute_full_grid",
    "find_night1",
    "compute_lunar_calendar",
    # Types
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
    "InheritanceRule",
    "CancellationToken",
    # Errors
    "HilalwatchError",
    "ConfigurationError",
    "EphemerisError",
    "ConjunctionSearchError",
    "Night1NotFoundError",
    "WorkerFaultError",
]
