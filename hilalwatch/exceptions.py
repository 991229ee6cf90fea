"""
HILALWATCH Exception Hierarchy

All errors raised by the engine derive from HilalwatchError so callers can
catch engine failures with a single except clause while still distinguishing
the specific failure.

Per-cell geometry failures are NOT exceptions: the criterion module reports
them as an Undetermined classification and the night window module as None.
Cancellation is not an error either; cancelled requests return None.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

__all__ = [
    "HilalwatchError",
    "ConfigurationError",
    "EphemerisError",
    "ConjunctionSearchError",
    "Night1NotFoundError",
    "WorkerFaultError",
]


class HilalwatchError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.reason = message


class ConfigurationError(HilalwatchError):
    """Configuration file missing, unreadable or invalid."""


class EphemerisError(HilalwatchError):
    """Ephemeris provider unavailable or kernel could not be loaded."""


class ConjunctionSearchError(HilalwatchError):
    """No new moon found within the search window."""

    def __init__(self, message: str, search_start: Optional[datetime] = None):
        super().__init__(message)
        self.search_start = search_start


class Night1NotFoundError(HilalwatchError):
    """Night 1 search exhausted its day limit without a sighting.

    No physically possible lunar month is this long, so this is always a
    hard failure and is never replaced by a guessed date.
    """

    def __init__(self, conjunction: datetime, days_searched: int):
        super().__init__(
            f"Night 1 not found within {days_searched} days of conjunction "
            f"{conjunction.isoformat()}"
        )
        self.conjunction = conjunction
        self.days_searched = days_searched


class WorkerFaultError(HilalwatchError):
    """A grid worker task failed.

    Raised inside the scheduler only to be logged; the faulted slice is
    treated as having found nothing.
    """

    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message)
        self.request_id = request_id
