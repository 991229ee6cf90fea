"""
HILALWATCH Progress and Cancellation

Long-running calls take two optional hooks:

    on_progress(percent, total)  called with percent in [0, 100], total = 100
    should_cancel()              polled at day and month granularity

A CancellationToken is itself a valid ``should_cancel``.

Usage:
    token = CancellationToken()
    result = await compute_lunar_calendar(..., should_cancel=token)
    # elsewhere:
    token.cancel()
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from hilalwatch.constants import PROGRESS_TOTAL

__all__ = [
    "ProgressCallback",
    "CancelCheck",
    "CancellationToken",
    "ProgressReporter",
    "is_cancelled",
]

ProgressCallback = Callable[[float, float], None]
CancelCheck = Callable[[], bool]


class CancellationToken:
    """Thread-safe cooperative cancellation flag."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __call__(self) -> bool:
        return self._event.is_set()


def is_cancelled(should_cancel: Optional[CancelCheck]) -> bool:
    """Poll a cancellation hook; None never cancels."""
    return bool(should_cancel and should_cancel())


class ProgressReporter:
    """Forwards progress to a callback, clamped to [0, 100] and never decreasing."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._last = 0.0

    @property
    def last(self) -> float:
        return self._last

    def report(self, percent: float) -> None:
        percent = max(self._last, min(PROGRESS_TOTAL, max(0.0, percent)))
        self._last = percent
        if self._callback is not None:
            self._callback(percent, PROGRESS_TOTAL)
