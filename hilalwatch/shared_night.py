"""
HILALWATCH Shared Night

Overlap and ordering of two night windows, and the inheritance rule that
decides whether a sighting at one place may start the month at another.

A place inherits a sighting when its night overlaps the donor's night and
the rule accepts the donor:

    SUNSET_ORDER      donor's sunset is at or before the target's sunset
                      (the crescent was seen no later in the evening)
    OBSERVATION_TIME  donor's best observation time is no later than the
                      end of the target's night
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from hilalwatch.models import (
    NightOrder,
    NightWindow,
    SharedNightResult,
    VisibilityResult,
)

__all__ = [
    "NO_SHARED_NIGHT",
    "shared_night",
    "relative_order",
    "InheritanceRule",
    "accepts_donor",
]

NO_SHARED_NIGHT = SharedNightResult(overlaps=False, overlap_minutes=0.0)


def shared_night(
    window_a: Optional[NightWindow],
    window_b: Optional[NightWindow],
) -> SharedNightResult:
    """Overlap of two windows; symmetric in its arguments."""
    if window_a is None or window_b is None:
        return NO_SHARED_NIGHT

    overlap_start = max(window_a.night_start, window_b.night_start)
    overlap_end = min(window_a.night_end, window_b.night_end)

    if overlap_start >= overlap_end:
        return NO_SHARED_NIGHT

    minutes = (overlap_end - overlap_start).total_seconds() / 60.0
    return SharedNightResult(overlaps=True, overlap_minutes=minutes)


def relative_order(reference: NightWindow, other: NightWindow) -> NightOrder:
    """Whether ``other``'s night starts at/before (east) or after (west) ``reference``."""
    if other.night_start <= reference.night_start:
        return NightOrder.EARLIER_OR_SAME
    return NightOrder.LATER


class InheritanceRule(Enum):
    """Predicate a visible cell must satisfy to donate its sighting."""

    SUNSET_ORDER = "sunset_order"
    OBSERVATION_TIME = "observation_time"

    @property
    def needs_visibility(self) -> bool:
        """True when the rule can only be judged after the criterion ran."""
        return self is InheritanceRule.OBSERVATION_TIME


def accepts_donor(
    rule: InheritanceRule,
    target: NightWindow,
    donor: NightWindow,
    visibility: Optional[VisibilityResult] = None,
) -> bool:
    """
    Apply an inheritance rule to a candidate donor.

    Args:
        rule: Rule in force
        target: Night window of the place looking for a sighting
        donor: Night window of the candidate cell
        visibility: Donor's criterion result; needed by OBSERVATION_TIME

    Returns:
        True if the donor may pass its sighting to the target
    """
    if rule is InheritanceRule.SUNSET_ORDER:
        return target.night_start >= donor.night_start

    if visibility is None:
        # Undecidable before the criterion; the caller re-checks afterwards
        return True
    if visibility.best_time is None:
        return False
    return visibility.best_time <= target.night_end
