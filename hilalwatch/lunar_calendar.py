"""
HILALWATCH Lunar Month Assembler

Turns a run of new moons into concrete lunar months for one location.

Night 1 search (per month):
    Starting on the conjunction's UTC calendar date, one day at a time for
    at most 35 days:
        1. Direct check: is the crescent visible at the location itself?
        2. Otherwise, a global scan for cells that saw it on a night shared
           with the location (SharedNight inheritance)
    The first day passing either check is Night 1. Running out of days is
    a hard failure (Night1NotFoundError).

Batch calendar (two passes):
    Pass 1 (0-50%)   walk conjunction to conjunction from the one preceding
                     the start date; find each month's Night 1 and name it
                     from the Hijri month of Night 1 + 13 days
    Pass 2 (50-100%) fill each month with nights, from its Night 1 up to the
                     next month's Night 1 (the last month: up to its next
                     conjunction)

Cancellation is polled per month and per day; a cancelled calendar is None.
One worker pool and one request cache live for the whole calendar request.

Usage:
    from hilalwatch.lunar_calendar import compute_lunar_calendar

    result = await compute_lunar_calendar(
        date(2025, 1, 1),
        Observer(51.5, -0.1, name="London"),
        month_count=12,
        on_progress=lambda pct, total: print(f"{pct:.0f}%"),
    )
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from hilalwatch import constants
from hilalwatch.cache import RequestCache
from hilalwatch.config import HilalwatchConfig
from hilalwatch.conjunction import next_conjunction, previous_conjunction, utc_midnight
from hilalwatch.ephemeris import EphemerisProvider, get_default_ephemeris
from hilalwatch.exceptions import Night1NotFoundError
from hilalwatch.grid import clamp_parallelism
from hilalwatch.hijri import islamic_month_name
from hilalwatch.logging_config import get_logger, log_timing, request_context
from hilalwatch.models import (
    CalendarResult,
    LunarDay,
    MonthRecord,
    Night1Method,
    Night1Result,
    Observer,
)
from hilalwatch.night_window import compute_night_window
from hilalwatch.progress import CancelCheck, ProgressCallback, ProgressReporter, is_cancelled
from hilalwatch.scheduler import (
    ExecutorFactory,
    WorkerPool,
    default_executor_factory,
    search_grid_for_shared_visibility,
)
from hilalwatch.visibility import classify_visibility

__all__ = [
    "find_night1",
    "month_days",
    "compute_lunar_calendar",
]

logger = get_logger(__name__)


@dataclass(frozen=True)
class _MonthPlan:
    """Pass 1 output for one month."""

    month_name: str
    conjunction: datetime
    night1: Night1Result
    next_conjunction: datetime


# =============================================================================
# Night 1
# =============================================================================


async def find_night1(
    conjunction: datetime,
    observer: Observer,
    *,
    ephemeris: Optional[EphemerisProvider] = None,
    config: Optional[HilalwatchConfig] = None,
    pool: Optional[WorkerPool] = None,
    executor_factory: Optional[ExecutorFactory] = None,
    cache: Optional[RequestCache] = None,
    on_day: Optional[Callable[[int], None]] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> Optional[Night1Result]:
    """
    Find the first night of the month that begins with ``conjunction``.

    Args:
        conjunction: New moon opening the month (UTC)
        observer: Location the month is computed for
        ephemeris: Provider (shared Skyfield provider when None)
        config: Engine configuration
        pool: Running worker pool; one is created for this call when None
        executor_factory: Executor constructor for a pool created here
        cache: Request cache (a private one when None)
        on_day: Called with the 0-based day index before each day is checked
        should_cancel: Polled once per day

    Returns:
        Night1Result, or None if cancelled

    Raises:
        Night1NotFoundError: No sighting within the day limit
    """
    cfg = config or HilalwatchConfig()
    eph = ephemeris or get_default_ephemeris(cfg.ephemeris)

    if pool is None:
        factory = executor_factory or default_executor_factory(cfg.search.use_processes)
        async with WorkerPool(clamp_parallelism(None, cfg.search), factory) as own_pool:
            return await find_night1(
                conjunction,
                observer,
                ephemeris=eph,
                config=cfg,
                pool=own_pool,
                cache=cache,
                on_day=on_day,
                should_cancel=should_cancel,
            )

    cache = cache if cache is not None else RequestCache()
    first_day = conjunction.astimezone(timezone.utc).date()
    max_days = cfg.calendar.max_night1_days

    for index in range(max_days):
        if is_cancelled(should_cancel):
            return None

        if on_day is not None:
            on_day(index)
        # One yield per day keeps the coordinator responsive
        await asyncio.sleep(0)

        day = first_day + timedelta(days=index)

        direct = classify_visibility(
            observer, day, conjunction, ephemeris=eph, config=cfg.calendar
        )
        logger.debug(f"Night 1 day {index} ({day}): direct {direct.classification.value}")

        if direct.is_visible:
            logger.info(f"Night 1 on {day} by direct sighting ({direct.classification.value})")
            return Night1Result(
                date=day,
                method=Night1Method.DIRECT,
                classification=direct.classification,
            )

        target = cache.get_or_compute(
            ("night_window", observer, day),
            lambda: compute_night_window(
                observer, day, conjunction, ephemeris=eph, config=cfg.calendar
            ),
        )
        if target is None:
            logger.debug(f"No night window at {observer} on {day}, skipping scan")
            continue

        donors = await search_grid_for_shared_visibility(
            target,
            day,
            ephemeris=eph,
            config=cfg,
            pool=pool,
            cache=cache,
            should_cancel=should_cancel,
        )
        if donors is None:
            return None

        if donors:
            logger.info(f"Night 1 on {day} by shared night ({len(donors)} donor cells)")
            return Night1Result(
                date=day,
                method=Night1Method.SHARED_NIGHT,
                inherited_from_cells=tuple(donors),
            )

    logger.error(f"Night 1 not found within {max_days} days of {conjunction.isoformat()}")
    raise Night1NotFoundError(conjunction, max_days)


# =============================================================================
# Month Days
# =============================================================================


def month_days(
    night1: date,
    boundary: datetime,
    should_cancel: Optional[CancelCheck] = None,
) -> Optional[tuple[LunarDay, ...]]:
    """Nights from ``night1`` while the night's UTC midnight precedes ``boundary``.

    Returns None if cancelled part way.
    """
    days = []
    current = night1
    number = 1
    while utc_midnight(current) < boundary:
        if is_cancelled(should_cancel):
            return None
        days.append(LunarDay(night_number=number, date=current))
        current += timedelta(days=1)
        number += 1
    return tuple(days)


# =============================================================================
# Batch Calendar
# =============================================================================


async def _pass_one(
    start_date: date,
    observer: Observer,
    month_count: int,
    reporter: ProgressReporter,
    should_cancel: Optional[CancelCheck],
    eph: EphemerisProvider,
    cfg: HilalwatchConfig,
    pool: WorkerPool,
    cache: RequestCache,
) -> Optional[list[_MonthPlan]]:
    plans: list[_MonthPlan] = []

    # Begin with the month containing the start date
    conjunction = previous_conjunction(utc_midnight(start_date), eph)
    logger.info(f"Pass 1: starting from conjunction {conjunction.isoformat()}")

    for index in range(month_count):
        if is_cancelled(should_cancel):
            logger.info("Calendar cancelled during pass 1")
            return None

        base = index / month_count * constants.PASS1_PROGRESS_SPAN
        reporter.report(base)

        def day_progress(day_index: int, base: float = base) -> None:
            share = (constants.PASS1_PROGRESS_SPAN / 2) / month_count
            reporter.report(base + day_index / constants.ESTIMATED_DAYS_PER_MONTH * share)

        night1 = await find_night1(
            conjunction,
            observer,
            ephemeris=eph,
            config=cfg,
            pool=pool,
            cache=cache,
            on_day=day_progress,
            should_cancel=should_cancel,
        )
        if night1 is None:
            logger.info("Calendar cancelled during Night 1 search")
            return None

        following = cache.get_or_compute(
            ("next_conjunction", conjunction),
            lambda: next_conjunction(conjunction + timedelta(days=1), eph),
        )

        name = islamic_month_name(
            night1.date + timedelta(days=constants.MONTH_NAME_OFFSET_DAYS)
        )
        plans.append(
            _MonthPlan(
                month_name=name,
                conjunction=conjunction,
                night1=night1,
                next_conjunction=following,
            )
        )
        logger.info(
            f"Pass 1: month {index + 1}/{month_count} ({name}) "
            f"Night 1 {night1.date} via {night1.method.value}"
        )

        await asyncio.sleep(0)
        conjunction = following

    return plans


async def _pass_two(
    plans: list[_MonthPlan],
    reporter: ProgressReporter,
    should_cancel: Optional[CancelCheck],
) -> Optional[list[MonthRecord]]:
    months: list[MonthRecord] = []

    for index, plan in enumerate(plans):
        if is_cancelled(should_cancel):
            logger.info("Calendar cancelled during pass 2")
            return None

        reporter.report(
            constants.PASS2_PROGRESS_START
            + index / len(plans) * (constants.PROGRESS_TOTAL - constants.PASS2_PROGRESS_START)
        )

        if index + 1 < len(plans):
            boundary = utc_midnight(plans[index + 1].night1.date)
        else:
            boundary = plan.next_conjunction

        days = month_days(plan.night1.date, boundary, should_cancel)
        if days is None:
            logger.info("Calendar cancelled during pass 2")
            return None

        months.append(
            MonthRecord(
                month_name=plan.month_name,
                conjunction_date=plan.conjunction,
                night1=plan.night1,
                next_conjunction_date=plan.next_conjunction,
                days=days,
            )
        )
        logger.info(f"Pass 2: month {index + 1} ({plan.month_name}) has {len(days)} nights")

        await asyncio.sleep(0)

    return months


async def compute_lunar_calendar(
    start_date: date,
    observer: Observer,
    month_count: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
    *,
    ephemeris: Optional[EphemerisProvider] = None,
    config: Optional[HilalwatchConfig] = None,
    executor_factory: Optional[ExecutorFactory] = None,
) -> Optional[CalendarResult]:
    """
    Compute consecutive lunar months for a location.

    Args:
        start_date: Any date; the first month is the one containing it
        observer: Location the calendar is computed for
        month_count: Number of months (config default when None)
        on_progress: ``on_progress(percent, 100)`` callback
        should_cancel: Cancellation hook or CancellationToken
        ephemeris: Provider (shared Skyfield provider when None)
        config: Engine configuration
        executor_factory: Executor constructor for the request's worker pool

    Returns:
        CalendarResult, or None if cancelled

    Raises:
        Night1NotFoundError: A month's Night 1 could not be found
        ConjunctionSearchError: A new moon could not be found
    """
    cfg = config or HilalwatchConfig()
    eph = ephemeris or get_default_ephemeris(cfg.ephemeris)
    factory = executor_factory or default_executor_factory(cfg.search.use_processes)
    count = month_count if month_count is not None else cfg.calendar.month_count
    if count < 1:
        raise ValueError(f"month_count must be positive: {count}")

    reporter = ProgressReporter(on_progress)
    size = clamp_parallelism(None, cfg.search)

    with request_context(prefix="cal") as request_id, RequestCache() as cache:
        logger.info(
            f"Calendar {request_id}: {count} months for {observer} from {start_date} "
            f"({size} workers)"
        )

        with log_timing(logger, f"calendar {request_id}"):
            async with WorkerPool(size, factory) as pool:
                plans = await _pass_one(
                    start_date, observer, count, reporter, should_cancel, eph, cfg, pool, cache
                )
                if plans is None:
                    return None

                months = await _pass_two(plans, reporter, should_cancel)
                if months is None:
                    return None

        reporter.report(constants.PROGRESS_TOTAL)

        return CalendarResult(
            location=observer,
            months=tuple(months),
            generated_at=datetime.now(timezone.utc),
        )
