"""
HILALWATCH Grid Search Scheduler

Scans the global lattice in parallel. The latitude range is split into one
band per worker; each band is a one-shot WorkRequest answered by exactly one
WorkResponse carrying the same request ID. Bands are dispatched together and
collected together (asyncio.gather over executor futures), then concatenated
in band order so results always come back in scan order.

Modes:
    search_grid_for_shared_visibility  cells sharing the target's night
                                       that see the crescent (Night-1 donors)
    compute_full_grid                  every cell, optionally compared with
                                       an anchor location's night

A band whose worker fails is logged and contributes nothing; the other
bands still count. A response whose request ID does not match its request
is discarded.

The worker pool lives for one top-level request: WorkerPool is an async
context manager and always shuts its executor down on exit, whether the
request completed, failed or was cancelled.

Usage:
    async with WorkerPool(8) as pool:
        donors = await search_grid_for_shared_visibility(window, day, pool=pool)
"""

from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional

from hilalwatch.cache import RequestCache
from hilalwatch.config import CalendarConfig, GridConfig, HilalwatchConfig
from hilalwatch.conjunction import (
    nearest_conjunction,
    next_conjunction,
    previous_conjunction,
    utc_midnight,
)
from hilalwatch.ephemeris import EphemerisProvider, get_default_ephemeris
from hilalwatch.exceptions import WorkerFaultError
from hilalwatch.grid import (
    band_rows,
    cell_center_for,
    clamp_parallelism,
    iter_lattice,
    partition_bands,
    same_cell,
)
from hilalwatch.logging_config import (
    get_logger,
    get_request_id,
    log_exception,
    log_timing,
)
from hilalwatch.models import FullGridResult, GridCell, NightWindow, Observer
from hilalwatch.night_window import compute_night_window
from hilalwatch.progress import CancelCheck, is_cancelled
from hilalwatch.shared_night import (
    InheritanceRule,
    accepts_donor,
    relative_order,
    shared_night,
)
from hilalwatch.visibility import classify_visibility

__all__ = [
    "WorkKind",
    "WorkStatus",
    "BandPayload",
    "WorkRequest",
    "WorkResponse",
    "ExecutorFactory",
    "default_executor_factory",
    "run_work",
    "WorkerPool",
    "search_grid_for_shared_visibility",
    "compute_full_grid",
]

logger = get_logger(__name__)

ExecutorFactory = Callable[[int], Executor]


# =============================================================================
# Work Envelope
# =============================================================================


class WorkKind(Enum):
    """What a band worker is asked to do."""

    SEARCH_SHARED = "search_shared"
    FULL_GRID = "full_grid"


class WorkStatus(Enum):
    """Outcome of one band."""

    SUCCESS = "success"
    FAULT = "fault"


@dataclass(frozen=True)
class BandPayload:
    """Everything a worker needs to scan its band; no shared state."""

    day: date
    latitudes: tuple[float, ...]
    conjunction_time: Optional[datetime]
    ephemeris: EphemerisProvider
    grid: GridConfig
    calendar: CalendarConfig
    # Targeted search
    target_window: Optional[NightWindow] = None
    inheritance_rule: InheritanceRule = InheritanceRule.SUNSET_ORDER
    # Full grid with anchor
    anchor_cell: Optional[Observer] = None
    anchor_window: Optional[NightWindow] = None


@dataclass(frozen=True)
class WorkRequest:
    request_id: str
    kind: WorkKind
    payload: BandPayload


@dataclass(frozen=True)
class WorkResponse:
    request_id: str
    status: WorkStatus
    cells: tuple[GridCell, ...] = ()
    error: Optional[str] = None


# =============================================================================
# Band Workers (run inside the executor)
# =============================================================================


def _scan_shared(p: BandPayload) -> list[GridCell]:
    """Visible cells of one band that may donate a sighting to the target.

    Per cell, cheapest test first: night window, overlap, inheritance rule,
    and only then the full criterion.
    """
    target = p.target_window
    rule = p.inheritance_rule
    matches = []

    for observer in iter_lattice(p.grid, list(p.latitudes)):
        window = compute_night_window(
            observer, p.day, p.conjunction_time, ephemeris=p.ephemeris, config=p.calendar
        )
        if window is None:
            continue

        overlap = shared_night(target, window)
        if not overlap.overlaps:
            continue

        if not rule.needs_visibility and not accepts_donor(rule, target, window):
            continue

        visibility = classify_visibility(
            observer, p.day, p.conjunction_time, ephemeris=p.ephemeris, config=p.calendar
        )
        if not visibility.is_visible:
            continue
        if not accepts_donor(rule, target, window, visibility):
            continue

        matches.append(
            GridCell(
                observer=observer,
                visibility=visibility,
                night_window=window,
                shared_night=overlap,
                night_order=relative_order(target, window),
            )
        )

    return matches


def _scan_full(p: BandPayload) -> list[GridCell]:
    """Every cell of one band, compared with the anchor when there is one."""
    cells = []

    for observer in iter_lattice(p.grid, list(p.latitudes)):
        visibility = classify_visibility(
            observer, p.day, p.conjunction_time, ephemeris=p.ephemeris, config=p.calendar
        )
        window = compute_night_window(
            observer,
            p.day,
            p.conjunction_time,
            known_sunset=visibility.sunset,
            ephemeris=p.ephemeris,
            config=p.calendar,
        )

        overlap = None
        order = None
        if (
            p.anchor_window is not None
            and window is not None
            and not same_cell(observer, p.anchor_cell)
        ):
            overlap = shared_night(p.anchor_window, window)
            if overlap.overlaps:
                order = relative_order(p.anchor_window, window)

        cells.append(
            GridCell(
                observer=observer,
                visibility=visibility,
                night_window=window,
                shared_night=overlap,
                night_order=order,
            )
        )

    return cells


def run_work(request: WorkRequest) -> WorkResponse:
    """Answer one band request. Module-level so process pools can pickle it."""
    try:
        if request.kind is WorkKind.SEARCH_SHARED:
            cells = _scan_shared(request.payload)
        else:
            cells = _scan_full(request.payload)
    except Exception as e:
        return WorkResponse(
            request_id=request.request_id,
            status=WorkStatus.FAULT,
            error=f"{type(e).__name__}: {e}",
        )
    return WorkResponse(
        request_id=request.request_id,
        status=WorkStatus.SUCCESS,
        cells=tuple(cells),
    )


# =============================================================================
# Worker Pool
# =============================================================================


def default_executor_factory(use_processes: bool = True) -> ExecutorFactory:
    """Executor constructor for the pool: processes, or threads when asked."""
    if use_processes:
        return lambda size: ProcessPoolExecutor(max_workers=size)
    return lambda size: ThreadPoolExecutor(
        max_workers=size, thread_name_prefix="hilalwatch-grid"
    )


class WorkerPool:
    """Bounded executor owned by one top-level request."""

    def __init__(
        self,
        size: int,
        executor_factory: Optional[ExecutorFactory] = None,
    ):
        self.size = size
        self._factory = executor_factory or default_executor_factory()
        self._executor: Optional[Executor] = None

    @property
    def active(self) -> bool:
        return self._executor is not None

    async def __aenter__(self) -> "WorkerPool":
        self._executor = self._factory(self.size)
        logger.debug(f"Worker pool started ({self.size} workers)")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        """Tear the executor down; pending band tasks are cancelled."""
        if self._executor is None:
            return
        executor, self._executor = self._executor, None
        executor.shutdown(wait=True, cancel_futures=True)
        logger.debug("Worker pool shut down")

    async def dispatch(self, requests: list[WorkRequest]) -> list[tuple[GridCell, ...]]:
        """Run all band requests concurrently; one cell tuple per request, in order."""
        if self._executor is None:
            raise RuntimeError("Worker pool is not running")

        loop = asyncio.get_running_loop()
        futures = [
            loop.run_in_executor(self._executor, run_work, request)
            for request in requests
        ]
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

        return [
            self._collect(request, outcome)
            for request, outcome in zip(requests, outcomes)
        ]

    def _collect(self, request: WorkRequest, outcome) -> tuple[GridCell, ...]:
        """Cells of a successful, correctly correlated response; () otherwise."""
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            log_exception(logger, f"Worker task {request.request_id} failed", outcome)
            return ()

        if outcome.request_id != request.request_id:
            logger.warning(
                f"Discarding response {outcome.request_id} "
                f"received for request {request.request_id}"
            )
            return ()

        if outcome.status is WorkStatus.FAULT:
            fault = WorkerFaultError(outcome.error or "unknown error", request.request_id)
            log_exception(
                logger,
                f"Worker task {request.request_id} faulted",
                fault,
                include_traceback=False,
            )
            return ()

        return outcome.cells


# =============================================================================
# Scan Coordination
# =============================================================================


def _band_requests(
    kind: WorkKind,
    size: int,
    make_payload: Callable[[tuple[float, ...]], BandPayload],
    grid: GridConfig,
) -> list[WorkRequest]:
    batch = uuid.uuid4().hex[:8]
    # Band IDs are scoped by the enclosing top-level request, when there is one
    scope = get_request_id()
    prefix = f"{scope}/{kind.value}" if scope else kind.value
    requests = []
    for band in partition_bands(size, grid):
        rows = tuple(band_rows(band, grid))
        if not rows:
            continue
        requests.append(
            WorkRequest(
                request_id=f"{prefix}-{batch}-{band.index}",
                kind=kind,
                payload=make_payload(rows),
            )
        )
    return requests


async def _run_bands(
    requests: list[WorkRequest],
    pool: Optional[WorkerPool],
    size: int,
    executor_factory: Optional[ExecutorFactory],
) -> list[GridCell]:
    if pool is not None:
        slices = await pool.dispatch(requests)
    else:
        async with WorkerPool(size, executor_factory) as own_pool:
            slices = await own_pool.dispatch(requests)
    return [cell for band_cells in slices for cell in band_cells]


def _resolve(
    config: Optional[HilalwatchConfig],
    ephemeris: Optional[EphemerisProvider],
    executor_factory: Optional[ExecutorFactory],
):
    cfg = config or HilalwatchConfig()
    eph = ephemeris or get_default_ephemeris(cfg.ephemeris)
    factory = executor_factory or default_executor_factory(cfg.search.use_processes)
    return cfg, eph, factory


def _conjunction_near(
    day: date,
    eph: EphemerisProvider,
    cache: Optional[RequestCache],
) -> datetime:
    midnight = utc_midnight(day)
    if cache is None:
        return nearest_conjunction(midnight, eph)
    return cache.get_or_compute(
        ("nearest_conjunction", midnight),
        lambda: nearest_conjunction(midnight, eph),
    )


async def search_grid_for_shared_visibility(
    target_window: NightWindow,
    day: date,
    parallelism: Optional[int] = None,
    *,
    conjunction_time: Optional[datetime] = None,
    ephemeris: Optional[EphemerisProvider] = None,
    config: Optional[HilalwatchConfig] = None,
    executor_factory: Optional[ExecutorFactory] = None,
    pool: Optional[WorkerPool] = None,
    cache: Optional[RequestCache] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> Optional[list[GridCell]]:
    """
    Find lattice cells that saw the crescent on a night shared with the target.

    Args:
        target_window: Night window of the location looking for a sighting
        day: Date whose evening is scanned
        parallelism: Requested worker count (clamped to the configured range)
        conjunction_time: New moon for the conjunction rule; the new moon
            nearest ``day`` when None
        ephemeris: Provider shipped to every worker
        config: Grid, search and calendar settings
        executor_factory: Executor constructor for a pool created here
        pool: Running pool to reuse (the caller owns its lifetime)
        cache: Request cache for the conjunction lookup
        should_cancel: Polled before and after dispatch

    Returns:
        Donor cells in scan order (empty if none), or None if cancelled
    """
    cfg, eph, factory = _resolve(config, ephemeris, executor_factory)
    if is_cancelled(should_cancel):
        return None

    if conjunction_time is None:
        conjunction_time = _conjunction_near(day, eph, cache)

    size = pool.size if pool is not None else clamp_parallelism(parallelism, cfg.search)
    rule = InheritanceRule(cfg.search.inheritance_rule)

    requests = _band_requests(
        WorkKind.SEARCH_SHARED,
        size,
        lambda rows: BandPayload(
            day=day,
            latitudes=rows,
            conjunction_time=conjunction_time,
            ephemeris=eph,
            grid=cfg.grid,
            calendar=cfg.calendar,
            target_window=target_window,
            inheritance_rule=rule,
        ),
        cfg.grid,
    )

    with log_timing(logger, f"shared-night search {day}"):
        cells = await _run_bands(requests, pool, size, factory)

    if is_cancelled(should_cancel):
        return None

    logger.debug(f"Shared-night search {day}: {len(cells)} donor cells")
    return cells


async def compute_full_grid(
    day: date,
    anchor_observer: Optional[Observer] = None,
    parallelism: Optional[int] = None,
    *,
    ephemeris: Optional[EphemerisProvider] = None,
    config: Optional[HilalwatchConfig] = None,
    executor_factory: Optional[ExecutorFactory] = None,
    pool: Optional[WorkerPool] = None,
    should_cancel: Optional[CancelCheck] = None,
) -> Optional[FullGridResult]:
    """
    Classify every lattice cell for one date.

    With an anchor, each other cell is also compared with the anchor's night
    window; the anchor's own lattice cell is left out of the comparison.

    Returns:
        FullGridResult, or None if cancelled
    """
    cfg, eph, factory = _resolve(config, ephemeris, executor_factory)
    if is_cancelled(should_cancel):
        return None

    midnight = utc_midnight(day)
    conjunction_time = nearest_conjunction(midnight, eph)
    previous = previous_conjunction(midnight, eph)
    following = next_conjunction(midnight, eph)

    anchor_cell = None
    anchor_window = None
    if anchor_observer is not None:
        anchor_cell = cell_center_for(anchor_observer, cfg.grid)
        anchor_window = compute_night_window(
            anchor_observer, day, conjunction_time, ephemeris=eph, config=cfg.calendar
        )
        if anchor_window is None:
            logger.warning(f"No night window at anchor {anchor_observer} on {day}")

    size = pool.size if pool is not None else clamp_parallelism(parallelism, cfg.search)

    requests = _band_requests(
        WorkKind.FULL_GRID,
        size,
        lambda rows: BandPayload(
            day=day,
            latitudes=rows,
            conjunction_time=conjunction_time,
            ephemeris=eph,
            grid=cfg.grid,
            calendar=cfg.calendar,
            anchor_cell=anchor_cell,
            anchor_window=anchor_window,
        ),
        cfg.grid,
    )

    with log_timing(logger, f"full grid {day}"):
        cells = await _run_bands(requests, pool, size, factory)

    if is_cancelled(should_cancel):
        return None

    anchor_grid_cell = None
    if anchor_cell is not None:
        anchor_grid_cell = next(
            (c for c in cells if same_cell(c.observer, anchor_cell)), None
        )

    # Latitude with the most cells sharing the anchor's night; ties keep
    # the southernmost
    shared_rows = Counter(c.latitude for c in cells if c.night_order is not None)
    max_lat = None
    max_count = 0
    for lat in sorted(shared_rows):
        if shared_rows[lat] > max_count:
            max_lat, max_count = lat, shared_rows[lat]

    logger.info(f"Full grid {day}: {len(cells)} cells, {sum(shared_rows.values())} shared")

    return FullGridResult(
        date=day,
        cells=tuple(cells),
        conjunction_time=conjunction_time,
        previous_conjunction=previous,
        next_conjunction=following,
        anchor_cell=anchor_grid_cell,
        anchor_window=anchor_window,
        max_shared_latitude=max_lat,
        max_shared_count=max_count,
    )
