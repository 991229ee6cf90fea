"""
HILALWATCH Process Pool Integration Tests

Runs the grid scans and the calendar through real worker processes, with
the mock ephemeris pickled into every band request, and checks that the
answers match the in-process thread pool.

Run:
    pytest tests/integration/test_process_pool_pipeline.py -v
"""

from datetime import date

import pytest

from hilalwatch.lunar_calendar import compute_lunar_calendar
from hilalwatch.models import Night1Method, Observer, VisibilityClass
from hilalwatch.night_window import compute_night_window
from hilalwatch.scheduler import (
    compute_full_grid,
    default_executor_factory,
    search_grid_for_shared_visibility,
)
from tests.fixtures import (
    EASILY_VISIBLE_MOON_ALTITUDE,
    MockEphemeris,
    VisibleEastThenEverywhere,
    coarse_config,
)

TARGET = Observer(30.0, 0.0, name="Test Site")


@pytest.fixture
def processes():
    return default_executor_factory(use_processes=True)


@pytest.fixture
def threads():
    return default_executor_factory(use_processes=False)


def _summary(result):
    return [
        (c.latitude, c.longitude, c.visibility.classification, c.night_order)
        for c in result.cells
    ]


# =============================================================================
# Full Grid
# =============================================================================


class TestFullGridAcrossProcesses:
    """compute_full_grid through a ProcessPoolExecutor."""

    @pytest.mark.asyncio
    async def test_every_cell_classified(self, processes):
        eph = MockEphemeris(moon_altitude=EASILY_VISIBLE_MOON_ALTITUDE)

        result = await compute_full_grid(
            date(2025, 2, 5), ephemeris=eph, config=coarse_config(), executor_factory=processes
        )

        assert len(result.cells) == 36
        assert all(
            c.visibility.classification is VisibilityClass.EASILY_VISIBLE for c in result.cells
        )

    @pytest.mark.asyncio
    async def test_matches_threads(self, processes, threads):
        eph = MockEphemeris(twilight_hours=6.0, moon_altitude=VisibleEastThenEverywhere())
        anchor = Observer(30.0, 30.0)

        in_processes = await compute_full_grid(
            date(2025, 1, 30), anchor, ephemeris=eph, config=coarse_config(),
            executor_factory=processes,
        )
        in_threads = await compute_full_grid(
            date(2025, 1, 30), anchor, ephemeris=eph, config=coarse_config(),
            executor_factory=threads,
        )

        assert _summary(in_processes) == _summary(in_threads)
        assert in_processes.max_shared_latitude == in_threads.max_shared_latitude
        assert in_processes.max_shared_count == in_threads.max_shared_count


# =============================================================================
# Shared-Night Search
# =============================================================================


class TestSharedSearchAcrossProcesses:
    """search_grid_for_shared_visibility through a ProcessPoolExecutor."""

    @pytest.mark.asyncio
    async def test_donors(self, processes):
        eph = MockEphemeris(twilight_hours=6.0, moon_altitude=VisibleEastThenEverywhere())
        config = coarse_config()
        day = date(2025, 1, 30)
        target = compute_night_window(TARGET, day, ephemeris=eph, config=config.calendar)

        donors = await search_grid_for_shared_visibility(
            target, day, ephemeris=eph, config=config, executor_factory=processes
        )

        assert len(donors) == 6
        assert {c.longitude for c in donors} == {30.0}
        assert all(c.visibility.is_visible for c in donors)


# =============================================================================
# Calendar
# =============================================================================


class TestCalendarAcrossProcesses:
    """compute_lunar_calendar with one process pool for the whole request."""

    @pytest.mark.asyncio
    async def test_same_months_as_threads(self, processes, threads):
        eph = MockEphemeris(twilight_hours=6.0, moon_altitude=VisibleEastThenEverywhere())

        in_processes = await compute_lunar_calendar(
            date(2025, 2, 10), TARGET, 2, ephemeris=eph, config=coarse_config(),
            executor_factory=processes,
        )
        in_threads = await compute_lunar_calendar(
            date(2025, 2, 10), TARGET, 2, ephemeris=eph, config=coarse_config(),
            executor_factory=threads,
        )

        assert in_processes.months == in_threads.months
        assert [m.month_name for m in in_processes.months] == ["Shaban", "Ramadan"]
        assert all(
            m.night1.method is Night1Method.SHARED_NIGHT for m in in_processes.months
        )
