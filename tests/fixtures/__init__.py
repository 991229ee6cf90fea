"""
HILALWATCH Test Fixtures Package.

Provides a deterministic ephemeris and small engine configurations so the
visibility, night window, grid and calendar code can be tested without a
JPL kernel or a process pool.

Available fixtures:
- MockEphemeris: Fixed daily sunset/sunrise/twilight at local mean time
- VisibleEastThenEverywhere: Moon altitude rule for Night-1 scenarios
- coarse_config: 36-cell lattice scanned by four threads
- RecordingExecutorFactory: Thread pools that record their shutdown

Usage:
    from tests.fixtures import MockEphemeris, coarse_config

    def test_sunset():
        eph = MockEphemeris()
        result = classify_visibility(Observer(30.0, 0.0), date(2025, 2, 5), ephemeris=eph)
        assert result.sunset.hour == 18
"""

from tests.fixtures.mock_ephemeris import (
    DEFAULT_NEW_MOONS,
    EASILY_VISIBLE_MOON_ALTITUDE,
    NOT_VISIBLE_MOON_ALTITUDE,
    MockEphemeris,
    VisibleEastThenEverywhere,
)
from tests.fixtures.engine import (
    COARSE_LATITUDES,
    COARSE_LONGITUDES,
    RecordingExecutor,
    RecordingExecutorFactory,
    coarse_config,
    coarse_grid,
)

__all__ = [
    "MockEphemeris",
    "DEFAULT_NEW_MOONS",
    "EASILY_VISIBLE_MOON_ALTITUDE",
    "NOT_VISIBLE_MOON_ALTITUDE",
    "VisibleEastThenEverywhere",
    "coarse_config",
    "coarse_grid",
    "COARSE_LATITUDES",
    "COARSE_LONGITUDES",
    "RecordingExecutor",
    "RecordingExecutorFactory",
]
