"""
HILALWATCH Global Grid

The sampling lattice shared by the targeted and full-grid scans, and its
partition into latitude bands, one band per parallel worker.

Default lattice (2 x 2 degree cells, centres offset by one degree):
    rows     -59, -57, ..., 57, 59      (60 rows)
    columns  -179, -177, ..., 177, 179  (180 columns)

Bands split [-60, 60] into N equal half-open slices, the last one closed,
so every row belongs to exactly one band.

Usage:
    from hilalwatch.grid import partition_bands, band_rows, cell_center_for

    bands = partition_bands(8)
    rows = band_rows(bands[0])
    anchor = cell_center_for(Observer(21.4, 39.8))  # Observer(21.0, 39.0)
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Iterator, Optional

from hilalwatch import constants
from hilalwatch.config import GridConfig, SearchConfig
from hilalwatch.models import Observer

__all__ = [
    "LatitudeBand",
    "lattice_latitudes",
    "lattice_longitudes",
    "iter_lattice",
    "clamp_parallelism",
    "partition_bands",
    "band_rows",
    "cell_center_for",
    "same_cell",
]


@dataclass(frozen=True)
class LatitudeBand:
    """Latitude slice [south, north), closed on the north edge for the last band."""

    index: int
    south: float
    north: float
    closed: bool = False

    def contains(self, latitude: float) -> bool:
        if self.closed:
            return self.south <= latitude <= self.north
        return self.south <= latitude < self.north


# =============================================================================
# Lattice
# =============================================================================


def lattice_latitudes(grid: Optional[GridConfig] = None) -> list[float]:
    """Row centres from south to north."""
    grid = grid or GridConfig()
    count = int(round(2 * grid.lat_limit / grid.lat_step)) + 1
    return [-grid.lat_limit + i * grid.lat_step for i in range(count)]


def lattice_longitudes(grid: Optional[GridConfig] = None) -> list[float]:
    """Column centres from west to east, one full turn."""
    grid = grid or GridConfig()
    count = int(round(360.0 / grid.lon_step))
    return [grid.lon_start + i * grid.lon_step for i in range(count)]


def iter_lattice(
    grid: Optional[GridConfig] = None,
    latitudes: Optional[list[float]] = None,
) -> Iterator[Observer]:
    """Cells in scan order: row by row, west to east."""
    longitudes = lattice_longitudes(grid)
    for lat in latitudes if latitudes is not None else lattice_latitudes(grid):
        for lon in longitudes:
            yield Observer(lat, lon)


# =============================================================================
# Worker Bands
# =============================================================================


def clamp_parallelism(
    requested: Optional[int] = None,
    search: Optional[SearchConfig] = None,
) -> int:
    """Worker count: requested (or CPU count) clamped to [min_workers, max_workers]."""
    search = search or SearchConfig()
    wanted = requested or search.parallelism or os.cpu_count() or search.min_workers
    return max(search.min_workers, min(search.max_workers, wanted))


def partition_bands(count: int, grid: Optional[GridConfig] = None) -> list[LatitudeBand]:
    """Split [-band_limit, band_limit] into ``count`` contiguous equal bands."""
    if count < 1:
        raise ValueError(f"Band count must be positive: {count}")
    grid = grid or GridConfig()
    width = 2 * grid.band_limit / count
    return [
        LatitudeBand(
            index=i,
            south=-grid.band_limit + i * width,
            north=-grid.band_limit + (i + 1) * width,
            closed=(i == count - 1),
        )
        for i in range(count)
    ]


def band_rows(band: LatitudeBand, grid: Optional[GridConfig] = None) -> list[float]:
    """Lattice rows owned by a band (may be empty for narrow bands)."""
    return [lat for lat in lattice_latitudes(grid) if band.contains(lat)]


# =============================================================================
# Cell Lookup
# =============================================================================


def cell_center_for(observer: Observer, grid: Optional[GridConfig] = None) -> Observer:
    """Centre of the lattice cell containing ``observer``.

    Locations outside the sampled latitudes map to a centre no scan produces.
    """
    grid = grid or GridConfig()

    south_edge = -grid.lat_limit - grid.lat_step / 2
    row = math.floor((observer.latitude - south_edge) / grid.lat_step)
    lat = -grid.lat_limit + row * grid.lat_step

    west_edge = grid.lon_start - grid.lon_step / 2
    columns = int(round(360.0 / grid.lon_step))
    col = math.floor((observer.longitude - west_edge) / grid.lon_step) % columns
    lon = grid.lon_start + col * grid.lon_step

    return Observer(max(-90.0, min(90.0, lat)), lon)


def same_cell(
    a: Observer,
    b: Observer,
    tolerance: float = constants.CELL_MATCH_TOLERANCE_DEG,
) -> bool:
    """True when two cell centres coincide."""
    return abs(a.latitude - b.latitude) < tolerance and abs(a.longitude - b.longitude) < tolerance
