"""
HILALWATCH Command Line Interface

Subcommands:
    visibility    Odeh classification for one place and evening
    night-window  Night window for one place and evening
    grid          Global visibility summary for one evening
    calendar      Lunar months (Night 1 dates) for one place
    debug         Criterion breakdown for several points (text or JSON)

Usage:
    hilalwatch visibility 21.42 39.83 --date 2025-03-01
    hilalwatch calendar 51.5 -0.1 --start 2025-01-01 --months 3
    hilalwatch debug --date 2025-03-01 --point 21.4 39.8 --point -33.9 151.2 --json
    python -m hilalwatch --log-level DEBUG night-window 60 25 --date 2025-06-01
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections import Counter
from datetime import date
from typing import Optional, Sequence

from hilalwatch import constants
from hilalwatch.config import HilalwatchConfig, load_config
from hilalwatch.conjunction import nearest_conjunction, utc_midnight
from hilalwatch.debug_report import (
    export_debug_data,
    format_debug_report,
    format_debug_report_json,
)
from hilalwatch.ephemeris import get_default_ephemeris
from hilalwatch.exceptions import HilalwatchError
from hilalwatch.logging_config import get_logger, setup_logging
from hilalwatch.lunar_calendar import compute_lunar_calendar
from hilalwatch.models import Observer, VisibilityClass
from hilalwatch.night_window import compute_night_window
from hilalwatch.progress import CancellationToken
from hilalwatch.scheduler import compute_full_grid
from hilalwatch.visibility import classify_visibility

__all__ = ["build_parser", "main"]

logger = get_logger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}")


def _add_location(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("latitude", type=float, help="Latitude in degrees (north positive)")
    parser.add_argument("longitude", type=float, help="Longitude in degrees (east positive)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hilalwatch",
        description="Crescent visibility and lunar month computation",
    )
    parser.add_argument("--config", default=None, help="Configuration file (YAML)")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    parser.add_argument("--log-file", default=None, help="Also log to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {constants.HILALWATCH_VERSION}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    vis = sub.add_parser("visibility", help="Classify crescent visibility")
    _add_location(vis)
    vis.add_argument("--date", type=_iso_date, default=date.today(), help="Local date")
    vis.add_argument(
        "--no-conjunction",
        action="store_true",
        help="Skip the conjunction rule (no new moon lookup)",
    )

    night = sub.add_parser("night-window", help="Compute a night window")
    _add_location(night)
    night.add_argument("--date", type=_iso_date, default=date.today(), help="Local date")

    grid = sub.add_parser("grid", help="Summarize global visibility for one evening")
    grid.add_argument("--date", type=_iso_date, default=date.today(), help="Date")
    grid.add_argument(
        "--anchor",
        nargs=2,
        type=float,
        default=None,
        metavar=("LAT", "LON"),
        help="Compare every cell with this location's night",
    )
    grid.add_argument("--workers", type=int, default=None, help="Requested parallelism")

    cal = sub.add_parser("calendar", help="Compute lunar months for a location")
    _add_location(cal)
    cal.add_argument("--start", type=_iso_date, default=date.today(), help="Start date")
    cal.add_argument("--months", type=int, default=None, help="Number of months")
    cal.add_argument("--name", default="", help="Location name for the report")
    cal.add_argument("--quiet", action="store_true", help="Do not print progress")

    dbg = sub.add_parser("debug", help="Criterion breakdown for test points")
    dbg.add_argument("--date", type=_iso_date, default=date.today(), help="Local date")
    dbg.add_argument(
        "--point",
        nargs=2,
        type=float,
        action="append",
        required=True,
        metavar=("LAT", "LON"),
        help="Test point (repeatable)",
    )
    dbg.add_argument("--json", action="store_true", help="Emit JSON instead of text")

    return parser


# =============================================================================
# Commands
# =============================================================================


def _cmd_visibility(args, config: HilalwatchConfig) -> int:
    eph = get_default_ephemeris(config.ephemeris)
    observer = Observer(args.latitude, args.longitude)
    conjunction = None
    if not args.no_conjunction:
        conjunction = nearest_conjunction(utc_midnight(args.date), eph)

    result = classify_visibility(
        observer, args.date, conjunction, ephemeris=eph, config=config.calendar
    )

    print(f"Location:   {observer} (UTC{observer.timezone_hours:+d})")
    print(f"Date:       {args.date}")
    print(f"Result:     {result.classification.value} - {result.zone_name}")
    if result.v_value is not None:
        print(f"V:          {result.v_value:.3f}")
        print(f"ARCV:       {result.arcv:.3f}°")
        print(f"W:          {result.crescent_width_arcmin:.3f}'")
    if result.lag_minutes is not None:
        print(f"Lag:        {result.lag_minutes:.1f} min")
    if result.sunset is not None:
        print(f"Sunset:     {observer.local_time(result.sunset).isoformat()}")
    if result.moonset is not None:
        print(f"Moonset:    {observer.local_time(result.moonset).isoformat()}")
    if result.best_time is not None:
        print(f"Best time:  {observer.local_time(result.best_time).isoformat()}")
    if result.failure_reason:
        print(f"Reason:     {result.failure_reason}")
    return 0


def _cmd_night_window(args, config: HilalwatchConfig) -> int:
    eph = get_default_ephemeris(config.ephemeris)
    observer = Observer(args.latitude, args.longitude)
    window = compute_night_window(observer, args.date, ephemeris=eph, config=config.calendar)

    if window is None:
        print(f"No night window at {observer} on {args.date}")
        return 1

    print(f"Location:   {observer}")
    print(f"Start:      {observer.local_time(window.night_start).isoformat()}")
    print(f"End:        {observer.local_time(window.night_end).isoformat()}")
    print(f"Duration:   {window.duration_minutes:.0f} min")
    if window.approximate:
        print("Note:       approximate (twilight never ended)")
    return 0


def _cmd_grid(args, config: HilalwatchConfig) -> int:
    eph = get_default_ephemeris(config.ephemeris)
    anchor = Observer(*args.anchor) if args.anchor else None

    result = asyncio.run(
        compute_full_grid(args.date, anchor, args.workers, ephemeris=eph, config=config)
    )

    counts = Counter(
        c.visibility.classification for c in result.cells if c.visibility is not None
    )
    print(f"Date:        {result.date} ({len(result.cells)} cells)")
    print(f"Conjunction: {result.conjunction_time.isoformat()}")
    for cls in VisibilityClass:
        print(f"  {cls.value:<3} {cls.zone_name:<34} {counts.get(cls, 0):>6}")

    if anchor is not None:
        print(f"Anchor:      {anchor}")
        print(f"  earlier:   {len(result.earlier_cells)} cells")
        print(f"  later:     {len(result.later_cells)} cells")
        if result.max_shared_latitude is not None:
            print(
                f"  busiest:   latitude {result.max_shared_latitude:g} "
                f"({result.max_shared_count} cells)"
            )
    return 0


def _cmd_calendar(args, config: HilalwatchConfig) -> int:
    eph = get_default_ephemeris(config.ephemeris)
    observer = Observer(args.latitude, args.longitude, name=args.name)
    token = CancellationToken()

    def progress(percent: float, total: float) -> None:
        if not args.quiet:
            print(f"\rProgress: {percent:5.1f}%", end="", file=sys.stderr, flush=True)

    try:
        result = asyncio.run(
            compute_lunar_calendar(
                args.start,
                observer,
                args.months,
                on_progress=progress,
                should_cancel=token,
                ephemeris=eph,
                config=config,
            )
        )
    except KeyboardInterrupt:
        token.cancel()
        print("\nCancelled", file=sys.stderr)
        return 130
    finally:
        if not args.quiet:
            print(file=sys.stderr)

    if result is None:
        print("Cancelled", file=sys.stderr)
        return 130

    print(f"Lunar calendar for {result.location}")
    for month in result.months:
        night1 = month.night1
        source = night1.method.value
        if night1.inherited_from_cells:
            source += f", {len(night1.inherited_from_cells)} donor cells"
        title = f"{month.month_name} {month.hijri_year}"
        print(
            f"  {title:<21} Night 1 {night1.date}  "
            f"{month.length:>2} nights  ({source})"
        )
    return 0


def _cmd_debug(args, config: HilalwatchConfig) -> int:
    eph = get_default_ephemeris(config.ephemeris)
    points = [tuple(point) for point in args.point]
    records = export_debug_data(args.date, points, ephemeris=eph, config=config.calendar)
    if args.json:
        print(format_debug_report_json(records))
    else:
        print(format_debug_report(records), end="")
    return 0


COMMANDS = {
    "visibility": _cmd_visibility,
    "night-window": _cmd_night_window,
    "grid": _cmd_grid,
    "calendar": _cmd_calendar,
    "debug": _cmd_debug,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except HilalwatchError as e:
        print(f"Error: {e.reason}", file=sys.stderr)
        return 2

    setup_logging(
        log_level=args.log_level or config.log_level,
        log_file=args.log_file or config.log_file,
    )

    try:
        return COMMANDS[args.command](args, config)
    except HilalwatchError as e:
        logger.error(e.reason)
        print(f"Error: {e.reason}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
