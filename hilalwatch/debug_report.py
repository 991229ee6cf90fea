"""
HILALWATCH Debug Report

Dumps the full criterion breakdown for a handful of test points, as text
for reading or as JSON for diffing between runs.

Usage:
    from hilalwatch.debug_report import export_debug_data, format_debug_report

    records = export_debug_data(date(2025, 3, 1), [(21.4, 39.8), (51.5, -0.1)])
    print(format_debug_report(records))
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional, Union

from pydantic import BaseModel, TypeAdapter

from hilalwatch.config import CalendarConfig
from hilalwatch.ephemeris import EphemerisProvider
from hilalwatch.models import Observer
from hilalwatch.visibility import classify_visibility

__all__ = [
    "DebugRecord",
    "export_debug_data",
    "format_debug_report",
    "format_debug_report_json",
]

Point = Union[Observer, tuple[float, float]]

RULE_WIDTH = 80


class DebugRecord(BaseModel):
    """Criterion breakdown for one test point."""

    latitude: float
    longitude: float
    normalized_longitude: float
    timezone_hours: int
    code: str
    zone_name: str
    v_value: Optional[float] = None
    sunset_utc: Optional[datetime] = None
    moonset_utc: Optional[datetime] = None
    best_time_utc: Optional[datetime] = None
    sunset_local: Optional[datetime] = None
    moonset_local: Optional[datetime] = None
    best_time_local: Optional[datetime] = None
    conjunction_time: Optional[datetime] = None
    conjunction_triggered: bool = False
    arcv: Optional[float] = None
    crescent_width_arcmin: Optional[float] = None
    lag_minutes: Optional[float] = None
    reason: Optional[str] = None


def export_debug_data(
    day: date,
    points: Iterable[Point],
    conjunction_time: Optional[datetime] = None,
    *,
    ephemeris: Optional[EphemerisProvider] = None,
    config: Optional[CalendarConfig] = None,
) -> list[DebugRecord]:
    """Classify each point on ``day`` and flatten the result for reporting."""
    records = []

    for point in points:
        if isinstance(point, Observer):
            observer = point
            raw_lon = point.longitude
        else:
            lat, raw_lon = point
            observer = Observer(lat, raw_lon)

        result = classify_visibility(
            observer, day, conjunction_time, ephemeris=ephemeris, config=config
        )

        records.append(
            DebugRecord(
                latitude=observer.latitude,
                longitude=raw_lon,
                normalized_longitude=observer.longitude,
                timezone_hours=observer.timezone_hours,
                code=result.classification.value,
                zone_name=result.zone_name,
                v_value=result.v_value,
                sunset_utc=result.sunset,
                moonset_utc=result.moonset,
                best_time_utc=result.best_time,
                sunset_local=observer.local_time(result.sunset),
                moonset_local=observer.local_time(result.moonset),
                best_time_local=observer.local_time(result.best_time),
                conjunction_time=result.conjunction_time,
                conjunction_triggered=result.conjunction_triggered,
                arcv=result.arcv,
                crescent_width_arcmin=result.crescent_width_arcmin,
                lag_minutes=result.lag_minutes,
                reason=result.failure_reason,
            )
        )

    return records


def _fmt(value: Optional[float], digits: int, unit: str = "") -> str:
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}{unit}"


def _fmt_time(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else "N/A"


def format_debug_report(records: list[DebugRecord]) -> str:
    """Human-readable report, one block per point."""
    lines = ["DEBUG REPORT", "=" * RULE_WIDTH, ""]

    for r in records:
        sign = "+" if r.timezone_hours >= 0 else ""
        lines.extend(
            [
                f"Location: {r.latitude:.1f}°, {r.longitude:.1f}° "
                f"(normalized: {r.normalized_longitude:.1f}°)",
                f"Timezone: UTC {sign}{r.timezone_hours}",
                f"Code: {r.code} - {r.zone_name}",
                f"V-value: {_fmt(r.v_value, 4)}",
                f"ARCV: {_fmt(r.arcv, 4, '°')}",
                f"W (width): {_fmt(r.crescent_width_arcmin, 4, chr(39))}",
                f"Lag: {_fmt(r.lag_minutes, 2, ' min')}",
                "",
                f"Sunset UTC: {_fmt_time(r.sunset_utc)}",
                f"Sunset Local: {_fmt_time(r.sunset_local)}",
                f"Moonset UTC: {_fmt_time(r.moonset_utc)}",
                f"Moonset Local: {_fmt_time(r.moonset_local)}",
                f"Best Time UTC: {_fmt_time(r.best_time_utc)}",
                f"Best Time Local: {_fmt_time(r.best_time_local)}",
                f"Conjunction: {_fmt_time(r.conjunction_time)}",
                "Conjunction Triggered: "
                + ("Yes (Impossible)" if r.conjunction_triggered else "No"),
            ]
        )
        if r.reason:
            lines.append(f"Reason: {r.reason}")
        lines.extend(["-" * RULE_WIDTH, ""])

    return "\n".join(lines) + "\n"


def format_debug_report_json(records: list[DebugRecord]) -> str:
    """JSON array of records, ISO 8601 timestamps."""
    return TypeAdapter(list[DebugRecord]).dump_json(records, indent=2).decode("utf-8")
