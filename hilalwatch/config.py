"""
HILALWATCH Configuration System

Configuration for the visibility engine using pydantic for type-safe
validation and YAML for human-readable config files.

Configuration loading priority:
1. Environment variables (HILALWATCH_*)
2. Config file passed to load_config() / the CLI --config option
3. ./hilalwatch.yaml (current directory)
4. ~/.hilalwatch/config.yaml (user home)
5. Built-in defaults

Library calls never discover files on their own: they take an explicit
HilalwatchConfig (or fall back to the defaults). Only the CLI calls
load_config().

Usage:
    from hilalwatch.config import load_config

    config = load_config()
    print(config.grid.lat_step)
    print(config.search.inheritance_rule)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from hilalwatch import constants
from hilalwatch.exceptions import ConfigurationError

__all__ = [
    "HilalwatchConfig",
    "EphemerisConfig",
    "GridConfig",
    "SearchConfig",
    "CalendarConfig",
    "load_config",
    "get_config_paths",
]

ENV_PREFIX = "HILALWATCH_"


# =============================================================================
# Section Models
# =============================================================================


class EphemerisConfig(BaseModel):
    """JPL kernel used by the Skyfield ephemeris provider."""

    kernel: str = Field(
        default="de421.bsp",
        description="JPL ephemeris kernel file name (downloaded if missing)",
    )
    data_dir: Optional[str] = Field(
        default=None,
        description="Directory holding kernels; Skyfield's default when unset",
    )

    @field_validator("kernel")
    @classmethod
    def validate_kernel(cls, v: str) -> str:
        """Kernels are SPICE .bsp files."""
        if not v.endswith(".bsp"):
            raise ValueError(f"Invalid kernel name: {v}. Expected a .bsp file")
        return v


class GridConfig(BaseModel):
    """Global sampling lattice shared by the targeted and full-grid scans."""

    lat_step: float = Field(
        default=constants.GRID_LAT_STEP_DEG,
        gt=0.0,
        le=30.0,
        description="Latitude spacing between cell centres (degrees)",
    )
    lon_step: float = Field(
        default=constants.GRID_LON_STEP_DEG,
        gt=0.0,
        le=60.0,
        description="Longitude spacing between cell centres (degrees)",
    )
    lat_limit: float = Field(
        default=constants.GRID_LAT_LIMIT_DEG,
        gt=0.0,
        lt=90.0,
        description="Outermost cell-centre latitude, north and south",
    )
    lon_start: float = Field(
        default=constants.GRID_LON_START_DEG,
        ge=-180.0,
        lt=180.0,
        description="First cell-centre longitude of each row",
    )
    band_limit: float = Field(
        default=constants.GRID_BAND_LIMIT_DEG,
        gt=0.0,
        le=90.0,
        description="Half-width of the latitude range split into worker bands",
    )

    @model_validator(mode="after")
    def validate_band(self) -> "GridConfig":
        """Every cell centre must fall inside some band."""
        if self.lat_limit > self.band_limit:
            raise ValueError(
                f"lat_limit ({self.lat_limit}) exceeds band_limit ({self.band_limit})"
            )
        return self


class SearchConfig(BaseModel):
    """Worker pool sizing and the shared-night inheritance policy."""

    min_workers: int = Field(
        default=constants.MIN_WORKERS,
        ge=1,
        le=64,
        description="Lower clamp on worker pool size",
    )
    max_workers: int = Field(
        default=constants.MAX_WORKERS,
        ge=1,
        le=64,
        description="Upper clamp on worker pool size",
    )
    parallelism: Optional[int] = Field(
        default=None,
        ge=1,
        description="Requested parallelism; CPU count when unset (then clamped)",
    )
    use_processes: bool = Field(
        default=True,
        description="Run grid bands in worker processes (False: threads)",
    )
    inheritance_rule: Literal["sunset_order", "observation_time"] = Field(
        default="sunset_order",
        description="Predicate deciding whether a visible cell may donate a sighting",
    )

    @model_validator(mode="after")
    def validate_workers(self) -> "SearchConfig":
        """Clamp bounds must be ordered."""
        if self.min_workers > self.max_workers:
            raise ValueError(
                f"min_workers ({self.min_workers}) > max_workers ({self.max_workers})"
            )
        return self


class CalendarConfig(BaseModel):
    """Night-1 search and geometry search windows."""

    month_count: int = Field(
        default=constants.DEFAULT_MONTH_COUNT,
        ge=1,
        le=120,
        description="Lunar months computed when the caller does not say",
    )
    max_night1_days: int = Field(
        default=constants.MAX_NIGHT1_DAYS,
        ge=1,
        le=60,
        description="Days searched after a conjunction before giving up",
    )
    sunset_window_days: float = Field(
        default=constants.SUNSET_SEARCH_DAYS,
        gt=0.0,
        le=3.0,
        description="Sunset search span starting at local noon (days)",
    )
    moonset_window_days: float = Field(
        default=constants.MOONSET_SEARCH_DAYS,
        gt=0.0,
        le=5.0,
        description="Moonset search span starting at sunset (days)",
    )
    twilight_window_hours: float = Field(
        default=constants.TWILIGHT_SEARCH_HOURS,
        gt=0.0,
        le=24.0,
        description="Astronomical twilight search span after sunset (hours)",
    )
    max_night_hours: float = Field(
        default=constants.MAX_NIGHT_HOURS,
        gt=0.0,
        le=48.0,
        description="Longest plausible sunset-to-sunrise fallback night (hours)",
    )
    synthetic_night_hours: float = Field(
        default=constants.SYNTHETIC_NIGHT_HOURS,
        gt=0.0,
        le=24.0,
        description="Length of the substitute window for implausible nights (hours)",
    )


# =============================================================================
# Master Configuration
# =============================================================================


class HilalwatchConfig(BaseModel):
    """Top-level configuration aggregating all sections."""

    ephemeris: EphemerisConfig = Field(default_factory=EphemerisConfig)
    grid: GridConfig = Field(default_factory=GridConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Global logging level",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Rotating log file path; console only when unset",
    )

    class Config:
        """Pydantic configuration."""

        extra = "ignore"  # Ignore unknown fields in config file


# =============================================================================
# Configuration Loading
# =============================================================================


def get_config_paths() -> list[Path]:
    """Config file locations searched in priority order (first found wins)."""
    home = Path.home()
    return [
        Path("./hilalwatch.yaml"),
        Path("./hilalwatch.yml"),
        home / ".hilalwatch" / "config.yaml",
        home / ".hilalwatch" / "config.yml",
        Path("/etc/hilalwatch/config.yaml"),
    ]


def _coerce_env_value(value: str):
    """Convert an environment string to bool/int/float where it parses."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env_overrides(config_dict: dict) -> dict:
    """Apply HILALWATCH_* environment variables.

    ``HILALWATCH_SEARCH_MAX_WORKERS=8`` sets ``search.max_workers``;
    ``HILALWATCH_LOG_LEVEL=DEBUG`` sets the top-level ``log_level``.
    """
    top_level = {"log_level", "log_file"}

    for key, raw in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        name = key[len(ENV_PREFIX):].lower()

        if name in top_level:
            config_dict[name] = raw.upper() if name == "log_level" else raw
            continue

        value = _coerce_env_value(raw)

        parts = name.split("_")
        if len(parts) < 2:
            continue

        section = parts[0]
        setting = "_".join(parts[1:])
        if not isinstance(config_dict.get(section), dict):
            config_dict[section] = {}
        config_dict[section][setting] = value

    return config_dict


def load_config(config_path: Optional[str | Path] = None) -> HilalwatchConfig:
    """Load configuration from file with validation.

    Args:
        config_path: Explicit config file path, or None for auto-discovery

    Returns:
        Validated HilalwatchConfig

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    config_dict: dict = {}

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        config_files = [path]
    else:
        config_files = get_config_paths()

    for path in config_files:
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    config_dict = yaml.safe_load(f) or {}
                break
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
            except OSError as e:
                raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if not isinstance(config_dict, dict):
        raise ConfigurationError("Configuration root must be a mapping")

    config_dict = _apply_env_overrides(config_dict)

    try:
        return HilalwatchConfig(**config_dict)
    except Exception as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
