"""
HILALWATCH Unit Tests - Command Line Interface

Unit tests for hilalwatch/cli.py. Every command runs against the mock
ephemeris installed as the shared provider and a small YAML configuration
(coarse lattice, thread workers).

Run:
    pytest tests/unit/test_cli.py -v
"""

import json
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hilalwatch.cli import build_parser, main
from hilalwatch.ephemeris import set_default_ephemeris
from tests.fixtures import (
    EASILY_VISIBLE_MOON_ALTITUDE,
    MockEphemeris,
    VisibleEastThenEverywhere,
)

COARSE_YAML = """\
log_level: WARNING
grid:
  lat_step: 20.0
  lon_step: 60.0
  lat_limit: 50.0
  lon_start: -150.0
  band_limit: 60.0
search:
  min_workers: 4
  max_workers: 4
  use_processes: false
"""


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """No HILALWATCH_* variables and no discoverable config files."""
    for key in list(os.environ):
        if key.startswith("HILALWATCH_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "coarse.yaml"
    path.write_text(COARSE_YAML)
    return str(path)


@pytest.fixture
def provider():
    """Install a mock provider; tests may replace its attributes."""
    eph = MockEphemeris(moon_altitude=EASILY_VISIBLE_MOON_ALTITUDE)
    set_default_ephemeris(eph)
    yield eph
    set_default_ephemeris(None)


# =============================================================================
# Parser
# =============================================================================


class TestParser:
    """Tests for build_parser."""

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_visibility_arguments(self):
        args = build_parser().parse_args(
            ["visibility", "21.42", "39.83", "--date", "2025-03-01", "--no-conjunction"]
        )
        assert args.command == "visibility"
        assert args.latitude == 21.42
        assert args.longitude == 39.83
        assert args.date.isoformat() == "2025-03-01"
        assert args.no_conjunction is True

    def test_negative_longitude(self):
        args = build_parser().parse_args(["night-window", "51.5", "-0.1"])
        assert args.longitude == -0.1

    def test_invalid_date(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["visibility", "0", "0", "--date", "01/03/2025"])

    def test_repeated_points(self):
        args = build_parser().parse_args(
            ["debug", "--point", "21.4", "39.8", "--point", "-33.9", "151.2"]
        )
        assert args.point == [[21.4, 39.8], [-33.9, 151.2]]

    def test_invalid_point(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["debug", "--point", "21.4"])

    def test_anchor(self):
        args = build_parser().parse_args(["grid", "--anchor", "30", "30", "--workers", "8"])
        assert args.anchor == [30.0, 30.0]
        assert args.workers == 8

    def test_southern_anchor(self):
        args = build_parser().parse_args(["grid", "--anchor", "-33.9", "151.2"])
        assert args.anchor == [-33.9, 151.2]

    def test_log_level_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD", "grid"])


# =============================================================================
# Commands
# =============================================================================


class TestVisibilityCommand:
    """Tests for the visibility subcommand."""

    def test_easily_visible(self, provider, config_file, capsys):
        code = main(["--config", config_file, "visibility", "30", "0", "--date", "2025-01-30"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Result:     EV - Easily Visible" in out
        assert "Lag:        60.0 min" in out
        assert provider.calls["find_moon_phase"] > 0

    def test_without_conjunction_lookup(self, provider, config_file, capsys):
        code = main(
            ["--config", config_file, "visibility", "30", "0", "--date", "2025-01-30",
             "--no-conjunction"]
        )

        assert code == 0
        assert provider.calls["find_moon_phase"] == 0

    def test_conjunction_after_sunset(self, provider, config_file, capsys):
        """Evening of the 2025-01-29 new moon, seen from 150W (sunset 04:00 UTC)."""
        code = main(
            ["--config", config_file, "visibility", "0", "-150", "--date", "2025-01-28"]
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "Result:     I - Impossible" in out
        assert "Reason:     Conjunction occurs after sunset" in out

    def test_undetermined(self, provider, config_file, capsys):
        provider.polar_latitude = 60.0
        code = main(["--config", config_file, "visibility", "75", "0", "--date", "2025-06-01"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Result:     U - Undetermined" in out
        assert "Reason:     No sunset found" in out

    def test_missing_new_moon_is_an_error(self, config_file, capsys):
        set_default_ephemeris(
            MockEphemeris(new_moons=[datetime(2024, 12, 1, 6, 21, tzinfo=timezone.utc)])
        )
        try:
            code = main(["--config", config_file, "visibility", "0", "0", "--date", "2030-01-01"])
        finally:
            set_default_ephemeris(None)

        assert code == 1
        assert "Error:" in capsys.readouterr().err


class TestNightWindowCommand:
    """Tests for the night-window subcommand."""

    def test_window(self, provider, config_file, capsys):
        code = main(["--config", config_file, "night-window", "30", "0", "--date", "2025-01-30"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Start:" in out
        assert "End:" in out
        assert "Duration:   90 min" in out
        assert "approximate" not in out

    def test_no_window(self, provider, config_file, capsys):
        provider.polar_latitude = 60.0
        code = main(["--config", config_file, "night-window", "80", "0", "--date", "2025-06-01"])

        assert code == 1
        assert "No night window at" in capsys.readouterr().out


class TestGridCommand:
    """Tests for the grid subcommand."""

    def test_summary(self, provider, config_file, capsys):
        code = main(["--config", config_file, "grid", "--date", "2025-02-05"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Date:        2025-02-05 (36 cells)" in out
        assert "Conjunction: 2025-01-29T12:36:00+00:00" in out
        assert "EV" in out
        assert "Anchor:" not in out

    def test_anchor(self, provider, config_file, capsys):
        code = main(
            ["--config", config_file, "grid", "--date", "2025-02-05", "--anchor", "30", "30"]
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "Anchor:      30.0°N, 30.0°E" in out
        assert "earlier:" in out
        assert "later:" in out

    def test_southern_anchor(self, provider, config_file, capsys):
        code = main(
            ["--config", config_file, "grid", "--date", "2025-02-05", "--anchor", "-30", "-30"]
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "Anchor:      30.0°S, 30.0°W" in out


class TestCalendarCommand:
    """Tests for the calendar subcommand."""

    def test_months(self, config_file, capsys):
        set_default_ephemeris(
            MockEphemeris(twilight_hours=6.0, moon_altitude=VisibleEastThenEverywhere())
        )
        try:
            code = main(
                ["--config", config_file, "calendar", "30", "0", "--start", "2025-02-10",
                 "--months", "2", "--name", "Test Site"]
            )
        finally:
            set_default_ephemeris(None)

        captured = capsys.readouterr()
        assert code == 0
        assert "Lunar calendar for Test Site (30.0°N, 0.0°E)" in captured.out
        assert "Shaban 1446" in captured.out
        assert "Ramadan 1446" in captured.out
        assert "Night 1 2025-01-30" in captured.out
        assert "30 nights  (shared_night, 6 donor cells)" in captured.out
        assert "Progress: 100.0%" in captured.err

    def test_quiet(self, provider, config_file, capsys):
        code = main(
            ["--config", config_file, "calendar", "30", "0", "--start", "2025-02-10",
             "--months", "1", "--quiet"]
        )

        captured = capsys.readouterr()
        assert code == 0
        assert "Progress" not in captured.err
        assert "(direct)" in captured.out

    def test_night1_not_found(self, tmp_path, capsys):
        path = tmp_path / "short.yaml"
        path.write_text(COARSE_YAML + "calendar:\n  max_night1_days: 2\n")
        set_default_ephemeris(MockEphemeris(twilight_hours=6.0))
        try:
            code = main(
                ["--config", str(path), "calendar", "30", "0", "--start", "2025-02-10",
                 "--months", "1", "--quiet"]
            )
        finally:
            set_default_ephemeris(None)

        assert code == 1
        assert "Night 1 not found within 2 days" in capsys.readouterr().err

    def test_cancelled(self, provider, config_file, capsys):
        with patch("hilalwatch.cli.compute_lunar_calendar", new=AsyncMock(return_value=None)):
            code = main(["--config", config_file, "calendar", "30", "0", "--quiet"])

        assert code == 130
        assert "Cancelled" in capsys.readouterr().err

    def test_keyboard_interrupt(self, provider, config_file, capsys):
        with patch(
            "hilalwatch.cli.compute_lunar_calendar", new=MagicMock(side_effect=KeyboardInterrupt)
        ):
            code = main(["--config", config_file, "calendar", "30", "0", "--quiet"])

        assert code == 130


class TestDebugCommand:
    """Tests for the debug subcommand."""

    def test_text(self, provider, config_file, capsys):
        code = main(
            ["--config", config_file, "debug", "--date", "2025-03-01",
             "--point", "21.4", "39.8", "--point", "51.5", "-0.1"]
        )

        out = capsys.readouterr().out
        assert code == 0
        assert out.startswith("DEBUG REPORT\n")
        assert out.count("Code: EV - Easily Visible") == 2

    def test_southern_point(self, provider, config_file, capsys):
        code = main(
            ["--config", config_file, "debug", "--date", "2025-03-01",
             "--point", "-33.9", "151.2"]
        )

        out = capsys.readouterr().out
        assert code == 0
        assert "Code: EV - Easily Visible" in out

    def test_json(self, provider, config_file, capsys):
        code = main(
            ["--config", config_file, "debug", "--date", "2025-03-01",
             "--point", "21.4", "39.8", "--json"]
        )

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data[0]["latitude"] == 21.4
        assert data[0]["code"] == "EV"


# =============================================================================
# Exit Codes
# =============================================================================


class TestExitCodes:
    """main() exit codes outside the command bodies."""

    def test_missing_config_file(self, tmp_path, capsys):
        code = main(["--config", str(tmp_path / "absent.yaml"), "visibility", "0", "0"])

        assert code == 2
        assert "not found" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("search:\n  min_workers: 9\n  max_workers: 2\n")

        assert main(["--config", str(path), "visibility", "0", "0"]) == 2

    def test_log_file_option(self, provider, config_file, tmp_path, capsys):
        import logging
        from logging.handlers import RotatingFileHandler

        log_path = tmp_path / "cli.log"
        try:
            code = main(
                ["--config", config_file, "--log-level", "DEBUG", "--log-file", str(log_path),
                 "visibility", "30", "0", "--date", "2025-01-30", "--no-conjunction"]
            )
        finally:
            root = logging.getLogger("hilalwatch")
            for handler in list(root.handlers):
                if isinstance(handler, RotatingFileHandler):
                    handler.close()
                    root.removeHandler(handler)

        assert code == 0
        assert log_path.exists()
        assert logging.getLogger("hilalwatch").level == logging.DEBUG
