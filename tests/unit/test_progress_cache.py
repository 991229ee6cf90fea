"""
HILALWATCH Unit Tests - Progress, Cancellation and Request Cache

Run:
    pytest tests/unit/test_progress_cache.py -v
"""

import threading
from unittest.mock import Mock

import pytest

from hilalwatch.cache import RequestCache
from hilalwatch.progress import CancellationToken, ProgressReporter, is_cancelled


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellationToken:
    """Tests for CancellationToken."""

    def test_initially_not_cancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token() is False

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        assert token() is True

    def test_cancel_from_another_thread(self):
        token = CancellationToken()
        thread = threading.Thread(target=token.cancel)
        thread.start()
        thread.join()
        assert token.cancelled


class TestIsCancelled:
    def test_none_never_cancels(self):
        assert is_cancelled(None) is False

    def test_plain_callable(self):
        assert is_cancelled(lambda: True) is True
        assert is_cancelled(lambda: False) is False


# =============================================================================
# Progress
# =============================================================================


class TestProgressReporter:
    """Tests for ProgressReporter."""

    def test_forwards_percent_and_total(self):
        callback = Mock()
        reporter = ProgressReporter(callback)

        reporter.report(25.0)

        callback.assert_called_once_with(25.0, 100.0)
        assert reporter.last == 25.0

    def test_never_decreases(self):
        seen = []
        reporter = ProgressReporter(lambda pct, total: seen.append(pct))

        for pct in (10.0, 30.0, 20.0, 40.0):
            reporter.report(pct)

        assert seen == [10.0, 30.0, 30.0, 40.0]

    def test_clamped(self):
        seen = []
        reporter = ProgressReporter(lambda pct, total: seen.append(pct))

        reporter.report(-5.0)
        reporter.report(250.0)

        assert seen == [0.0, 100.0]

    def test_without_callback(self):
        reporter = ProgressReporter()
        reporter.report(60.0)
        assert reporter.last == 60.0


# =============================================================================
# Request Cache
# =============================================================================


class TestRequestCache:
    """Tests for RequestCache."""

    def test_computes_once(self):
        cache = RequestCache()
        compute = Mock(return_value=42)

        assert cache.get_or_compute(("k", 1), compute) == 42
        assert cache.get_or_compute(("k", 1), compute) == 42

        compute.assert_called_once()
        assert cache.hits == 1
        assert cache.misses == 1
        assert ("k", 1) in cache
        assert len(cache) == 1

    def test_none_is_cached(self):
        cache = RequestCache()
        compute = Mock(return_value=None)

        cache.get_or_compute("missing", compute)
        cache.get_or_compute("missing", compute)

        compute.assert_called_once()

    def test_exceptions_not_cached(self):
        cache = RequestCache()
        compute = Mock(side_effect=[RuntimeError("boom"), 7])

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", compute)
        assert "k" not in cache
        assert cache.get_or_compute("k", compute) == 7

    def test_cleared_on_exit(self):
        with RequestCache() as cache:
            cache.get_or_compute("k", lambda: 1)
            assert len(cache) == 1
        assert len(cache) == 0
