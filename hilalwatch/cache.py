"""
HILALWATCH Request Cache

Memoizes repeated lookups (conjunctions, the target's own night windows)
for the lifetime of one top-level request. A cache is created by the
request, passed down explicitly and cleared when the request ends; nothing
is cached across requests.

Usage:
    with RequestCache() as cache:
        conj = cache.get_or_compute(("next_conjunction", when), lambda: next_conjunction(when))
"""

from __future__ import annotations

from typing import Any, Callable, Hashable, TypeVar

from hilalwatch.logging_config import get_logger

__all__ = ["RequestCache"]

logger = get_logger(__name__)

T = TypeVar("T")


class RequestCache:
    """Per-request memo table keyed by hashable tuples."""

    def __init__(self):
        self._entries: dict[Hashable, Any] = {}
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key: Hashable, compute: Callable[[], T]) -> T:
        """Return the cached value for ``key``, computing it on first use.

        Exceptions from ``compute`` propagate and nothing is stored.
        """
        if key in self._entries:
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        value = compute()
        self._entries[key] = value
        return value

    def clear(self) -> None:
        if self._entries:
            logger.debug(
                f"Request cache cleared: {len(self._entries)} entries, "
                f"{self.hits} hits, {self.misses} misses"
            )
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __enter__(self) -> "RequestCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()
