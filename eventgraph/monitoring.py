"""Simple performance counters."""

from __future__ import annotations

import threading
import time
from typing import Callable, TypeVar

R = TypeVar("R")


class PerfCounter:
    """Counts operations and their total running time."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._count = 0
        self._total_time = 0.0

    def __repr__(self) -> str:
        return f"PerfCounter(name={self.name!r}, count={self.count})"

    @property
    def count(self) -> int:
        """Number of completed operations."""
        with self._lock:
            return self._count

    @property
    def total_time(self) -> float:
        """Total time in seconds of completed operations."""
        with self._lock:
            return self._total_time

    def measure(self, op: Callable[[], R]) -> R:
        """Run ``op``, record its duration and return its result.

        An operation that raises is not recorded.
        """
        start = time.perf_counter()
        result = op()
        elapsed = time.perf_counter() - start
        with self._lock:
            self._count += 1
            self._total_time += elapsed
        return result

    def average_time(self) -> float:
        """Mean duration in seconds, or 0.0 when nothing was measured."""
        with self._lock:
            if self._count == 0:
                return 0.0
            return self._total_time / self._count