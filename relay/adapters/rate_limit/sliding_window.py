"""In-memory sliding-window admission counter.

Notes:
- Per-process only: state lives in memory and is lost on restart.
- Thread-safe: one lock serializes prune, compare and insert.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable

from relay.adapters.rate_limit.base import (
    AbstractAdmissionCounter,
    AdmissionDecision,
    CounterSnapshot,
)

DEFAULT_WINDOW_SECONDS = 60.0


class SlidingWindowCounter(AbstractAdmissionCounter):
    """Admission counter over a trailing window of fixed length.

    Admission timestamps are kept in insertion order. An entry stays in the
    window while ``timestamp > now - window_seconds``; once the remaining
    entries reach ``capacity`` further calls are rejected until old entries
    expire. Rejections are counted for the lifetime of the instance and are
    never reset by the window.

    The lock is never held across I/O, so callers on an event loop can use
    the counter directly without awaiting.
    """

    def __init__(
        self,
        *,
        capacity: int,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the counter.

        Args:
            capacity: Maximum admissions per window.
            window_seconds: Window length in seconds.
            clock: Time source returning seconds from a monotonic origin.

        Raises:
            ValueError: If capacity or window_seconds are invalid.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._capacity = capacity
        self._window_seconds = float(window_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._admitted: deque[float] = deque()
        self._rejected_count = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def rejected_count(self) -> int:
        return self._rejected_count

    def _prune_locked(self, now: float) -> None:
        boundary = now - self._window_seconds
        admitted = self._admitted
        while admitted and admitted[0] <= boundary:
            admitted.popleft()

    def consume(self, now: float | None = None) -> AdmissionDecision:
        """Prune expired entries, then admit if a slot is free.

        The prune, compare and insert happen under a single lock so two
        callers can never both take the last slot.

        Args:
            now: Decision instant in seconds; defaults to the counter's clock.

        Returns:
            AdmissionDecision with pre- and post-decision utilization.
        """
        with self._lock:
            if now is None:
                now = self._clock()
            self._prune_locked(now)

            count_before = len(self._admitted)
            if count_before < self._capacity:
                self._admitted.append(now)
                count_after = count_before + 1
                return AdmissionDecision(
                    admitted=True,
                    capacity=self._capacity,
                    count_before=count_before,
                    count_after=count_after,
                    remaining=self._capacity - count_after,
                    rejected_count=self._rejected_count,
                )

            self._rejected_count += 1
            return AdmissionDecision(
                admitted=False,
                capacity=self._capacity,
                count_before=count_before,
                count_after=count_before,
                remaining=max(0, self._capacity - count_before),
                rejected_count=self._rejected_count,
            )

    def current_count(self, now: float | None = None) -> int:
        """Number of admissions still inside the window."""
        with self._lock:
            self._prune_locked(self._clock() if now is None else now)
            return len(self._admitted)

    def remaining_capacity(self, now: float | None = None) -> int:
        return max(0, self._capacity - self.current_count(now))

    def admitted_timestamps(self) -> tuple[float, ...]:
        """Copy of the retained admission timestamps, oldest first."""
        with self._lock:
            return tuple(self._admitted)

    def snapshot(self, now: float | None = None) -> CounterSnapshot:
        current = self.current_count(now)
        return CounterSnapshot(
            capacity=self._capacity,
            window_seconds=self._window_seconds,
            current_count=current,
            remaining_capacity=max(0, self._capacity - current),
            rejected_count=self._rejected_count,
        )
