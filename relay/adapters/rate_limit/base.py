"""Admission counter interfaces.

The gate and the sink depend on this abstraction (not the concrete
implementation) so tests can drive them with fixed clocks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of one atomic check-and-admit.

    Attributes:
        admitted: Whether the caller was granted a slot.
        capacity: Max admissions per window.
        count_before: Admissions in the window when the decision was taken.
        count_after: Admissions in the window once the decision was applied.
        remaining: Free slots left after the decision.
        rejected_count: Lifetime rejections, including this call if rejected.
    """

    admitted: bool
    capacity: int
    count_before: int
    count_after: int
    remaining: int
    rejected_count: int


@dataclass(frozen=True)
class CounterSnapshot:
    """Best-effort view of a counter for health endpoints."""

    capacity: int
    window_seconds: float
    current_count: int
    remaining_capacity: int
    rejected_count: int


class AbstractAdmissionCounter(ABC):
    """Interface for admission counters."""

    @property
    @abstractmethod
    def capacity(self) -> int:
        raise NotImplementedError

    @property
    @abstractmethod
    def window_seconds(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def consume(self, now: float | None = None) -> AdmissionDecision:
        """Atomically decide whether one more admission fits.

        Args:
            now: Decision instant in seconds; defaults to the counter's clock.

        Returns:
            AdmissionDecision describing the outcome.
        """
        raise NotImplementedError

    def try_admit(self, now: float | None = None) -> bool:
        """Return True and record the admission when a slot is free."""
        return self.consume(now).admitted

    @abstractmethod
    def snapshot(self, now: float | None = None) -> CounterSnapshot:
        """Return a best-effort view of the counter."""
        raise NotImplementedError
