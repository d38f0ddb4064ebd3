"""Admission counters.

This package provides a small abstraction layer over the in-memory sliding
window so the gate and the sink share one implementation of the
check-and-admit decision.
"""

from relay.adapters.rate_limit.base import (
    AbstractAdmissionCounter,
    AdmissionDecision,
    CounterSnapshot,
)
from relay.adapters.rate_limit.sliding_window import SlidingWindowCounter

__all__ = [
    "AbstractAdmissionCounter",
    "AdmissionDecision",
    "CounterSnapshot",
    "SlidingWindowCounter",
]
