"""Application-level exception types.

This module defines the relay's error taxonomy, enabling consistent error
handling, logging, and API responses across the gate and the sink.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    http_status: int
    stage: str
    relay_id: int
    timeout_seconds: float
    downstream_status: int


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when a relay request or configuration is malformed."""


class CapacityRejectedError(AppError):
    """Raised when a sliding window declines an admission.

    Expected under load; not a fault.
    """


class TransportAppError(AppError):
    """Raised when a downstream stage is unreachable, times out, or answers
    with something other than an echo or an overload signal."""
