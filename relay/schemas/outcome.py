"""Outcome of one relay attempt as seen by the gate or the driver."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class OutcomeKind(str, Enum):
    FORWARDED = "forwarded"
    GATE_REJECTED = "gate_rejected"
    SINK_REJECTED = "sink_rejected"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class RelayOutcome:
    """Terminal state of one request.

    Attributes:
        kind: Which terminal state was reached.
        body: Sink echo when forwarded, otherwise the rejection body if any.
        detail: Human-readable reason for rejections and transport errors.
        throttled_count: Gate lifetime rejections when the gate rejected.
    """

    kind: OutcomeKind
    body: dict[str, Any] | None = None
    detail: str | None = None
    throttled_count: int | None = None

    @classmethod
    def forwarded(cls, body: dict[str, Any]) -> "RelayOutcome":
        return cls(kind=OutcomeKind.FORWARDED, body=body)

    @classmethod
    def gate_rejected(cls, throttled_count: int, detail: str | None = None) -> "RelayOutcome":
        return cls(
            kind=OutcomeKind.GATE_REJECTED,
            detail=detail,
            throttled_count=throttled_count,
        )

    @classmethod
    def sink_rejected(cls, detail: str = "Exceeding Limit") -> "RelayOutcome":
        return cls(kind=OutcomeKind.SINK_REJECTED, detail=detail)

    @classmethod
    def transport_error(cls, detail: str) -> "RelayOutcome":
        return cls(kind=OutcomeKind.TRANSPORT_ERROR, detail=detail)
