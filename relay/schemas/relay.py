"""Pydantic schemas for relay requests and stage responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class RelayRequest(BaseModel):
    """Body exchanged between driver, gate and sink.

    Immutable once built; the sink echoes it back unchanged.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Strict so booleans, numeric strings and 1.0 are rejected, not coerced.
    id: StrictInt = Field(
        ..., gt=0, description="Call number, unique and increasing within a driver run."
    )
    data: StrictStr = Field(
        ..., description="Opaque payload (the decimal form of id when issued by the driver)."
    )

    @classmethod
    def for_call(cls, call_id: int) -> "RelayRequest":
        """Build the request the load driver sends for ``call_id``."""
        return cls(id=call_id, data=str(call_id))


class GateThrottledResponse(BaseModel):
    """Body of a 429 returned by the gate when its own window is full."""

    error: str = "Throttled"
    message: str
    throttledCount: int


class ForwardFailureResponse(BaseModel):
    """Body of a 500 returned by the gate when forwarding did not yield an echo."""

    error: str
    message: str


class SinkOverloadResponse(BaseModel):
    """Body of a 429 returned by the sink."""

    message: str = "Exceeding Limit"


class HealthResponse(BaseModel):
    """Best-effort counter snapshot; never used for admission decisions."""

    status: str = "ok"
    service: str
    currentCount: int
    remainingCapacity: int
    rejectedCount: int
    capacity: int
    windowSeconds: float
