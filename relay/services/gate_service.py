"""Admission gate: first limiter of the relay, forwards admitted traffic.

The gate owns one sliding window. Each request is decided against it
exactly once, before any I/O; only admitted requests are forwarded to the
sink, and the sink's answer is mapped to a RelayOutcome so callers can tell a
sink overload from a sink that never answered.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

from relay.adapters.rate_limit.base import AbstractAdmissionCounter
from relay.core.errors import CapacityRejectedError, TransportAppError
from relay.schemas.outcome import RelayOutcome
from relay.schemas.relay import RelayRequest
from relay.services.decision_log import describe_limit, log_decision

logger = logging.getLogger(__name__)


class EchoClient(Protocol):
    async def echo(
        self, request: RelayRequest, *, request_id: str | None = None
    ) -> dict[str, Any]: ...


class AdmissionGate:
    """Limits forwarded throughput and relays admitted requests to the sink.

    Attributes:
        counter: Sliding window owned by this gate.
        sink: Client used to forward admitted requests.
    """

    def __init__(self, counter: AbstractAdmissionCounter, sink: EchoClient) -> None:
        self.counter = counter
        self.sink = sink

    @property
    def limit_description(self) -> str:
        return describe_limit(self.counter.capacity, self.counter.window_seconds)

    async def relay(
        self,
        request: RelayRequest,
        *,
        request_id: str | None = None,
    ) -> RelayOutcome:
        """Decide on one request and forward it when admitted.

        The admission is final before the forward starts: a sink timeout or
        failure does not hand the slot back.

        Args:
            request: Incoming relay body.
            request_id: Correlation id propagated to the sink.

        Returns:
            RelayOutcome in one of the terminal states.
        """
        decision = self.counter.consume()
        log_decision("gate.decision", decision, request, self.counter.window_seconds)

        if not decision.admitted:
            return RelayOutcome.gate_rejected(
                decision.rejected_count,
                detail=f"Request rate exceeds {self.limit_description}",
            )

        start = time.perf_counter()
        try:
            body = await self.sink.echo(request, request_id=request_id)
        except CapacityRejectedError as exc:
            logger.warning(
                "gate.sink_rejected",
                extra={
                    "relay_id": request.id,
                    "error_code": exc.code,
                    "duration_ms": _elapsed_ms(start),
                },
            )
            return RelayOutcome.sink_rejected(exc.message)
        except TransportAppError as exc:
            logger.error(
                "gate.transport_error",
                extra={
                    "relay_id": request.id,
                    "error_code": exc.code,
                    "error_msg": exc.message,
                    "duration_ms": _elapsed_ms(start),
                },
            )
            return RelayOutcome.transport_error(exc.message)

        logger.info(
            "gate.forwarded",
            extra={
                "relay_id": request.id,
                "response": body,
                "duration_ms": _elapsed_ms(start),
            },
        )
        return RelayOutcome.forwarded(body)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
