"""Sink: terminal limiter that echoes admitted payloads.

The sink's window is independent of the gate's. It only ever sees traffic
the gate already admitted, and with a stricter capacity it is expected to
reject part of it once load passes its own limit.
"""

from __future__ import annotations

from relay.adapters.rate_limit.base import AbstractAdmissionCounter
from relay.schemas.outcome import RelayOutcome
from relay.schemas.relay import RelayRequest
from relay.services.decision_log import log_decision

OVERLOAD_MESSAGE = "Exceeding Limit"


class Sink:
    """Echo service behind its own sliding window."""

    def __init__(self, counter: AbstractAdmissionCounter) -> None:
        self.counter = counter

    def echo(self, request: RelayRequest) -> RelayOutcome:
        """Echo ``request`` if the window has room, otherwise signal overload.

        Never blocks: the decision is taken under the counter's lock and no
        I/O happens here.
        """
        decision = self.counter.consume()
        log_decision("sink.decision", decision, request, self.counter.window_seconds)

        if not decision.admitted:
            return RelayOutcome.sink_rejected(OVERLOAD_MESSAGE)
        return RelayOutcome.forwarded(request.model_dump())
