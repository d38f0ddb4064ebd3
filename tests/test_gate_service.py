"""Unit tests for the admission gate service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from unittest.mock import Mock

import pytest

from relay.adapters.rate_limit.sliding_window import SlidingWindowCounter
from relay.core.errors import CapacityRejectedError, TransportAppError
from relay.schemas.outcome import OutcomeKind
from relay.schemas.relay import RelayRequest
from relay.services.decision_log import describe_limit
from relay.services.gate_service import AdmissionGate


class StubSink:
    """Echo client double that records calls and can be told to fail."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[int, str | None]] = []

    async def echo(self, request: RelayRequest, *, request_id: str | None = None) -> dict[str, Any]:
        self.calls.append((request.id, request_id))
        if self.error is not None:
            raise self.error
        return request.model_dump()


def _gate(capacity: int, sink: StubSink) -> AdmissionGate:
    counter = SlidingWindowCounter(capacity=capacity, window_seconds=60, clock=Mock(return_value=0.0))
    return AdmissionGate(counter, sink)


@pytest.mark.asyncio
async def test_admitted_request_is_forwarded_with_request_id() -> None:
    sink = StubSink()
    gate = _gate(2, sink)

    outcome = await gate.relay(RelayRequest.for_call(1), request_id="call-1")

    assert outcome.kind is OutcomeKind.FORWARDED
    assert outcome.body == {"id": 1, "data": "1"}
    assert sink.calls == [(1, "call-1")]


@pytest.mark.asyncio
async def test_rejected_request_never_reaches_sink() -> None:
    sink = StubSink()
    gate = _gate(1, sink)

    await gate.relay(RelayRequest.for_call(1))
    outcome = await gate.relay(RelayRequest.for_call(2))

    assert outcome.kind is OutcomeKind.GATE_REJECTED
    assert outcome.throttled_count == 1
    assert outcome.detail == "Request rate exceeds 1 calls per minute"
    assert [call[0] for call in sink.calls] == [1]


@pytest.mark.asyncio
async def test_sink_overload_is_distinct_from_transport_failure() -> None:
    overloaded = _gate(5, StubSink(CapacityRejectedError(code="sink_rejected", message="Exceeding Limit")))
    unreachable = _gate(5, StubSink(TransportAppError(code="sink_timeout", message="Sink did not respond")))

    rejected = await overloaded.relay(RelayRequest.for_call(1))
    failed = await unreachable.relay(RelayRequest.for_call(1))

    assert rejected.kind is OutcomeKind.SINK_REJECTED
    assert rejected.detail == "Exceeding Limit"
    assert failed.kind is OutcomeKind.TRANSPORT_ERROR
    assert failed.detail == "Sink did not respond"


@pytest.mark.asyncio
async def test_failed_forward_keeps_the_admission() -> None:
    gate = _gate(1, StubSink(TransportAppError(code="sink_timeout", message="timeout")))

    first = await gate.relay(RelayRequest.for_call(1))
    second = await gate.relay(RelayRequest.for_call(2))

    assert first.kind is OutcomeKind.TRANSPORT_ERROR
    assert second.kind is OutcomeKind.GATE_REJECTED
    assert gate.counter.current_count(0.0) == 1


@pytest.mark.asyncio
async def test_concurrent_relays_admit_exactly_capacity() -> None:
    sink = StubSink()
    gate = _gate(10, sink)

    outcomes = await asyncio.gather(*(gate.relay(RelayRequest.for_call(i)) for i in range(1, 26)))

    kinds = [outcome.kind for outcome in outcomes]
    assert kinds.count(OutcomeKind.FORWARDED) == 10
    assert kinds.count(OutcomeKind.GATE_REJECTED) == 15
    assert len(sink.calls) == 10


@pytest.mark.asyncio
async def test_decision_line_carries_pre_and_post_utilization() -> None:
    records: list[logging.LogRecord] = []

    class Collect(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    decision_logger = logging.getLogger("relay.services.decision_log")
    handler = Collect()
    previous_level = decision_logger.level
    decision_logger.addHandler(handler)
    decision_logger.setLevel(logging.DEBUG)
    try:
        gate = _gate(1, StubSink())
        await gate.relay(RelayRequest.for_call(1))
        await gate.relay(RelayRequest.for_call(2))
    finally:
        decision_logger.removeHandler(handler)
        decision_logger.setLevel(previous_level)

    admitted, rejected = records
    assert admitted.getMessage() == "gate.decision"
    assert (admitted.admitted, admitted.count_before, admitted.count_after) == (True, 0, 1)
    assert (rejected.admitted, rejected.count_before, rejected.count_after) == (False, 1, 1)
    assert rejected.rejected_count == 1
    assert rejected.levelno == logging.WARNING


@pytest.mark.parametrize(
    "capacity, window, expected",
    [
        (4096, 60, "4,096 calls per minute"),
        (512, 60.0, "512 calls per minute"),
        (10, 5, "10 calls per 5s"),
        (3, 0.5, "3 calls per 0.5s"),
    ],
)
def test_describe_limit(capacity: int, window: float, expected: str) -> None:
    assert describe_limit(capacity, window) == expected
