"""Load driver issuing an exponentially ramping stream of calls to the gate.

Epoch ``k`` (1-based) issues ``base ** k`` calls whose ids continue from the
previous epoch. Calls inside an epoch run concurrently, but only through a
fixed pool of worker tasks draining a queue over one pooled HTTP client, so
the 65,536-call epoch never opens more than ``concurrency`` sockets. The next
epoch starts once all calls finished and at least ``epoch_seconds`` passed
since the epoch started.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx

from relay.schemas.outcome import OutcomeKind, RelayOutcome
from relay.schemas.relay import RelayRequest

logger = logging.getLogger(__name__)

FORWARD_PATH = "/forward"
SINK_REJECTED_ERROR = "SinkRejected"


@dataclass(frozen=True)
class EpochPlan:
    """Ids issued by one epoch (inclusive bounds)."""

    index: int
    size: int
    first_id: int
    last_id: int

    @property
    def ids(self) -> range:
        return range(self.first_id, self.last_id + 1)


def epoch_plan(epochs: int, base: int = 16, first_id: int = 1) -> list[EpochPlan]:
    """Lay out the ramp: epoch k gets ``base ** k`` consecutive ids.

    Args:
        epochs: Number of epochs.
        base: Growth factor.
        first_id: Id of the very first call.

    Returns:
        One EpochPlan per epoch, in order.

    Raises:
        ValueError: If any argument is below 1.
    """
    if epochs < 1:
        raise ValueError("epochs must be >= 1")
    if base < 1:
        raise ValueError("base must be >= 1")
    if first_id < 1:
        raise ValueError("first_id must be >= 1")

    plans: list[EpochPlan] = []
    next_id = first_id
    for index in range(1, epochs + 1):
        size = base**index
        plans.append(
            EpochPlan(index=index, size=size, first_id=next_id, last_id=next_id + size - 1)
        )
        next_id += size
    return plans


@dataclass(frozen=True)
class CallRecord:
    relay_id: int
    outcome: RelayOutcome
    status_code: int | None
    duration_ms: float


@dataclass
class EpochReport:
    index: int
    size: int
    first_id: int
    last_id: int
    counts: Counter = field(default_factory=Counter)
    elapsed_seconds: float = 0.0
    waited_seconds: float = 0.0

    @property
    def issued(self) -> int:
        return sum(self.counts.values())


@dataclass
class RunReport:
    epochs: list[EpochReport] = field(default_factory=list)

    @property
    def total_issued(self) -> int:
        return sum(epoch.issued for epoch in self.epochs)

    def totals(self) -> dict[OutcomeKind, int]:
        totals: Counter = Counter()
        for epoch in self.epochs:
            totals.update(epoch.counts)
        return {kind: totals.get(kind, 0) for kind in OutcomeKind}


def classify_response(response: httpx.Response) -> RelayOutcome:
    """Map a gate response to the outcome it stands for.

    200 is a forwarded echo, 429 a gate rejection, 500 with
    ``error == "SinkRejected"`` a sink rejection. Anything else is reported as
    a transport error with the status in the detail.
    """
    try:
        body = response.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = None

    status_code = response.status_code
    if status_code == httpx.codes.OK and body is not None:
        return RelayOutcome.forwarded(body)
    if status_code == httpx.codes.TOO_MANY_REQUESTS:
        throttled = body.get("throttledCount") if body else None
        return RelayOutcome.gate_rejected(
            throttled if isinstance(throttled, int) else 0,
            detail=body.get("message") if body else None,
        )
    if (
        status_code == httpx.codes.INTERNAL_SERVER_ERROR
        and body is not None
        and body.get("error") == SINK_REJECTED_ERROR
    ):
        return RelayOutcome.sink_rejected(body.get("message") or "Exceeding Limit")

    message = body.get("message") if body else None
    detail = f"status {status_code}" + (f": {message}" if message else "")
    return RelayOutcome.transport_error(detail)


class LoadDriver:
    """Drives the exponential ramp through the gate and records every call.

    Attributes:
        gate_url: Base URL of the gate.
        plans: Epoch layout computed from ``epochs`` and ``base``.
    """

    def __init__(
        self,
        gate_url: str,
        *,
        epochs: int = 4,
        base: int = 16,
        epoch_seconds: float = 60.0,
        concurrency: int = 50,
        max_keepalive_connections: int = 10,
        timeout_seconds: float = 10.0,
        request_id_header: str = "X-Request-ID",
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_call: Callable[[CallRecord], None] | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if epoch_seconds < 0:
            raise ValueError("epoch_seconds must be >= 0")

        self.gate_url = gate_url
        self.plans = epoch_plan(epochs, base)
        self.epoch_seconds = epoch_seconds
        self.concurrency = concurrency
        self.max_keepalive_connections = min(max_keepalive_connections, concurrency)
        self.timeout_seconds = timeout_seconds
        self.request_id_header = request_id_header
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self._on_call = on_call

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.gate_url,
            timeout=httpx.Timeout(self.timeout_seconds, pool=None),
            limits=httpx.Limits(
                max_connections=self.concurrency,
                max_keepalive_connections=self.max_keepalive_connections,
            ),
            transport=self._transport,
        )

    async def call(self, client: httpx.AsyncClient, relay_id: int) -> CallRecord:
        """Issue one call; failures are recorded, never raised."""
        request = RelayRequest.for_call(relay_id)
        logger.debug("driver.call.start", extra={"relay_id": relay_id, "payload": request.data})

        start = time.perf_counter()
        status_code: int | None = None
        try:
            response = await client.post(
                FORWARD_PATH,
                json=request.model_dump(),
                headers={self.request_id_header: f"call-{relay_id}"},
            )
        except httpx.HTTPError as exc:
            outcome = RelayOutcome.transport_error(f"{exc.__class__.__name__}: {exc}")
        else:
            status_code = response.status_code
            outcome = classify_response(response)

        record = CallRecord(
            relay_id=relay_id,
            outcome=outcome,
            status_code=status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        logger.log(
            logging.WARNING if outcome.kind is OutcomeKind.TRANSPORT_ERROR else logging.INFO,
            "driver.call",
            extra={
                "relay_id": relay_id,
                "outcome": outcome.kind.value,
                "status_code": status_code,
                "response": outcome.body,
                "detail": outcome.detail,
                "duration_ms": record.duration_ms,
            },
        )
        if self._on_call is not None:
            self._on_call(record)
        return record

    async def run_epoch(self, client: httpx.AsyncClient, plan: EpochPlan) -> EpochReport:
        """Issue every call of one epoch through the worker pool."""
        report = EpochReport(
            index=plan.index,
            size=plan.size,
            first_id=plan.first_id,
            last_id=plan.last_id,
        )
        queue: asyncio.Queue[int] = asyncio.Queue()
        for relay_id in plan.ids:
            queue.put_nowait(relay_id)

        async def worker() -> None:
            while True:
                try:
                    relay_id = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                record = await self.call(client, relay_id)
                report.counts[record.outcome.kind] += 1

        # A failing worker cancels its siblings before the client is closed.
        async with asyncio.TaskGroup() as group:
            for _ in range(min(self.concurrency, plan.size)):
                group.create_task(worker())
        return report

    async def run(self) -> RunReport:
        """Run all epochs and return per-epoch outcome counts."""
        run_report = RunReport()
        logger.info(
            "driver.run.start",
            extra={
                "gate_url": self.gate_url,
                "epochs": len(self.plans),
                "planned_calls": sum(plan.size for plan in self.plans),
                "concurrency": self.concurrency,
            },
        )

        async with self._build_client() as client:
            for position, plan in enumerate(self.plans):
                logger.info(
                    "driver.epoch.start",
                    extra={
                        "epoch": plan.index,
                        "size": plan.size,
                        "first_id": plan.first_id,
                        "last_id": plan.last_id,
                    },
                )
                started = self._clock()
                report = await self.run_epoch(client, plan)
                report.elapsed_seconds = self._clock() - started
                run_report.epochs.append(report)

                logger.info(
                    "driver.epoch.complete",
                    extra={
                        "epoch": plan.index,
                        "issued": report.issued,
                        "elapsed_s": round(report.elapsed_seconds, 3),
                        "outcomes": {kind.value: count for kind, count in report.counts.items()},
                    },
                )

                is_last = position == len(self.plans) - 1
                wait = max(0.0, self.epoch_seconds - report.elapsed_seconds)
                if not is_last and wait > 0:
                    logger.info(
                        "driver.epoch.wait",
                        extra={"epoch": plan.index, "wait_s": round(wait, 3)},
                    )
                    await self._sleep(wait)
                    report.waited_seconds = wait

        logger.info(
            "driver.run.complete",
            extra={
                "total_calls": run_report.total_issued,
                "outcomes": {kind.value: count for kind, count in run_report.totals().items()},
            },
        )
        return run_report
