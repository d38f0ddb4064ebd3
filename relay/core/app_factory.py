"""Application factories for the gate and the sink.

Each stage is its own FastAPI app and its own process. The factories own
construction (counter, downstream client, middleware, handlers, routers) so
tests can build isolated instances with fixed clocks or in-process
transports.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable
from urllib.parse import urlparse

import httpx
from fastapi import FastAPI

from relay.adapters.http.sink_client import SinkClient
from relay.adapters.rate_limit.base import AbstractAdmissionCounter
from relay.adapters.rate_limit.sliding_window import SlidingWindowCounter
from relay.api.routes import gate_router, health_router, sink_router
from relay.core.config import GateSettings, SinkSettings, settings
from relay.core.errors import ValidationAppError
from relay.core.exception_handlers import setup_exception_handlers
from relay.core.logging import configure_logging
from relay.core.middleware import request_id_middleware
from relay.services.decision_log import describe_limit
from relay.services.gate_service import AdmissionGate
from relay.services.sink_service import Sink

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _validate_base_url(url: str, *, setting: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationAppError(
            code="invalid_url",
            message=f"{setting} must be an absolute http(s) URL, got {url!r}",
        )


def create_sink_app(
    sink_settings: SinkSettings | None = None,
    *,
    counter: AbstractAdmissionCounter | None = None,
    clock: Callable[[], float] | None = None,
) -> FastAPI:
    """Create the sink application.

    Args:
        sink_settings: Optional settings; defaults to the global sink settings.
        counter: Optional pre-built counter (tests).
        clock: Optional clock for the default counter (tests).

    Returns:
        Configured FastAPI app serving ``POST /echo`` and ``GET /health``.
    """
    cfg = sink_settings or settings.sink
    configure_logging(settings.log, service="sink")

    if counter is None:
        kwargs = {"clock": clock} if clock is not None else {}
        counter = SlidingWindowCounter(
            capacity=cfg.capacity,
            window_seconds=cfg.window_seconds,
            **kwargs,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "sink.started",
            extra={
                "port": cfg.port,
                "limit": describe_limit(counter.capacity, counter.window_seconds),
            },
        )
        yield
        logger.info("sink.stopped")

    app = FastAPI(
        title="Relay Sink",
        description="Echoes admitted payloads; answers 429 once its window is full.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service_name = "sink"
    app.state.counter = counter
    app.state.sink = Sink(counter)

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(sink_router)
    app.include_router(health_router)
    return app


def create_gate_app(
    gate_settings: GateSettings | None = None,
    *,
    counter: AbstractAdmissionCounter | None = None,
    clock: Callable[[], float] | None = None,
    sink_client: SinkClient | None = None,
    sink_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create the admission gate application.

    Args:
        gate_settings: Optional settings; defaults to the global gate settings.
        counter: Optional pre-built counter (tests).
        clock: Optional clock for the default counter (tests).
        sink_client: Optional pre-built sink client.
        sink_transport: Optional transport for the default sink client, e.g.
            ``httpx.ASGITransport(app=create_sink_app())`` to run both stages
            in one process.

    Returns:
        Configured FastAPI app serving ``POST /forward`` and ``GET /health``.

    Raises:
        ValidationAppError: If the sink URL is not an absolute http(s) URL.
    """
    cfg = gate_settings or settings.gate
    configure_logging(settings.log, service="gate")

    if counter is None:
        kwargs = {"clock": clock} if clock is not None else {}
        counter = SlidingWindowCounter(
            capacity=cfg.capacity,
            window_seconds=cfg.window_seconds,
            **kwargs,
        )

    if sink_client is None:
        _validate_base_url(cfg.sink_url, setting="GATE_SINK_URL")
        sink_client = SinkClient(
            cfg.sink_url,
            timeout_seconds=cfg.sink_timeout_seconds,
            pool_timeout_seconds=cfg.sink_pool_timeout_seconds,
            max_connections=cfg.max_connections,
            max_keepalive_connections=cfg.max_keepalive_connections,
            request_id_header=settings.log.request_id_header,
            transport=sink_transport,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "gate.started",
            extra={
                "port": cfg.port,
                "limit": describe_limit(counter.capacity, counter.window_seconds),
                "sink_url": sink_client.base_url,
            },
        )
        try:
            yield
        finally:
            await sink_client.aclose()
            logger.info("gate.stopped")

    app = FastAPI(
        title="Relay Admission Gate",
        description=(
            "Admits calls against a sliding window and forwards admitted calls "
            "to the sink, relaying its answer."
        ),
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.service_name = "gate"
    app.state.counter = counter
    app.state.sink_client = sink_client
    app.state.gate = AdmissionGate(counter, sink_client)

    app.middleware("http")(request_id_middleware)
    setup_exception_handlers(app)

    app.include_router(gate_router)
    app.include_router(health_router)
    return app
