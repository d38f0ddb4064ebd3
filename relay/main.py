"""Process entry points for the three stages.

    relay-sink     # serve POST /echo on SINK_PORT (4003)
    relay-gate     # serve POST /forward on GATE_PORT (4002)
    relay-driver   # run the ramp against DRIVER_GATE_URL
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

import uvicorn

from relay.core.config import settings
from relay.core.logging import configure_logging
from relay.services.load_driver import LoadDriver, RunReport

logger = logging.getLogger(__name__)


def run_sink() -> None:
    uvicorn.run(
        "relay.core.app_factory:create_sink_app",
        factory=True,
        host=settings.sink.host,
        port=settings.sink.port,
        log_level=settings.log.level.lower(),
        access_log=False,
    )


def run_gate() -> None:
    uvicorn.run(
        "relay.core.app_factory:create_gate_app",
        factory=True,
        host=settings.gate.host,
        port=settings.gate.port,
        log_level=settings.log.level.lower(),
        access_log=False,
    )


def _parse_driver_args(argv: list[str] | None) -> argparse.Namespace:
    cfg = settings.driver
    parser = argparse.ArgumentParser(
        prog="relay-driver",
        description="Send an exponentially ramping load through the admission gate.",
    )
    parser.add_argument("--gate-url", default=cfg.gate_url)
    parser.add_argument("--epochs", type=int, default=cfg.epochs)
    parser.add_argument("--base", type=int, default=cfg.base)
    parser.add_argument("--epoch-seconds", type=float, default=cfg.epoch_seconds)
    parser.add_argument("--concurrency", type=int, default=cfg.concurrency)
    parser.add_argument("--timeout-seconds", type=float, default=cfg.timeout_seconds)
    return parser.parse_args(argv)


async def _drive(driver: LoadDriver) -> RunReport:
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    if task is not None and sys.platform != "win32":
        # Cancelling unwinds the client context so pooled sockets are closed.
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    return await driver.run()


def run_driver(argv: list[str] | None = None) -> int:
    args = _parse_driver_args(argv)
    configure_logging(settings.log, service="driver")

    driver = LoadDriver(
        args.gate_url,
        epochs=args.epochs,
        base=args.base,
        epoch_seconds=args.epoch_seconds,
        concurrency=args.concurrency,
        max_keepalive_connections=settings.driver.max_keepalive_connections,
        timeout_seconds=args.timeout_seconds,
        request_id_header=settings.log.request_id_header,
    )

    try:
        asyncio.run(_drive(driver))
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.warning("driver.interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(run_driver())
