"""Decision log lines shared by the gate and the sink."""

from __future__ import annotations

import logging

from relay.adapters.rate_limit.base import AdmissionDecision
from relay.schemas.relay import RelayRequest

logger = logging.getLogger(__name__)


def describe_limit(capacity: int, window_seconds: float) -> str:
    """Render a limit for humans, e.g. ``4,096 calls per minute``."""
    if window_seconds == 60:
        window = "minute"
    elif float(window_seconds).is_integer():
        window = f"{int(window_seconds)}s"
    else:
        window = f"{window_seconds}s"
    return f"{capacity:,} calls per {window}"


def log_decision(
    event: str,
    decision: AdmissionDecision,
    request: RelayRequest,
    window_seconds: float,
) -> None:
    """Write the decision line for one admission check.

    All figures come from the decision itself so the log never disagrees
    with what the counter actually did.
    """
    logger.log(
        logging.INFO if decision.admitted else logging.WARNING,
        event,
        extra={
            "relay_id": request.id,
            "payload": request.data,
            "admitted": decision.admitted,
            "count_before": decision.count_before,
            "count_after": decision.count_after,
            "remaining": decision.remaining,
            "rejected_count": decision.rejected_count,
            "capacity": decision.capacity,
            "window_s": window_seconds,
        },
    )
