from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from relay.adapters.rate_limit.base import AbstractAdmissionCounter
from relay.api.routes.dependencies import get_counter
from relay.schemas.relay import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(
    request: Request,
    counter: Annotated[AbstractAdmissionCounter, Depends(get_counter)],
) -> HealthResponse:
    """Health check endpoint.

    Reports the stage's sliding-window utilization. The figures are a
    best-effort snapshot and may already be stale when returned; they are
    never used for admission decisions.

    Returns:
        HealthResponse: Current count, remaining capacity, lifetime
            rejections and configured capacity.
    """

    snapshot = counter.snapshot()
    return HealthResponse(
        service=request.app.state.service_name,
        currentCount=snapshot.current_count,
        remainingCapacity=snapshot.remaining_capacity,
        rejectedCount=snapshot.rejected_count,
        capacity=snapshot.capacity,
        windowSeconds=snapshot.window_seconds,
    )
