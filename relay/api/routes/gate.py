from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from relay.api.routes.dependencies import get_gate
from relay.core.logging import get_request_id
from relay.schemas.outcome import OutcomeKind
from relay.schemas.relay import (
    ForwardFailureResponse,
    GateThrottledResponse,
    RelayRequest,
)
from relay.services.gate_service import AdmissionGate

router = APIRouter(tags=["Gate"])

SINK_REJECTED_ERROR = "SinkRejected"
FORWARDING_FAILED_ERROR = "Forwarding failed"


@router.post(
    "/forward",
    responses={
        429: {"model": GateThrottledResponse, "description": "Gate window is full."},
        500: {
            "model": ForwardFailureResponse,
            "description": "Sink rejected the call or did not respond.",
        },
    },
)
async def forward(
    body: RelayRequest,
    gate: Annotated[AdmissionGate, Depends(get_gate)],
) -> JSONResponse:
    """Admit or reject one call, forwarding admitted calls to the sink.

    Returns:
        200 with the sink's echo, 429 when the gate's own window is full, or
        500 when the sink rejected the call (``error: SinkRejected``) or could
        not be reached (``error: Forwarding failed``).
    """
    outcome = await gate.relay(body, request_id=get_request_id())

    if outcome.kind is OutcomeKind.FORWARDED:
        return JSONResponse(status_code=status.HTTP_200_OK, content=outcome.body)

    if outcome.kind is OutcomeKind.GATE_REJECTED:
        payload = GateThrottledResponse(
            message=outcome.detail or f"Request rate exceeds {gate.limit_description}",
            throttledCount=outcome.throttled_count or 0,
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=payload.model_dump(),
        )

    error = (
        SINK_REJECTED_ERROR
        if outcome.kind is OutcomeKind.SINK_REJECTED
        else FORWARDING_FAILED_ERROR
    )
    failure = ForwardFailureResponse(error=error, message=outcome.detail or "")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=failure.model_dump(),
    )
