from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from relay.api.routes.dependencies import get_sink
from relay.schemas.outcome import OutcomeKind
from relay.schemas.relay import RelayRequest, SinkOverloadResponse
from relay.services.sink_service import Sink

router = APIRouter(tags=["Sink"])


@router.post(
    "/echo",
    responses={429: {"model": SinkOverloadResponse, "description": "Sink window is full."}},
)
def echo(
    body: RelayRequest,
    sink: Annotated[Sink, Depends(get_sink)],
) -> JSONResponse:
    """Echo the body unchanged, or answer 429 ``Exceeding Limit``."""
    outcome = sink.echo(body)

    if outcome.kind is OutcomeKind.FORWARDED:
        return JSONResponse(status_code=status.HTTP_200_OK, content=outcome.body)

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=SinkOverloadResponse(message=outcome.detail or "Exceeding Limit").model_dump(),
    )
