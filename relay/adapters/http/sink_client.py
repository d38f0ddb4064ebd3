"""HTTP client adapter used by the gate to reach the sink."""

from __future__ import annotations

from typing import Any

import httpx

from relay.core.errors import CapacityRejectedError, TransportAppError
from relay.schemas.relay import RelayRequest

ECHO_PATH = "/echo"


class SinkClient:
    """Pooled async client for the sink's echo endpoint.

    One instance is shared by every request the gate serves. The pool is
    bounded by ``max_connections``; callers beyond that wait for a free
    socket instead of failing, for at most ``pool_timeout_seconds``, while
    connect/read/write each stay bounded by ``timeout_seconds``. No call is
    retried.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 5.0,
        pool_timeout_seconds: float = 30.0,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        request_id_header: str = "X-Request-ID",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the pooled client.

        Args:
            base_url: Sink base URL, e.g. ``http://localhost:4003``.
            timeout_seconds: Per-phase timeout for each forward call.
            pool_timeout_seconds: Longest wait for a free pooled socket.
            max_connections: Upper bound on concurrent sockets.
            max_keepalive_connections: Idle sockets kept for reuse.
            request_id_header: Header used to propagate the correlation id.
            transport: Optional transport override (tests use ASGI/mock transports).
        """
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.pool_timeout_seconds = pool_timeout_seconds
        self.request_id_header = request_id_header
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, pool=pool_timeout_seconds),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
            ),
            transport=transport,
        )

    async def echo(
        self,
        request: RelayRequest,
        *,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        """Send one request to the sink and return its echo.

        Args:
            request: Relay body to forward.
            request_id: Correlation id to propagate, if any.

        Returns:
            dict[str, Any]: The sink's echoed body.

        Raises:
            CapacityRejectedError: The sink answered 429.
            TransportAppError: The sink was unreachable, timed out, or answered
                with an unexpected status or body.
        """
        headers = {self.request_id_header: request_id} if request_id else None

        try:
            response = await self._client.post(
                ECHO_PATH,
                json=request.model_dump(),
                headers=headers,
            )
        except httpx.PoolTimeout as exc:
            raise TransportAppError(
                code="sink_pool_timeout",
                message=(
                    "No pooled connection to the sink freed up within "
                    f"{self.pool_timeout_seconds}s"
                ),
                details={
                    "relay_id": request.id,
                    "timeout_seconds": self.pool_timeout_seconds,
                },
            ) from exc
        except httpx.TimeoutException as exc:
            raise TransportAppError(
                code="sink_timeout",
                message=f"Sink did not respond within {self.timeout_seconds}s",
                details={
                    "relay_id": request.id,
                    "timeout_seconds": self.timeout_seconds,
                },
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportAppError(
                code="sink_unreachable",
                message=f"Sink request failed: {exc.__class__.__name__}: {exc}",
                details={"relay_id": request.id},
            ) from exc

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise CapacityRejectedError(
                code="sink_rejected",
                message=_overload_message(response),
                details={"relay_id": request.id, "stage": "sink", "http_status": 429},
            )

        if response.status_code != httpx.codes.OK:
            raise TransportAppError(
                code="sink_bad_status",
                message=f"Sink responded with status {response.status_code}",
                details={
                    "relay_id": request.id,
                    "downstream_status": response.status_code,
                },
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportAppError(
                code="sink_bad_body",
                message="Sink responded with a non-JSON body",
                details={"relay_id": request.id},
            ) from exc

        if not isinstance(body, dict):
            raise TransportAppError(
                code="sink_bad_body",
                message="Sink responded with a non-object body",
                details={"relay_id": request.id},
            )
        return body

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()


def _overload_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return "Exceeding Limit"
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return "Exceeding Limit"
