"""Tests for the pooled sink client adapter."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from relay.adapters.http.sink_client import SinkClient
from relay.core.errors import CapacityRejectedError, ErrorDetails, TransportAppError
from relay.schemas.relay import RelayRequest


def _client(handler) -> SinkClient:
    return SinkClient(
        "http://sink.test",
        timeout_seconds=0.5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_returns_echo_and_propagates_request_id() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["request_id"] = request.headers.get("X-Request-ID", "")
        return httpx.Response(200, content=request.content, headers={"content-type": "application/json"})

    client = _client(handler)
    try:
        body = await client.echo(RelayRequest.for_call(7), request_id="call-7")
    finally:
        await client.aclose()

    assert body == {"id": 7, "data": "7"}
    assert seen == {"path": "/echo", "request_id": "call-7"}


@pytest.mark.asyncio
async def test_429_raises_capacity_rejected() -> None:
    client = _client(lambda request: httpx.Response(429, json={"message": "Exceeding Limit"}))
    try:
        with pytest.raises(CapacityRejectedError) as exc_info:
            await client.echo(RelayRequest.for_call(1))
    finally:
        await client.aclose()

    assert exc_info.value.message == "Exceeding Limit"
    assert exc_info.value.code == "sink_rejected"


@pytest.mark.asyncio
async def test_timeout_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)
    try:
        with pytest.raises(TransportAppError) as exc_info:
            await client.echo(RelayRequest.for_call(2))
    finally:
        await client.aclose()

    assert exc_info.value.code == "sink_timeout"


@pytest.mark.asyncio
async def test_pool_wait_is_bounded() -> None:
    release = asyncio.Event()

    async def stall(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await release.wait()
        writer.close()

    server = await asyncio.start_server(stall, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    client = SinkClient(
        f"http://127.0.0.1:{port}",
        timeout_seconds=5.0,
        pool_timeout_seconds=0.2,
        transport=httpx.AsyncHTTPTransport(limits=httpx.Limits(max_connections=1)),
    )
    holder = asyncio.create_task(client.echo(RelayRequest.for_call(1)))
    try:
        await asyncio.sleep(0.1)
        with pytest.raises(TransportAppError) as exc_info:
            await client.echo(RelayRequest.for_call(2))
    finally:
        holder.cancel()
        release.set()
        await asyncio.gather(holder, return_exceptions=True)
        await client.aclose()
        server.close()

    assert exc_info.value.code == "sink_pool_timeout"
    assert exc_info.value.details == {"relay_id": 2, "timeout_seconds": 0.2}


@pytest.mark.asyncio
async def test_pool_timeout_is_not_reported_as_sink_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.PoolTimeout("no free connection", request=request)

    client = _client(handler)
    try:
        with pytest.raises(TransportAppError) as exc_info:
            await client.echo(RelayRequest.for_call(4))
    finally:
        await client.aclose()

    assert exc_info.value.code == "sink_pool_timeout"
    assert "pooled connection" in exc_info.value.message


@pytest.mark.asyncio
async def test_connection_refused_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(TransportAppError) as exc_info:
            await client.echo(RelayRequest.for_call(3))
    finally:
        await client.aclose()

    assert exc_info.value.code == "sink_unreachable"
    assert "ConnectError" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, code",
    [
        (httpx.Response(503, text="unavailable"), "sink_bad_status"),
        (httpx.Response(200, text="not json"), "sink_bad_body"),
        (httpx.Response(200, json=[1, 2, 3]), "sink_bad_body"),
    ],
)
async def test_unexpected_answers_are_transport_errors(response: httpx.Response, code: str) -> None:
    client = _client(lambda request: response)
    try:
        with pytest.raises(TransportAppError) as exc_info:
            await client.echo(RelayRequest.for_call(4))
    finally:
        await client.aclose()

    assert exc_info.value.code == code
    assert set(exc_info.value.details) <= ErrorDetails.__optional_keys__
