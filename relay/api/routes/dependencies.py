"""Request-scoped accessors for the objects each app owns."""

from __future__ import annotations

from fastapi import Request

from relay.adapters.rate_limit.base import AbstractAdmissionCounter
from relay.services.gate_service import AdmissionGate
from relay.services.sink_service import Sink


def get_counter(request: Request) -> AbstractAdmissionCounter:
    return request.app.state.counter


def get_gate(request: Request) -> AdmissionGate:
    return request.app.state.gate


def get_sink(request: Request) -> Sink:
    return request.app.state.sink
