from __future__ import annotations

from relay.api.routes.gate import router as gate_router
from relay.api.routes.health import router as health_router
from relay.api.routes.sink import router as sink_router

__all__ = ["gate_router", "health_router", "sink_router"]
