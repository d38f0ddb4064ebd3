"""Downstream HTTP adapters."""

from relay.adapters.http.sink_client import SinkClient

__all__ = ["SinkClient"]
