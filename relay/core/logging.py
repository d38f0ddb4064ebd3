"""Structured logging for the relay stages.

Each stage emits one JSON line per admission decision, so the configured
handler doubles as the stage's append-only decision log. Records are stamped
with the owning stage and the current request id; transport credentials that
end up in ``extra`` are masked.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from relay.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Relay bodies are opaque and logged as-is; only credentials are masked.
REDACTED_KEYS: frozenset[str] = frozenset(
    {"authorization", "proxy-authorization", "cookie", "set-cookie", "x-api-key", "password", "token"}
)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def _mask(value: Any, keys: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {k: "[REDACTED]" if k.lower() in keys else _mask(v, keys) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_mask(v, keys) for v in value)
    return value


class RecordContextFilter(logging.Filter):
    """Stamp ``request_id`` and ``service`` on records that lack them."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        request_id = get_request_id()
        if request_id and getattr(record, "request_id", None) is None:
            record.request_id = request_id
        if self.service and getattr(record, "service", None) is None:
            record.service = self.service
        return True


class JsonFormatter(logging.Formatter):
    """Render a record and its ``extra`` fields as a single JSON object."""

    def __init__(self, *, redacted_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.redacted_keys = frozenset(k.lower() for k in (redacted_keys or REDACTED_KEYS))

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            payload[key] = "[REDACTED]" if key.lower() in self.redacted_keys else _mask(
                value, self.redacted_keys
            )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _open_handler(cfg: LogSettings, service: str | None) -> logging.Handler:
    if cfg.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    path = Path(cfg.file_path or f"logs/{service or 'relay'}.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if cfg.max_bytes:
        return RotatingFileHandler(
            path, maxBytes=cfg.max_bytes, backupCount=cfg.backup_count, encoding="utf-8"
        )
    return logging.FileHandler(path, encoding="utf-8")


def configure_logging(
    log_settings: LogSettings | None = None,
    *,
    service: str | None = None,
) -> None:
    """Route the root logger through one JSON (or plain) handler.

    Args:
        log_settings: Optional log settings; defaults to the global ones.
        service: Stage name stamped on every record (gate, sink, driver).
    """
    cfg = log_settings or settings.log
    level = getattr(logging, cfg.level.upper(), logging.INFO)

    handler = _open_handler(cfg, service)
    handler.addFilter(RecordContextFilter(service))
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
    # One line per pooled request would drown the decision log
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
