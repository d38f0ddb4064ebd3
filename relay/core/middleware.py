"""HTTP middleware for request ID propagation and correlation.

The middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars so the gate can forward it to the sink
- Injects request_id into response headers for client-side tracking
- Measures total request duration and includes it in response headers
- Clears context after request completion to prevent context leaks

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from relay.core.config import settings
from relay.core.logging import clear_request_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the caller provides the correlation header (``LOG_REQUEST_ID_HEADER``,
    ``X-Request-ID`` by default) that value is kept, so one id follows a call
    from the driver through the gate to the sink. Otherwise a new UUID is
    generated.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
