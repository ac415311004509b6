"""HTTP middleware for request correlation and admission control.

The request id middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id into response headers for client-side tracking
- Measures total request duration and includes it in response headers

The admission middleware runs the rate limit filter before routing and
either short-circuits with a 429 response or lets the request through with
quota disclosure headers attached.

Usage:
    app.middleware("http")(admission_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id
from app.core.rate_limit import (
    RequestAdmissionFilter,
    build_rate_limit_headers,
    build_rejection_response,
)

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID is
    generated. The ID is propagated back in the response headers and stored
    in contextvars for log correlation.

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
    logger.info(
        "request.completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "route": request.url.path,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 2),
            "slow": duration_ms >= SLOW_REQUEST_MS,
        },
    )
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def admission_middleware(request: Request, call_next) -> Response:
    """HTTP middleware enforcing the rate limit policy of the target route group.

    The filter instance lives on ``app.state.admission_filter`` so it is
    shared by every request the application serves.
    """

    admission_filter: RequestAdmissionFilter = request.app.state.admission_filter
    policy = admission_filter.policy_for(request.url.path)
    if policy is None:
        return await call_next(request)

    decision = await admission_filter.evaluate(request, policy)
    if not decision.allowed:
        return build_rejection_response(request, decision, policy)

    response: Response = await call_next(request)
    for name, value in build_rate_limit_headers(decision, policy).items():
        response.headers.setdefault(name, value)
    return response
