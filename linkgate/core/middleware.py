"""HTTP middleware for request correlation and request admission.

request_id_middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for log correlation
- Injects request_id and total duration into response headers

rate_limit_middleware:
- Samples a sweep of stale counters
- Skips static assets and framework-internal paths
- Classifies the request, identifies the client and counts it
- Answers 429 when the quota is exhausted; attaches X-RateLimit-* headers

Usage (last registered runs first):
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from linkgate.core.config import settings
from linkgate.core.exception_handlers import general_exception_handler
from linkgate.core.logging import clear_request_id, set_request_id
from linkgate.core.rate_limit import (
    apply_rate_limit_headers,
    build_rate_limited_response,
    classify_path,
    get_client_identifier,
    get_rate_limiter,
    hash_client_id,
    is_exempt_path,
    reset_in_whole_seconds,
)

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate a correlation id through logs and response headers.

    If the client provides the configured request id header, that value is
    used; otherwise a new UUID is generated.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response with request id and duration headers added.
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


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """Admit or reject the request according to its endpoint class quota.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        The downstream response, or a 429 JSON response when the quota is
        exhausted. Both carry X-RateLimit-Limit/Remaining/Reset. An unhandled
        error downstream is rendered as a generic 500 that carries them too.
    """

    cfg = settings.rate_limit
    if not cfg.enabled:
        return await call_next(request)

    limiter = get_rate_limiter()
    limiter.maybe_collect_garbage()

    path = request.url.path
    if is_exempt_path(path, cfg):
        return await call_next(request)

    endpoint_class = classify_path(path, cfg)
    client_id = get_client_identifier(request, cfg)
    decision = limiter.check_and_admit(client_id, endpoint_class)

    if not decision.allowed:
        logger.info(
            "rate_limit.exceeded",
            extra={
                "client_hash": hash_client_id(client_id),
                "endpoint_class": endpoint_class.value,
                "route": path,
                "limit": decision.limit,
                "retry_after_s": reset_in_whole_seconds(decision),
            },
        )
        return build_rate_limited_response(decision)

    logger.debug(
        "rate_limit.allowed",
        extra={
            "client_hash": hash_client_id(client_id),
            "endpoint_class": endpoint_class.value,
            "limit": decision.limit,
            "remaining": decision.remaining,
        },
    )

    # The request was counted, so a failing handler still reports its quota.
    try:
        response: Response = await call_next(request)
    except Exception as exc:
        response = await general_exception_handler(request, exc)
    return apply_rate_limit_headers(response, decision)
