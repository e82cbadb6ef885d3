"""Rate limiting wiring for the HTTP layer.

Connects the limiter adapter to incoming requests:
- classify a request path into an endpoint class (or exempt it)
- derive a best-effort client identifier from proxy headers
- build the process-wide limiter from settings
- render quota headers and the 429 response

Client identity comes from headers a client can forge unless a trusted
proxy overwrites them. Set RATE_LIMIT_TRUST_PROXY_HEADERS=false when the
service is reachable without one.
"""

from __future__ import annotations

import hashlib
import math

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from linkgate.adapters.rate_limit.base import (
    AbstractRateLimiter,
    EndpointClass,
    RateLimitDecision,
    RateLimitPolicy,
)
from linkgate.adapters.rate_limit.in_memory import FixedWindowRateLimiter, InMemoryCounterStore
from linkgate.core.config import RateLimitSettings, settings
from linkgate.core.errors import ConfigurationAppError
from linkgate.schemas.rate_limit import RateLimitExceededResponse

ANONYMOUS_CLIENT = "anonymous"

# Checked in priority order: CDN edge header, generic proxy header, then
# the first hop of the forwarded-for chain.
CLIENT_IP_HEADERS = ("cf-connecting-ip", "x-real-ip")
FORWARDED_FOR_HEADER = "x-forwarded-for"

HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"


_limiter: AbstractRateLimiter | None = None
_limiter_config: RateLimitSettings | None = None


def is_exempt_path(path: str | None, cfg: RateLimitSettings | None = None) -> bool:
    """Return True for static assets and framework-internal paths.

    Any path under an exempt prefix, or containing a dot (a file extension),
    bypasses classification and limiting.
    """

    cfg = cfg or settings.rate_limit
    if not path:
        return False
    if any(path.startswith(prefix) for prefix in cfg.exempt_prefixes):
        return True
    return "." in path


def classify_path(path: str | None, cfg: RateLimitSettings | None = None) -> EndpointClass:
    """Map a request path to exactly one endpoint class.

    Examples:
        >>> classify_path("/api/auth/signin")
        <EndpointClass.AUTH: 'auth'>
        >>> classify_path("/api/bookmarks")
        <EndpointClass.API: 'api'>
        >>> classify_path("/dashboard")
        <EndpointClass.GENERAL: 'general'>
    """

    cfg = cfg or settings.rate_limit
    if not path:
        return EndpointClass.GENERAL
    if path.startswith(cfg.auth_path_prefix):
        return EndpointClass.AUTH
    if path.startswith(cfg.api_path_prefix):
        return EndpointClass.API
    return EndpointClass.GENERAL


def get_client_identifier(request: Request, cfg: RateLimitSettings | None = None) -> str:
    """Derive the identifier a request's quota is attributed to.

    With proxy headers trusted: cf-connecting-ip, then x-real-ip, then the
    first entry of x-forwarded-for. Otherwise the socket peer address.
    Falls back to a shared "anonymous" bucket.
    """

    cfg = cfg or settings.rate_limit

    if cfg.trust_proxy_headers:
        for header in CLIENT_IP_HEADERS:
            value = (request.headers.get(header) or "").strip()
            if value:
                return value

        forwarded = request.headers.get(FORWARDED_FOR_HEADER)
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop

        return ANONYMOUS_CLIENT

    if request.client and request.client.host:
        return request.client.host
    return ANONYMOUS_CLIENT


def hash_client_id(client_id: str) -> str:
    """Hash the client identifier for logging without exposing addresses."""
    return hashlib.sha256(client_id.encode()).hexdigest()[:16]


def build_policies(cfg: RateLimitSettings) -> dict[EndpointClass, RateLimitPolicy]:
    """Build per-class policies from settings.

    Raises:
        ConfigurationAppError: If a window or ceiling is out of range.
    """

    raw = {
        EndpointClass.AUTH: (cfg.auth_window_seconds, cfg.auth_max_requests),
        EndpointClass.API: (cfg.api_window_seconds, cfg.api_max_requests),
        EndpointClass.GENERAL: (cfg.general_window_seconds, cfg.general_max_requests),
    }

    policies: dict[EndpointClass, RateLimitPolicy] = {}
    for endpoint_class, (window_seconds, max_requests) in raw.items():
        try:
            policies[endpoint_class] = RateLimitPolicy(
                window_seconds=window_seconds,
                max_requests=max_requests,
            )
        except ValueError as exc:
            raise ConfigurationAppError(
                code="invalid_rate_limit_policy",
                message=str(exc),
                details={"endpoint_class": endpoint_class.value},
            ) from exc
    return policies


def build_rate_limiter(cfg: RateLimitSettings) -> AbstractRateLimiter:
    """Construct an in-memory limiter for the given settings.

    Raises:
        ConfigurationAppError: If the settings describe an invalid limiter.
    """

    policies = build_policies(cfg)
    try:
        return FixedWindowRateLimiter(
            store=InMemoryCounterStore(),
            policies=policies,
            retention_seconds=cfg.retention_seconds,
            cleanup_probability=cfg.cleanup_probability,
        )
    except ValueError as exc:
        raise ConfigurationAppError(
            code="invalid_rate_limit_config",
            message=str(exc),
            details={"hint": "retention_seconds must cover every policy window"},
        ) from exc


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide rate limiter instance.

    The instance is cached in-module to preserve counters across requests.
    If configuration changes (primarily in tests), the limiter is rebuilt.
    """

    global _limiter, _limiter_config

    config = settings.rate_limit
    if _limiter is None or _limiter_config != config:
        _limiter = build_rate_limiter(config)
        _limiter_config = config.model_copy(deep=True)

    return _limiter


def reset_rate_limiter() -> None:
    """Drop the cached limiter so the next request starts with empty counters."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def reset_in_whole_seconds(decision: RateLimitDecision) -> int:
    """Seconds until the window resets, rounded up."""
    return max(0, math.ceil(decision.reset_in_seconds))


def apply_rate_limit_headers(response: Response, decision: RateLimitDecision) -> Response:
    """Attach quota-status headers to a response."""

    response.headers[HEADER_LIMIT] = str(decision.limit)
    response.headers[HEADER_REMAINING] = str(decision.remaining)
    response.headers[HEADER_RESET] = str(reset_in_whole_seconds(decision))
    return response


def build_rate_limited_response(decision: RateLimitDecision) -> JSONResponse:
    """Build the HTTP 429 response for a denied request."""

    retry_after = reset_in_whole_seconds(decision)
    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=RateLimitExceededResponse(
            message=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
        ).model_dump(),
        headers={"Retry-After": str(retry_after)},
    )
    return apply_rate_limit_headers(response, decision)
