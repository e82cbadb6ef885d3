from __future__ import annotations

import time
from datetime import datetime, timezone

import psutil
from fastapi import APIRouter, Response

from linkgate.core.config import settings
from linkgate.core.rate_limit import get_rate_limiter
from linkgate.schemas.health import HealthChecks, HealthResponse, MemoryCheck, RateLimiterCheck

router = APIRouter(tags=["Health"])

_started_at = time.time()


def memory_status(percent_used: float) -> str:
    """Classify memory pressure: above 90% critical, above 70% warning."""
    if percent_used > 90:
        return "critical"
    if percent_used > 70:
        return "warning"
    return "healthy"


def _check_memory() -> MemoryCheck:
    process = psutil.Process()
    rss = process.memory_info().rss
    percent_used = process.memory_percent()
    return MemoryCheck(
        status=memory_status(percent_used),
        rss_mb=round(rss / 1024 / 1024),
        percent_used=round(percent_used),
    )


def _check_rate_limiter() -> RateLimiterCheck:
    if not settings.rate_limit.enabled:
        return RateLimiterCheck(status="disabled", tracked_clients=0)
    return RateLimiterCheck(status="healthy", tracked_clients=len(get_rate_limiter().store))


@router.get("/health", response_model=HealthResponse)
def health_check(response: Response) -> HealthResponse:
    """Health check endpoint.

    Reports process memory pressure and the size of the rate limit counter
    store. Memory above the critical threshold marks the service degraded;
    the status code stays 200 so load balancers keep routing to it.
    """

    checks = HealthChecks(memory=_check_memory(), rate_limiter=_check_rate_limiter())
    overall = "degraded" if checks.memory.status == "critical" else "healthy"

    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app.version,
        uptime=int(time.time() - _started_at),
        checks=checks,
    )
