"""Pydantic schemas for the health endpoint."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class MemoryCheck(BaseModel):
    """Process memory usage snapshot."""

    status: Literal["healthy", "warning", "critical"]
    rss_mb: int = Field(..., description="Resident set size of the process in MB.")
    percent_used: int = Field(
        ..., description="Process RSS as a percentage of total system memory."
    )


class RateLimiterCheck(BaseModel):
    """Counter store snapshot."""

    status: Literal["healthy", "disabled"]
    tracked_clients: int = Field(
        ..., description="Number of (client, endpoint class) counters currently held."
    )


class HealthChecks(BaseModel):
    memory: MemoryCheck
    rate_limiter: RateLimiterCheck


class HealthResponse(BaseModel):
    """Overall service health for monitors and load balancers."""

    status: Literal["healthy", "degraded"]
    timestamp: str = Field(..., description="ISO-8601 UTC time of the check.")
    version: str
    uptime: int = Field(..., description="Seconds since the process started.")
    checks: HealthChecks
