"""Pydantic schema for the rate limit rejection body."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitExceededResponse(BaseModel):
    """Body returned with HTTP 429."""

    error: str = Field("Too Many Requests", description="Short error title.")
    message: str = Field(
        ...,
        description="Human-readable retry guidance, e.g. 'Please try again in 42 seconds.'",
    )
