"""Rate limiter and counter store interfaces.

The HTTP layer depends on these abstractions (not the concrete in-memory
implementations) so the counter store can move to a shared backend with
atomic increments (e.g. Redis) without touching the decision logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class EndpointClass(str, Enum):
    """Coarse request category used to select a rate limit policy."""

    AUTH = "auth"
    API = "api"
    GENERAL = "general"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Fixed-window policy for one endpoint class.

    Attributes:
        window_seconds: Length of the counting window.
        max_requests: Requests admitted per window.
    """

    window_seconds: float
    max_requests: int

    def __post_init__(self) -> None:
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")


@dataclass
class CounterRecord:
    """Requests observed for one (client, endpoint class) pair."""

    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Configured max requests for the matched class.
        remaining: Quota left in the current window (0 when denied).
        reset_in_seconds: Seconds until the current window ends.
        endpoint_class: Class the decision was made for.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_in_seconds: float
    endpoint_class: EndpointClass


class AbstractCounterStore(ABC):
    """Keyed storage for counter records.

    Implementations must make ``update`` atomic with respect to other calls
    for the same key.
    """

    @abstractmethod
    def get(self, key: str) -> CounterRecord | None:
        """Return the record for key, or None when absent."""
        raise NotImplementedError

    @abstractmethod
    def update(self, key: str, mutate) -> CounterRecord | None:
        """Atomically apply ``mutate(current) -> new`` for key.

        ``mutate`` receives the current record (or None) and returns the
        record to store, or None to leave the store unchanged. The stored
        (or current, when unchanged) record is returned.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_older_than(self, cutoff: float) -> int:
        """Delete records whose window started before cutoff.

        Returns:
            Number of records removed.
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError


class AbstractRateLimiter(ABC):
    """Interface for request admission."""

    @property
    @abstractmethod
    def store(self) -> AbstractCounterStore:
        """Counter store backing this limiter."""
        raise NotImplementedError

    @abstractmethod
    def check_and_admit(
        self,
        client_id: str,
        endpoint_class: EndpointClass | str,
        now: float | None = None,
    ) -> RateLimitDecision:
        """Count a request and decide whether it is admitted.

        Args:
            client_id: Best-effort identifier of the requester.
            endpoint_class: Class selecting the policy.
            now: UNIX time in seconds; defaults to the limiter's clock.

        Returns:
            RateLimitDecision describing the outcome.
        """
        raise NotImplementedError

    @abstractmethod
    def policy_for(self, endpoint_class: EndpointClass | str) -> RateLimitPolicy:
        """Return the policy applied to an endpoint class."""
        raise NotImplementedError

    @abstractmethod
    def maybe_collect_garbage(self, now: float | None = None) -> int:
        """Sweep stale records on a sampled fraction of calls.

        Returns:
            Number of records removed (0 when the sweep did not run).
        """
        raise NotImplementedError
