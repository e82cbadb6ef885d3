"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: the store serializes read-modify-write under one lock.
- Advisory: counters reset when the process restarts.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable, Mapping

from linkgate.adapters.rate_limit.base import (
    AbstractCounterStore,
    AbstractRateLimiter,
    CounterRecord,
    EndpointClass,
    RateLimitDecision,
    RateLimitPolicy,
)

logger = logging.getLogger(__name__)


DEFAULT_POLICIES: dict[EndpointClass, RateLimitPolicy] = {
    EndpointClass.AUTH: RateLimitPolicy(window_seconds=15 * 60, max_requests=20),
    EndpointClass.API: RateLimitPolicy(window_seconds=60, max_requests=100),
    EndpointClass.GENERAL: RateLimitPolicy(window_seconds=60, max_requests=200),
}

DEFAULT_RETENTION_SECONDS = 60 * 60
DEFAULT_CLEANUP_PROBABILITY = 0.01


class InMemoryCounterStore(AbstractCounterStore):
    """Dict-backed counter store guarded by a reentrant lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[str, CounterRecord] = {}

    def get(self, key: str) -> CounterRecord | None:
        with self._lock:
            return self._records.get(key)

    def update(
        self,
        key: str,
        mutate: Callable[[CounterRecord | None], CounterRecord | None],
    ) -> CounterRecord | None:
        with self._lock:
            current = self._records.get(key)
            new = mutate(current)
            if new is None:
                return current
            self._records[key] = new
            return new

    def delete_older_than(self, cutoff: float) -> int:
        with self._lock:
            stale = [k for k, rec in self._records.items() if rec.window_start < cutoff]
            for key in stale:
                del self._records[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def build_counter_key(client_id: str, endpoint_class: EndpointClass) -> str:
    """Composite store key for a (client, endpoint class) pair."""
    return f"{client_id}:{endpoint_class.value}"


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Fixed-window counter per (client, endpoint class).

    A window opens on the first request of a key and lasts
    ``window_seconds``. The next request after it elapses replaces the
    record rather than merging into it, so bursts of up to twice the limit
    are possible around a window boundary.
    """

    def __init__(
        self,
        *,
        store: AbstractCounterStore | None = None,
        policies: Mapping[EndpointClass, RateLimitPolicy] | None = None,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        cleanup_probability: float = DEFAULT_CLEANUP_PROBABILITY,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store; a fresh in-memory store when omitted.
            policies: Policy per endpoint class; missing classes use defaults.
            retention_seconds: Age after which records are swept.
            cleanup_probability: Chance in [0, 1] that a call sweeps the store.
            clock: Time source returning UNIX time in seconds.
            rng: Source of uniform floats in [0, 1) used to sample sweeps.

        Raises:
            ValueError: If retention or probability are out of range, or the
                retention is shorter than a policy window.
        """
        merged = dict(DEFAULT_POLICIES)
        if policies:
            merged.update(policies)

        if not 0.0 <= cleanup_probability <= 1.0:
            raise ValueError("cleanup_probability must be within [0, 1]")
        longest_window = max(p.window_seconds for p in merged.values())
        if retention_seconds < longest_window:
            raise ValueError("retention_seconds must be >= the longest policy window")

        self._store = store if store is not None else InMemoryCounterStore()
        self._policies = merged
        self._retention_seconds = retention_seconds
        self._cleanup_probability = cleanup_probability
        self._clock = clock
        self._rng = rng

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    @property
    def retention_seconds(self) -> float:
        return self._retention_seconds

    def policy_for(self, endpoint_class: EndpointClass | str) -> RateLimitPolicy:
        return self._policies[_coerce_endpoint_class(endpoint_class)]

    def check_and_admit(
        self,
        client_id: str,
        endpoint_class: EndpointClass | str,
        now: float | None = None,
    ) -> RateLimitDecision:
        endpoint_class = _coerce_endpoint_class(endpoint_class)
        policy = self._policies[endpoint_class]
        if now is None:
            now = self._clock()
        key = build_counter_key(client_id or "anonymous", endpoint_class)

        decision: RateLimitDecision | None = None

        def _mutate(current: CounterRecord | None) -> CounterRecord | None:
            nonlocal decision
            if current is None or now - current.window_start >= policy.window_seconds:
                decision = RateLimitDecision(
                    allowed=True,
                    limit=policy.max_requests,
                    remaining=policy.max_requests - 1,
                    reset_in_seconds=float(policy.window_seconds),
                    endpoint_class=endpoint_class,
                )
                return CounterRecord(count=1, window_start=now)

            reset_in = policy.window_seconds - (now - current.window_start)
            if current.count >= policy.max_requests:
                # Denied requests leave the count unchanged.
                decision = RateLimitDecision(
                    allowed=False,
                    limit=policy.max_requests,
                    remaining=0,
                    reset_in_seconds=reset_in,
                    endpoint_class=endpoint_class,
                )
                return None

            count = current.count + 1
            decision = RateLimitDecision(
                allowed=True,
                limit=policy.max_requests,
                remaining=policy.max_requests - count,
                reset_in_seconds=reset_in,
                endpoint_class=endpoint_class,
            )
            return CounterRecord(count=count, window_start=current.window_start)

        self._store.update(key, _mutate)
        if decision is None:
            raise RuntimeError("counter store returned without applying the update")
        return decision

    def collect_garbage(self, now: float | None = None) -> int:
        """Delete every record older than the retention horizon."""
        if now is None:
            now = self._clock()
        removed = self._store.delete_older_than(now - self._retention_seconds)
        logger.debug(
            "rate_limit.sweep",
            extra={
                "removed": removed,
                "remaining_records": len(self._store),
                "retention_s": self._retention_seconds,
            },
        )
        return removed

    def maybe_collect_garbage(self, now: float | None = None) -> int:
        if self._rng() >= self._cleanup_probability:
            return 0
        return self.collect_garbage(now)


def _coerce_endpoint_class(value: EndpointClass | str) -> EndpointClass:
    """Map a class name to EndpointClass, defaulting to GENERAL."""
    if isinstance(value, EndpointClass):
        return value
    try:
        return EndpointClass(value)
    except ValueError:
        return EndpointClass.GENERAL
