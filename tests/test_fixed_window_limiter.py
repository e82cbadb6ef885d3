"""Unit tests for the in-memory fixed-window rate limiter."""

import threading
from unittest.mock import Mock

import pytest

from linkgate.adapters.rate_limit.base import CounterRecord, EndpointClass, RateLimitPolicy
from linkgate.adapters.rate_limit.in_memory import (
    FixedWindowRateLimiter,
    InMemoryCounterStore,
    build_counter_key,
)


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def limiter(clock: Mock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(clock=clock, rng=Mock(return_value=0.99))


def test_default_policies(limiter: FixedWindowRateLimiter) -> None:
    assert limiter.policy_for("auth") == RateLimitPolicy(window_seconds=900, max_requests=20)
    assert limiter.policy_for("api") == RateLimitPolicy(window_seconds=60, max_requests=100)
    assert limiter.policy_for("general") == RateLimitPolicy(window_seconds=60, max_requests=200)


def test_auth_quota_counts_down_then_denies(limiter: FixedWindowRateLimiter) -> None:
    remaining = []
    for _ in range(20):
        decision = limiter.check_and_admit("c1", EndpointClass.AUTH)
        assert decision.allowed is True
        assert decision.limit == 20
        remaining.append(decision.remaining)

    assert remaining == list(range(19, -1, -1))

    denied = limiter.check_and_admit("c1", EndpointClass.AUTH)
    assert denied.allowed is False
    assert denied.remaining == 0


def test_denied_request_leaves_count_unchanged() -> None:
    policy = RateLimitPolicy(window_seconds=60, max_requests=2)
    limiter = FixedWindowRateLimiter(policies={EndpointClass.API: policy}, clock=Mock(return_value=0.0))

    for _ in range(5):
        limiter.check_and_admit("k", "api")

    record = limiter.store.get(build_counter_key("k", EndpointClass.API))
    assert record == CounterRecord(count=2, window_start=0.0)


def test_reset_in_reports_time_left_in_window(clock: Mock, limiter: FixedWindowRateLimiter) -> None:
    first = limiter.check_and_admit("c", "api")
    assert first.reset_in_seconds == 60

    clock.return_value = 1015.0
    second = limiter.check_and_admit("c", "api")
    assert second.reset_in_seconds == 45
    assert second.remaining == 98


def test_explicit_now_overrides_clock(limiter: FixedWindowRateLimiter) -> None:
    limiter.check_and_admit("c", "api", now=5000.0)
    decision = limiter.check_and_admit("c", "api", now=5030.0)

    assert decision.remaining == 98
    assert decision.reset_in_seconds == 30


def test_window_expiry_resets_counter(clock: Mock) -> None:
    policy = RateLimitPolicy(window_seconds=10, max_requests=1)
    limiter = FixedWindowRateLimiter(policies={EndpointClass.GENERAL: policy}, clock=clock)

    assert limiter.check_and_admit("k", "general").allowed is True
    blocked = limiter.check_and_admit("k", "general")
    assert blocked.allowed is False
    assert blocked.reset_in_seconds == 10

    # Elapsed time equal to the window length already opens a new window
    clock.return_value = 1010.0
    decision = limiter.check_and_admit("k", "general")
    assert decision.allowed is True
    assert decision.remaining == 0
    assert limiter.store.get("k:general") == CounterRecord(count=1, window_start=1010.0)


def test_window_expiry_resets_regardless_of_prior_count(clock: Mock, limiter: FixedWindowRateLimiter) -> None:
    for _ in range(30):
        limiter.check_and_admit("c", "auth")

    clock.return_value = 1000.0 + 900
    decision = limiter.check_and_admit("c", "auth")
    assert decision.allowed is True
    assert decision.remaining == 19


def test_clients_are_independent(limiter: FixedWindowRateLimiter) -> None:
    for _ in range(100):
        assert limiter.check_and_admit("c2", "api").allowed is True
    assert limiter.check_and_admit("c2", "api").allowed is False

    other = limiter.check_and_admit("c3", "api")
    assert other.allowed is True
    assert other.remaining == 99


def test_endpoint_classes_are_independent(limiter: FixedWindowRateLimiter) -> None:
    for _ in range(20):
        limiter.check_and_admit("c4", "auth")
    assert limiter.check_and_admit("c4", "auth").allowed is False

    api = limiter.check_and_admit("c4", "api")
    assert api.allowed is True
    assert api.endpoint_class is EndpointClass.API


def test_unknown_endpoint_class_uses_general(limiter: FixedWindowRateLimiter) -> None:
    decision = limiter.check_and_admit("c", "bogus")

    assert decision.endpoint_class is EndpointClass.GENERAL
    assert decision.limit == 200


def test_empty_client_id_shares_anonymous_bucket(limiter: FixedWindowRateLimiter) -> None:
    limiter.check_and_admit("", "api")
    decision = limiter.check_and_admit("anonymous", "api")

    assert decision.remaining == 98


def test_collect_garbage_removes_only_stale_records(clock: Mock) -> None:
    limiter = FixedWindowRateLimiter(clock=clock, retention_seconds=3600)
    limiter.check_and_admit("old", "api", now=0.0)
    limiter.check_and_admit("edge", "api", now=10_000.0 - 3600)
    limiter.check_and_admit("fresh", "api", now=9_000.0)

    removed = limiter.collect_garbage(now=10_000.0)

    assert removed == 1
    assert limiter.store.get("old:api") is None
    assert limiter.store.get("edge:api") is not None
    assert limiter.store.get("fresh:api") is not None


def test_maybe_collect_garbage_is_sampled(clock: Mock) -> None:
    rng = Mock(return_value=0.5)
    limiter = FixedWindowRateLimiter(clock=clock, rng=rng, cleanup_probability=0.01)
    limiter.check_and_admit("old", "api", now=-10_000.0)

    assert limiter.maybe_collect_garbage() == 0
    assert len(limiter.store) == 1

    rng.return_value = 0.001
    assert limiter.maybe_collect_garbage() == 1
    assert len(limiter.store) == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"cleanup_probability": -0.1},
        {"cleanup_probability": 1.5},
        {"retention_seconds": 60},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"window_seconds": 0, "max_requests": 1},
        {"window_seconds": 60, "max_requests": 0},
    ],
)
def test_invalid_policy(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RateLimitPolicy(**kwargs)


def test_store_update_keeps_current_when_mutate_returns_none() -> None:
    store = InMemoryCounterStore()
    store.update("k", lambda _: CounterRecord(count=3, window_start=1.0))

    result = store.update("k", lambda current: None)

    assert result == CounterRecord(count=3, window_start=1.0)
    assert len(store) == 1

    store.clear()
    assert len(store) == 0


def test_concurrent_requests_never_exceed_quota() -> None:
    store = InMemoryCounterStore()
    limiter = FixedWindowRateLimiter(
        store=store,
        policies={EndpointClass.API: RateLimitPolicy(window_seconds=60, max_requests=1000)},
        cleanup_probability=0.0,
        clock=lambda: 1000.0,
    )
    threads_count, calls_per_thread = 8, 200
    start = threading.Barrier(threads_count)
    admitted: list[int] = []

    def worker() -> None:
        start.wait()
        allowed = 0
        for _ in range(calls_per_thread):
            if limiter.check_and_admit("shared", EndpointClass.API).allowed:
                allowed += 1
        admitted.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(threads_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(admitted) == 1000
    assert store.get(build_counter_key("shared", EndpointClass.API)) == CounterRecord(
        count=1000, window_start=1000.0
    )


def test_store_that_skips_mutate_is_an_error() -> None:
    store = Mock(spec=InMemoryCounterStore)
    store.update.return_value = None
    limiter = FixedWindowRateLimiter(store=store, clock=lambda: 1000.0, rng=Mock(return_value=0.99))

    with pytest.raises(RuntimeError):
        limiter.check_and_admit("c1", EndpointClass.API)
