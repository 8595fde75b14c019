import asyncio

import pytest

from cropgenius.core.cache import ResultCache
from cropgenius.core.errors import CircuitOpenError, NetworkError, ValidationError
from cropgenius.core.retry import CircuitBreaker, CircuitState, RetryConfig, compute_delay, retry_async


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_compute_delay_is_capped():
    config = RetryConfig(base_delay=1, max_delay=5, jitter=False)
    assert compute_delay(0, config) == 1
    assert compute_delay(2, config) == 4
    assert compute_delay(10, config) == 5


def test_compute_delay_full_jitter_stays_in_range():
    config = RetryConfig(base_delay=2, jitter=True)
    for _ in range(20):
        assert 0 <= compute_delay(1, config) <= 4


def test_retry_async_recovers_after_transient_failures():
    attempts = []
    sleeps = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise NetworkError("network down")
        return "ok"

    async def fake_sleep(delay):
        sleeps.append(delay)

    result = asyncio.run(retry_async(flaky, RetryConfig(jitter=False), "flaky", sleep=fake_sleep))
    assert result == "ok"
    assert len(attempts) == 3
    assert sleeps == [1.0, 2.0]


def test_retry_async_does_not_retry_permanent_errors():
    attempts = []

    async def bad_input():
        attempts.append(1)
        raise ValidationError("bad input")

    async def fake_sleep(delay):
        raise AssertionError("should not sleep")

    with pytest.raises(ValidationError):
        asyncio.run(retry_async(bad_input, RetryConfig(), sleep=fake_sleep))
    assert len(attempts) == 1


def test_retry_async_gives_up_after_max_retries():
    attempts = []

    async def always_down():
        attempts.append(1)
        raise NetworkError("network down")

    async def fake_sleep(delay):
        pass

    with pytest.raises(NetworkError):
        asyncio.run(retry_async(always_down, RetryConfig(max_retries=2), sleep=fake_sleep))
    assert len(attempts) == 3


def test_circuit_opens_then_half_opens_and_closes():
    clock = FakeClock()
    breaker = CircuitBreaker(name="gemini", failure_threshold=2, reset_timeout=60, clock=clock)

    async def fail():
        raise NetworkError("down")

    async def succeed():
        return "fine"

    for _ in range(2):
        with pytest.raises(NetworkError):
            asyncio.run(breaker.call(fail))
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(CircuitOpenError) as exc:
        asyncio.run(breaker.call(succeed))
    assert exc.value.retry_after == 61

    clock.now += 61
    assert asyncio.run(breaker.call(succeed)) == "fine"
    assert breaker.state == CircuitState.CLOSED
    status = breaker.status()
    assert status["total_requests"] == 3
    assert status["failed_requests"] == 2
    assert status["consecutive_failures"] == 0


def test_failed_trial_call_reopens_circuit():
    clock = FakeClock()
    breaker = CircuitBreaker(name="sentinel", failure_threshold=1, reset_timeout=10, clock=clock)

    async def fail():
        raise NetworkError("down")

    with pytest.raises(NetworkError):
        asyncio.run(breaker.call(fail))
    clock.now += 11
    with pytest.raises(NetworkError):
        asyncio.run(breaker.call(fail))
    assert breaker.state == CircuitState.OPEN


def test_result_cache_expiry_and_stats():
    clock = FakeClock(0)
    cache = ResultCache(ttl=60, maxsize=10, timer=clock)

    cache.set("a", {"v": 1})
    assert cache.get("a") == {"v": 1}
    assert cache.get("missing") is None

    clock.now = 61
    assert cache.get("a") is None

    status = cache.status()
    assert status["hits"] == 1
    assert status["misses"] == 2
    assert status["hit_rate"] == 0.333


def test_result_cache_evicts_when_full_and_deletes_by_prefix():
    cache = ResultCache(ttl=60, maxsize=2)
    cache.set("user1:2024-01-01", 1)
    cache.set("user1:2024-01-02", 2)
    cache.set("user2:2024-01-01", 3)
    assert len(cache) == 2

    cache.delete_prefix("user1:")
    assert cache.status()["keys"] == ["user2:2024-01-01"]
