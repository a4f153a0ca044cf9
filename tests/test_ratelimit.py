"""Tests for per-user rate limiting."""

import pytest

from planet_canvas.core.errors import RateLimited
from planet_canvas.core.ratelimit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_allows_up_to_limit(clock):
    limiter = RateLimiter(max_events=3, window_seconds=60, clock=clock)
    assert [limiter.check("alice") for _ in range(3)] == [2, 1, 0]

    with pytest.raises(RateLimited) as exc_info:
        limiter.check("alice")
    assert exc_info.value.retry_after == pytest.approx(60)
    assert exc_info.value.code == "rate_limited"


def test_users_are_independent(clock):
    limiter = RateLimiter(max_events=1, window_seconds=60, clock=clock)
    limiter.check("alice")
    assert limiter.check("bob") == 0


def test_window_resets(clock):
    limiter = RateLimiter(max_events=1, window_seconds=60, clock=clock)
    limiter.check("alice")

    clock.now += 45
    with pytest.raises(RateLimited) as exc_info:
        limiter.check("alice")
    assert exc_info.value.retry_after == pytest.approx(15)

    clock.now += 15
    assert limiter.check("alice") == 0


def test_reset(clock):
    limiter = RateLimiter(max_events=1, window_seconds=60, clock=clock)
    limiter.check("alice")
    limiter.check("bob")

    limiter.reset("alice")
    assert limiter.check("alice") == 0
    with pytest.raises(RateLimited):
        limiter.check("bob")

    limiter.reset()
    assert limiter.check("bob") == 0


def test_zero_limit_rejects_everything(clock):
    limiter = RateLimiter(max_events=0, window_seconds=60, clock=clock)
    with pytest.raises(RateLimited):
        limiter.check("alice")
