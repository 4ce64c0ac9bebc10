"""
Tests for RateLimiter using a fake clock.
"""

import pytest

from news_chat.ingestion.rate_limiter import RateLimiter


class FakeClock:
    """Clock whose sleep advances time instead of blocking."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestRateLimiter:

    def test_first_acquire_does_not_wait(self, clock):
        limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)

        assert limiter.acquire() == 0.0
        assert clock.sleeps == []

    def test_back_to_back_calls_wait_full_interval(self, clock):
        limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)

        limiter.acquire()
        waited = limiter.acquire()

        assert waited == pytest.approx(2.0)
        assert clock.sleeps == [pytest.approx(2.0)]

    def test_waits_only_the_remaining_time(self, clock):
        limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)

        limiter.acquire()
        clock.now += 1.5
        waited = limiter.acquire()

        assert waited == pytest.approx(0.5)

    def test_no_wait_after_interval_elapsed(self, clock):
        limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)

        limiter.acquire()
        clock.now += 5
        assert limiter.acquire() == 0.0

    def test_successive_calls_are_spaced(self, clock):
        limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
        stamps = []

        for _ in range(4):
            limiter.acquire()
            stamps.append(clock.now)

        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(gap >= 1.0 for gap in gaps)

    def test_reset_forgets_last_call(self, clock):
        limiter = RateLimiter(2.0, clock=clock, sleep=clock.sleep)

        limiter.acquire()
        limiter.reset()

        assert limiter.acquire() == 0.0

    def test_zero_interval_never_waits(self, clock):
        limiter = RateLimiter(0, clock=clock, sleep=clock.sleep)

        limiter.acquire()
        limiter.acquire()

        assert clock.sleeps == []

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            RateLimiter(-1)
