"""Tests for AdaptiveRateLimiter."""

import pytest

from bitrix24_mcp.client import AdaptiveRateLimiter


def test_backoff_and_recovery_are_bounded():
    limiter = AdaptiveRateLimiter(initial_rate=2.0, min_rate=0.5, max_rate=2.2)

    limiter.on_rate_limit()
    assert limiter.rate == 1.0
    limiter.on_rate_limit()
    limiter.on_rate_limit()
    assert limiter.rate == 0.5

    for _ in range(50):
        limiter.on_success()
    assert limiter.rate == 2.2


def test_retry_after_pauses_the_next_slot():
    limiter = AdaptiveRateLimiter()
    limiter.on_rate_limit(30)
    assert limiter._pause_until > 0


@pytest.mark.parametrize("rates", [(0, 0, 1), (2.0, 3.0, 4.0), (2.0, 0.5, 1.0)])
def test_invalid_rates(rates):
    initial_rate, min_rate, max_rate = rates
    with pytest.raises(ValueError):
        AdaptiveRateLimiter(initial_rate=initial_rate, min_rate=min_rate, max_rate=max_rate)


async def test_first_acquire_does_not_wait():
    limiter = AdaptiveRateLimiter(initial_rate=10.0, max_rate=10.0)
    await limiter.acquire()
    assert limiter._next_slot > 0
