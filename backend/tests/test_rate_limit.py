"""
Tests for the in-memory rate limiter guarding payment creation and rate refresh.

Tests: RateLimiter window accounting, reset, rate_limit dependency errors and headers.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from types import SimpleNamespace

import pytest

from domain.errors import RateLimitError
from middleware.rate_limit import RateLimiter, rate_limit


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _request(host="10.0.0.1", path="/payment/fapshi"):
    return SimpleNamespace(client=SimpleNamespace(host=host), url=SimpleNamespace(path=path))


class TestRateLimiter:

    @pytest.mark.unit
    def test_limit_enforced_per_key(self):
        limiter = RateLimiter()
        assert all(limiter.check("a", max_requests=3, window_seconds=60) for _ in range(3))
        assert limiter.check("a", max_requests=3, window_seconds=60) is False
        assert limiter.check("b", max_requests=3, window_seconds=60) is True

    @pytest.mark.unit
    def test_rejected_requests_not_counted(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        limiter.check("k", max_requests=1, window_seconds=60)
        clock.now += 30
        assert limiter.check("k", max_requests=1, window_seconds=60) is False
        clock.now += 31
        # Only the first hit was recorded, and it has left the window
        assert limiter.check("k", max_requests=1, window_seconds=60) is True

    @pytest.mark.unit
    def test_old_entries_expire(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        for _ in range(5):
            limiter.check("k", max_requests=5, window_seconds=60)
        assert limiter.remaining("k", max_requests=5, window_seconds=60) == 0
        clock.now += 60
        assert limiter.remaining("k", max_requests=5, window_seconds=60) == 5

    @pytest.mark.unit
    def test_expired_keys_dropped(self):
        clock = FakeClock()
        limiter = RateLimiter(clock=clock)
        for n in range(3):
            limiter.check(f"10.0.0.{n}:/payment/fapshi", max_requests=5, window_seconds=60)
        assert limiter.tracked_keys() == 3
        clock.now += 61
        for n in range(3):
            assert limiter.remaining(f"10.0.0.{n}:/payment/fapshi", max_requests=5, window_seconds=60) == 5
        assert limiter.tracked_keys() == 0

    @pytest.mark.unit
    def test_lookups_do_not_add_keys(self):
        limiter = RateLimiter()
        assert limiter.remaining("never-seen", max_requests=5, window_seconds=60) == 5
        assert limiter.tracked_keys() == 0

    @pytest.mark.unit
    def test_reset(self):
        limiter = RateLimiter()
        limiter.check("k", max_requests=1, window_seconds=60)
        limiter.reset()
        assert limiter.check("k", max_requests=1, window_seconds=60) is True


class TestRateLimitDependency:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_raises_with_headers_when_exceeded(self):
        check = rate_limit(max_requests=2, window_seconds=30)
        request = _request()
        await check(request)
        await check(request)
        with pytest.raises(RateLimitError) as exc_info:
            await check(request)

        error = exc_info.value
        assert error.status_code == 429
        assert error.details == {"limit": 2, "windowSeconds": 30}
        assert error.headers == {
            "Retry-After": "30",
            "X-RateLimit-Limit": "2",
            "X-RateLimit-Remaining": "0",
        }

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_keys_by_client_and_route(self):
        check = rate_limit(max_requests=1, window_seconds=60)
        await check(_request(host="10.0.0.1"))
        await check(_request(host="10.0.0.2"))
        await check(_request(host="10.0.0.1", path="/payment/stripe"))
        with pytest.raises(RateLimitError):
            await check(_request(host="10.0.0.1"))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_client(self):
        check = rate_limit(max_requests=1, window_seconds=60)
        await check(SimpleNamespace(client=None, url=SimpleNamespace(path="/exchange-rates/update")))
        with pytest.raises(RateLimitError):
            await check(SimpleNamespace(client=None, url=SimpleNamespace(path="/exchange-rates/update")))
