"""Tests for request rate limiting."""

import time

import pytest
from limits.storage import MemoryStorage, RedisStorage

from app.storage.rate_limit import RateLimitDecision, RateLimiter, build_storage, client_key

from conftest import FakeClock


@pytest.fixture
def frozen_time(monkeypatch) -> FakeClock:
    """Counters expire against ``time.time``; drive it by hand."""
    clock = FakeClock()
    monkeypatch.setattr(time, "time", clock)
    return clock


class TestRateLimiter:
    def test_allows_up_to_limit(self, frozen_time):
        limiter = RateLimiter(window_seconds=900, max_requests=3)
        decisions = [limiter.hit("1.2.3.4") for _ in range(4)]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]

    def test_clients_counted_separately(self, frozen_time):
        limiter = RateLimiter(window_seconds=900, max_requests=1)
        assert limiter.hit("a").allowed
        assert limiter.hit("b").allowed
        assert not limiter.hit("a").allowed

    def test_window_resets(self, frozen_time):
        limiter = RateLimiter(window_seconds=900, max_requests=1)
        assert limiter.hit("a").allowed
        assert not limiter.hit("a").allowed
        frozen_time.advance(901)
        assert limiter.hit("a").allowed

    def test_retry_after(self, frozen_time):
        limiter = RateLimiter(window_seconds=900, max_requests=1)
        limiter.hit("a")
        frozen_time.advance(300)
        decision = limiter.hit("a")
        assert decision.reset_at == frozen_time.now + 600
        assert decision.retry_after(frozen_time.now) == 600

    def test_stop_clears_memory(self, frozen_time):
        storage = MemoryStorage()
        limiter = RateLimiter(window_seconds=60, max_requests=1, storage=storage)
        limiter.start()
        limiter.hit("a")
        limiter.stop()
        assert limiter.hit("a").allowed


class TestDecision:
    def test_retry_after_at_least_one_second(self):
        decision = RateLimitDecision(allowed=False, limit=1, remaining=0, reset_at=100.0)
        assert decision.retry_after(100.0) == 1
        assert decision.retry_after(98.2) == 2


class TestStorage:
    def test_empty_url_uses_memory(self):
        assert isinstance(build_storage(""), MemoryStorage)

    def test_unreachable_redis_uses_memory(self):
        assert isinstance(build_storage("redis://127.0.0.1:1/0"), MemoryStorage)

    def test_redis_errors_fall_back_to_memory(self):
        storage = RedisStorage("redis://127.0.0.1:1/0", wrap_exceptions=True)
        limiter = RateLimiter(window_seconds=60, max_requests=1, storage=storage)
        first = limiter.hit("a")
        second = limiter.hit("a")
        assert (first.allowed, second.allowed) == (True, False)
        assert first.remaining == 0

class TestClientKey:
    def test_cloudflare_header_first(self):
        headers = {"cf-connecting-ip": "9.9.9.9", "x-real-ip": "8.8.8.8", "x-forwarded-for": "7.7.7.7"}
        assert client_key(headers, "10.0.0.1") == "9.9.9.9"

    def test_real_ip_before_forwarded_for(self):
        assert client_key({"x-real-ip": "8.8.8.8", "x-forwarded-for": "7.7.7.7"}, None) == "8.8.8.8"

    def test_first_forwarded_for_entry(self):
        assert client_key({"x-forwarded-for": " 7.7.7.7 , 10.0.0.2"}, None) == "7.7.7.7"

    def test_peer_fallback(self):
        assert client_key({}, "10.0.0.1") == "10.0.0.1"

    @pytest.mark.parametrize("headers", [{}, {"x-forwarded-for": " , "}, {"x-real-ip": "  "}])
    def test_unknown(self, headers):
        assert client_key(headers, None) == "unknown"
