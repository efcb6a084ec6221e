"""Fixed-window request counting per client, Redis-backed with in-memory fallback."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import redis
import structlog
from limits import RateLimitItemPerSecond
from limits.errors import StorageError
from limits.storage import MemoryStorage, RedisStorage, Storage
from limits.strategies import FixedWindowRateLimiter

from app.config import settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(1, math.ceil(self.reset_at - now))


def build_storage(redis_url: str) -> Storage:
    """Redis when configured and reachable; otherwise in-memory."""
    if not redis_url:
        return MemoryStorage()
    try:
        storage = RedisStorage(redis_url, wrap_exceptions=True)
    except (redis.RedisError, ValueError) as exc:
        logger.warning("redis_unavailable", msg="Falling back to in-memory rate limiter", error=str(exc))
        return MemoryStorage()
    if not storage.check():
        logger.warning("redis_unavailable", msg="Falling back to in-memory rate limiter")
        return MemoryStorage()
    logger.info("redis_connected", url=redis_url)
    return storage


class RateLimiter:
    """Counts requests per client key within a fixed window.

    Counters live in a ``limits`` storage and expire with their window.
    When a shared storage fails mid-request the limiter keeps counting in
    a process-local memory storage instead of rejecting traffic.
    """

    def __init__(
        self,
        window_seconds: Optional[int] = None,
        max_requests: Optional[int] = None,
        storage: Optional[Storage] = None,
    ):
        self.window_seconds = int(window_seconds or settings.rate_limit_window_seconds)
        self.max_requests = int(max_requests or settings.rate_limit_max_requests)
        self.item = RateLimitItemPerSecond(self.max_requests, self.window_seconds)
        self.storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self.storage)
        self._fallback: Optional[FixedWindowRateLimiter] = None
        self._started = False

    def start(self) -> None:
        self._started = True
        logger.info(
            "rate_limiter_started",
            window_seconds=self.window_seconds,
            max_requests=self.max_requests,
            storage=type(self.storage).__name__,
        )

    def stop(self) -> None:
        """Release process-local counters. Shared Redis counters are left to expire."""
        if not self._started:
            return
        if isinstance(self.storage, MemoryStorage):
            self.storage.reset()
        if self._fallback is not None:
            self._fallback.storage.reset()
            self._fallback = None
        self._started = False

    def hit(self, key: str) -> RateLimitDecision:
        try:
            allowed, stats = self._count(self._strategy, key)
        except StorageError as exc:
            logger.warning("redis_unavailable", msg="Counting in memory", error=str(exc.storage_error))
            allowed, stats = self._count(self._memory_fallback(), key)

        if not allowed:
            logger.warning("rate_limited", client=key, limit=self.max_requests)
        return RateLimitDecision(
            allowed=allowed,
            limit=self.max_requests,
            remaining=stats.remaining,
            reset_at=stats.reset_time,
        )

    def _count(self, strategy: FixedWindowRateLimiter, key: str):
        allowed = strategy.hit(self.item, key)
        return allowed, strategy.get_window_stats(self.item, key)

    def _memory_fallback(self) -> FixedWindowRateLimiter:
        if self._fallback is None:
            self._fallback = FixedWindowRateLimiter(MemoryStorage())
        return self._fallback


def client_key(headers, peer: Optional[str]) -> str:
    """Identify the client from proxy headers, falling back to the socket peer."""
    for header in ("cf-connecting-ip", "x-real-ip"):
        value = headers.get(header)
        if value and value.strip():
            return value.strip()
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer or "unknown"
