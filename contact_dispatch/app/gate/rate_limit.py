"""
Per-client submission rate limiting.

Fixed window keyed by client IP: the first hit opens a window of
``window_seconds``; up to ``limit`` hits are allowed inside it. The
default (5 per 15 minutes) matches what a person filling in a contact
form could plausibly need.

Backends:

    Backend   Scope                 On backend error
    ───────   ───────────────────   ─────────────────────────────
    memory    one worker process    n/a
    redis     shared by all         allow the request, log WARNING
              workers (INCR+EXPIRE)

Only POST /contact is limited; health and diagnostics are not.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from fastapi import Request
from redis.exceptions import RedisError

from contact_dispatch.app.core.config import Settings
from contact_dispatch.app.core.errors import RateLimitExceeded
from contact_dispatch.app.core.middleware import client_ip

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit:contact:"

# Prune expired in-memory windows once this many keys are tracked
_PRUNE_THRESHOLD = 10_000


@dataclass
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: int  # seconds until the window resets


class RateLimiter(ABC):
    """Counts hits per key inside a fixed window."""

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window_seconds = window_seconds

    @abstractmethod
    async def hit(self, key: str) -> RateDecision:
        """Record one hit for ``key`` and decide whether it is allowed."""

    async def close(self) -> None:
        return None


class InMemoryRateLimiter(RateLimiter):

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(limit, window_seconds)
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    async def hit(self, key: str) -> RateDecision:
        now = self._clock()
        with self._lock:
            if len(self._windows) > _PRUNE_THRESHOLD:
                self._prune(now)

            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)

        retry_after = max(1, math.ceil(started + self.window_seconds - now))
        return RateDecision(
            allowed=count <= self.limit,
            remaining=max(0, self.limit - count),
            retry_after=retry_after,
        )

    def _prune(self, now: float) -> None:
        expired = [k for k, (s, _) in self._windows.items() if now - s >= self.window_seconds]
        for key in expired:
            del self._windows[key]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisRateLimiter(RateLimiter):
    """Shared window across workers; fails open when Redis is unreachable."""

    def __init__(self, limit: int, window_seconds: int, *, client: aioredis.Redis):
        super().__init__(limit, window_seconds)
        self._client = client

    @classmethod
    def from_url(cls, url: str, limit: int, window_seconds: int) -> "RedisRateLimiter":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        logger.info("Rate limiter using Redis at %s", url)
        return cls(limit, window_seconds, client=client)

    async def hit(self, key: str) -> RateDecision:
        redis_key = f"{KEY_PREFIX}{key}"
        try:
            count = int(await self._client.incr(redis_key))
            if count == 1:
                await self._client.expire(redis_key, self.window_seconds)
                ttl = self.window_seconds
            else:
                ttl = int(await self._client.ttl(redis_key))
                if ttl < 0:
                    # Key survived without an expiry (crash between INCR and EXPIRE)
                    await self._client.expire(redis_key, self.window_seconds)
                    ttl = self.window_seconds
        except (RedisError, OSError) as e:
            logger.warning("Rate limiter Redis error: %s — allowing request", e)
            return RateDecision(allowed=True, remaining=self.limit, retry_after=0)

        return RateDecision(
            allowed=count <= self.limit,
            remaining=max(0, self.limit - count),
            retry_after=max(1, ttl),
        )

    async def close(self) -> None:
        await self._client.aclose()


def build_rate_limiter(settings: Settings) -> Optional[RateLimiter]:
    """Limiter for the configured backend; None when limiting is switched off."""
    limit = settings.RATE_LIMIT_MAX_REQUESTS
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    if limit <= 0 or window <= 0:
        logger.warning("Rate limiting disabled (max=%d, window=%ds)", limit, window)
        return None

    backend = settings.RATE_LIMIT_BACKEND.strip().lower()
    if backend == "redis":
        return RedisRateLimiter.from_url(settings.REDIS_URL, limit, window)
    if backend != "memory":
        logger.warning("Unknown RATE_LIMIT_BACKEND=%r — using memory", settings.RATE_LIMIT_BACKEND)
    return InMemoryRateLimiter(limit, window)


async def enforce_rate_limit(request: Request) -> None:
    """Route dependency: 429 once a client exceeds the window."""
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return
    ip = client_ip(request)
    decision = await limiter.hit(ip)
    if not decision.allowed:
        logger.warning(
            "Rate limit exceeded for %s (limit %d per %ds)",
            ip, limiter.limit, limiter.window_seconds,
        )
        raise RateLimitExceeded(retry_after=decision.retry_after)
