"""
test_gate.py — Origin allow-list and rate limiters.

Run with:
    pytest tests/test_gate.py -v
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from contact_dispatch.app.core.errors import OriginNotAllowed
from contact_dispatch.app.gate.origins import OriginPolicy
from contact_dispatch.app.gate.rate_limit import (
    InMemoryRateLimiter,
    RedisRateLimiter,
    build_rate_limiter,
)


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _hits(limiter, key, n):
    return [asyncio.run(limiter.hit(key)) for _ in range(n)]


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Origins
# ═══════════════════════════════════════════════════════════════════════════

class TestOriginPolicy:

    def test_empty_list_allows_everything(self):
        policy = OriginPolicy([])
        assert policy.allow_all
        assert policy.is_allowed("https://anywhere.test")

    def test_listed_origin_allowed(self):
        policy = OriginPolicy(["https://tours.test", "http://localhost:5173"])
        assert policy.is_allowed("https://tours.test")
        assert policy.is_allowed("http://localhost:5173")

    def test_unlisted_origin_refused(self):
        policy = OriginPolicy(["https://tours.test"])
        assert not policy.is_allowed("https://evil.test")
        with pytest.raises(OriginNotAllowed) as excinfo:
            policy.check("https://evil.test")
        assert excinfo.value.status_code == 403

    def test_missing_origin_passes(self):
        policy = OriginPolicy(["https://tours.test"])
        assert policy.is_allowed(None)
        assert policy.is_allowed("")

    def test_case_and_trailing_slash_ignored(self):
        policy = OriginPolicy(["https://Tours.test/"])
        assert policy.is_allowed("https://tours.test")

    def test_scheme_and_port_matter(self):
        policy = OriginPolicy(["https://tours.test"])
        assert not policy.is_allowed("http://tours.test")
        assert not policy.is_allowed("https://tours.test:8443")


class TestAllowedOriginsSetting:

    def test_comma_list_plus_frontend_url(self, make_settings):
        settings = make_settings(
            ALLOWED_ORIGINS="https://a.test, https://b.test,,",
            FRONTEND_URL="https://front.test",
        )
        assert settings.allowed_origins == ["https://a.test", "https://b.test", "https://front.test"]

    def test_frontend_url_not_duplicated(self, make_settings):
        settings = make_settings(ALLOWED_ORIGINS="https://a.test", FRONTEND_URL="https://a.test")
        assert settings.allowed_origins == ["https://a.test"]


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: In-memory limiter
# ═══════════════════════════════════════════════════════════════════════════

class TestInMemoryRateLimiter:

    def test_allows_up_to_limit(self):
        limiter = InMemoryRateLimiter(5, 900, clock=_Clock())
        decisions = _hits(limiter, "1.2.3.4", 6)
        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        assert decisions[4].remaining == 0

    def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(1, 900, clock=_Clock())
        assert asyncio.run(limiter.hit("a")).allowed
        assert asyncio.run(limiter.hit("b")).allowed
        assert not asyncio.run(limiter.hit("a")).allowed

    def test_window_resets(self):
        clock = _Clock()
        limiter = InMemoryRateLimiter(1, 900, clock=clock)
        asyncio.run(limiter.hit("a"))
        clock.now += 899
        blocked = asyncio.run(limiter.hit("a"))
        assert not blocked.allowed
        assert blocked.retry_after == 1
        clock.now += 1
        assert asyncio.run(limiter.hit("a")).allowed

    def test_retry_after_counts_down(self):
        clock = _Clock()
        limiter = InMemoryRateLimiter(1, 900, clock=clock)
        asyncio.run(limiter.hit("a"))
        clock.now += 300
        assert asyncio.run(limiter.hit("a")).retry_after == 600

    def test_reset(self):
        limiter = InMemoryRateLimiter(1, 900, clock=_Clock())
        asyncio.run(limiter.hit("a"))
        limiter.reset()
        assert asyncio.run(limiter.hit("a")).allowed


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Redis limiter
# ═══════════════════════════════════════════════════════════════════════════

class TestRedisRateLimiter:

    def _client(self, counts, ttl=600):
        client = AsyncMock()
        client.incr.side_effect = list(counts)
        client.ttl.return_value = ttl
        return client

    def test_first_hit_sets_expiry(self):
        client = self._client([1])
        decision = asyncio.run(RedisRateLimiter(5, 900, client=client).hit("1.2.3.4"))
        client.incr.assert_awaited_once_with("ratelimit:contact:1.2.3.4")
        client.expire.assert_awaited_once_with("ratelimit:contact:1.2.3.4", 900)
        assert decision.allowed
        assert decision.remaining == 4

    def test_over_limit_uses_ttl(self):
        client = self._client([6], ttl=120)
        decision = asyncio.run(RedisRateLimiter(5, 900, client=client).hit("ip"))
        assert not decision.allowed
        assert decision.retry_after == 120
        client.expire.assert_not_awaited()

    def test_missing_expiry_repaired(self):
        client = self._client([3], ttl=-1)
        asyncio.run(RedisRateLimiter(5, 900, client=client).hit("ip"))
        client.expire.assert_awaited_once_with("ratelimit:contact:ip", 900)

    def test_fails_open(self):
        client = AsyncMock()
        client.incr.side_effect = RedisConnectionError("connection refused")
        decision = asyncio.run(RedisRateLimiter(5, 900, client=client).hit("ip"))
        assert decision.allowed


class TestBuildRateLimiter:

    def test_memory_default(self, make_settings):
        limiter = build_rate_limiter(make_settings())
        assert isinstance(limiter, InMemoryRateLimiter)
        assert (limiter.limit, limiter.window_seconds) == (5, 900)

    def test_redis_backend(self, make_settings):
        limiter = build_rate_limiter(make_settings(RATE_LIMIT_BACKEND="redis"))
        assert isinstance(limiter, RedisRateLimiter)

    def test_disabled(self, make_settings):
        assert build_rate_limiter(make_settings(RATE_LIMIT_MAX_REQUESTS=0)) is None

    def test_unknown_backend_falls_back_to_memory(self, make_settings):
        assert isinstance(build_rate_limiter(make_settings(RATE_LIMIT_BACKEND="memcached")), InMemoryRateLimiter)
