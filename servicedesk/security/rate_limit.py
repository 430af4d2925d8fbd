"""Fixed-window rate limiting for the public endpoints.

Two backends implement the same contract: a process-local in-memory store
and a Redis store shared by every worker.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Mapping

from fastapi import Request
from redis import asyncio as redis_asyncio

from servicedesk.metrics import MetricsRegistry, register_default_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Maximum number of requests accepted per fixed window."""

    name: str
    max_requests: int
    interval_seconds: int


RATE_LIMITS: Mapping[str, RateLimitPolicy] = {
    "track_folio": RateLimitPolicy("track_folio", max_requests=5, interval_seconds=60),
    "create_ticket": RateLimitPolicy("create_ticket", max_requests=3, interval_seconds=60),
    "coverage_check": RateLimitPolicy("coverage_check", max_requests=20, interval_seconds=60),
    "login": RateLimitPolicy("login", max_requests=5, interval_seconds=300),
    "default": RateLimitPolicy("default", max_requests=60, interval_seconds=60),
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: float


class RateLimitExceededError(RuntimeError):
    """Raised when a caller exhausted its window for a policy."""

    def __init__(self, policy: str, retry_after: int) -> None:
        super().__init__(f"Rate limit '{policy}' exceeded, retry after {retry_after}s")
        self.policy = policy
        self.retry_after = retry_after


class RateLimiterBackend(ABC):
    """Counts hits for a key inside the policy window."""

    @abstractmethod
    async def hit(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Record one request for ``key`` and report whether it is allowed."""

    async def close(self) -> None:
        return None


@dataclass
class _Window:
    count: int = 0
    reset_at: float = 0.0


class InMemoryRateLimiterBackend(RateLimiterBackend):
    """Per-process counters; each worker keeps its own windows."""

    def __init__(self, *, cleanup_every: int = 1000, clock: Callable[[], float] = time.monotonic) -> None:
        self._windows: Dict[str, _Window] = {}
        self._clock = clock
        self._lock = asyncio.Lock()
        self._cleanup_every = cleanup_every
        self._hits = 0

    async def hit(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        now = self._clock()
        async with self._lock:
            self._hits += 1
            if self._hits % self._cleanup_every == 0:
                self._cleanup(now)

            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = self._windows[key] = _Window(count=0, reset_at=now + policy.interval_seconds)

            reset_in = max(0.0, window.reset_at - now)
            if window.count >= policy.max_requests:
                return RateLimitResult(allowed=False, remaining=0, reset_in=reset_in)
            window.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=policy.max_requests - window.count,
                reset_in=reset_in,
            )

    def _cleanup(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Dropped %d expired rate limit windows", len(expired))


class RedisRateLimiterBackend(RateLimiterBackend):
    """Shared counters using ``INCR`` with a ``PEXPIRE`` set on the first hit."""

    def __init__(self, client, *, key_prefix: str = "ratelimit:") -> None:
        self._client = client
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRateLimiterBackend":
        return cls(redis_asyncio.from_url(url), **kwargs)

    async def hit(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        redis_key = f"{self._key_prefix}{key}"
        window_ms = policy.interval_seconds * 1000
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.pttl(redis_key)
            count, ttl = await pipe.execute()
        if ttl is None or ttl < 0:
            await self._client.pexpire(redis_key, window_ms)
            ttl = window_ms

        reset_in = ttl / 1000
        count = int(count)
        if count > policy.max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_in=reset_in)
        return RateLimitResult(allowed=True, remaining=policy.max_requests - count, reset_in=reset_in)

    async def close(self) -> None:
        await self._client.aclose()


class RateLimiter:
    """Apply named policies to client keys and raise on rejection."""

    def __init__(
        self,
        backend: RateLimiterBackend | None = None,
        *,
        policies: Mapping[str, RateLimitPolicy] | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.backend = backend or InMemoryRateLimiterBackend()
        self.policies: Dict[str, RateLimitPolicy] = dict(policies or RATE_LIMITS)
        self._metrics = register_default_metrics(metrics)

    def policy(self, name: str) -> RateLimitPolicy:
        return self.policies.get(name) or self.policies["default"]

    async def check(self, policy_name: str, identifier: str) -> RateLimitResult:
        policy = self.policy(policy_name)
        result = await self.backend.hit(f"{policy.name}:{identifier}", policy)
        if not result.allowed:
            retry_after = max(1, math.ceil(result.reset_in))
            self._metrics.counter("rate_limit_rejections_total").inc(labels={"policy": policy.name})
            logger.warning("Rate limit %s exceeded for %s, retry after %ss", policy.name, identifier, retry_after)
            raise RateLimitExceededError(policy.name, retry_after)
        return result

    async def close(self) -> None:
        await self.backend.close()


def get_client_ip(request: Request) -> str:
    """Resolve the caller address, honouring proxy headers."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


__all__ = [
    "InMemoryRateLimiterBackend",
    "RATE_LIMITS",
    "RateLimitExceededError",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimiter",
    "RateLimiterBackend",
    "RedisRateLimiterBackend",
    "get_client_ip",
]
