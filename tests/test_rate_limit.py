from __future__ import annotations

import pytest
from starlette.requests import Request

from servicedesk.security import (
    RATE_LIMITS,
    InMemoryRateLimiterBackend,
    RateLimiter,
    RateLimitExceededError,
    RateLimitPolicy,
    RedisRateLimiterBackend,
    get_client_ip,
)


class FakePipeline:
    def __init__(self, client: "FakeRedis"):
        self._client = client
        self._ops: list[tuple[str, str]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def incr(self, key: str):
        self._ops.append(("incr", key))

    def pttl(self, key: str):
        self._ops.append(("pttl", key))

    async def execute(self):
        results = []
        for op, key in self._ops:
            if op == "incr":
                self._client.values[key] = self._client.values.get(key, 0) + 1
                results.append(self._client.values[key])
            else:
                results.append(self._client.ttls.get(key, -1))
        return results


class FakeRedis:
    def __init__(self):
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    def pipeline(self, transaction: bool = True):
        return FakePipeline(self)

    async def pexpire(self, key: str, milliseconds: int):
        self.ttls[key] = milliseconds

    async def aclose(self):
        self.closed = True


def _request(headers: dict[str, str] | None = None, client=("203.0.113.5", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_named_policies():
    assert RATE_LIMITS["track_folio"].max_requests == 5
    assert RATE_LIMITS["track_folio"].interval_seconds == 60
    assert RATE_LIMITS["track_folio"].max_requests < RATE_LIMITS["default"].max_requests
    assert RATE_LIMITS["login"].interval_seconds == 300


@pytest.mark.asyncio
async def test_in_memory_backend_counts_within_window():
    backend = InMemoryRateLimiterBackend()
    policy = RateLimitPolicy("test", max_requests=2, interval_seconds=60)

    first = await backend.hit("k", policy)
    second = await backend.hit("k", policy)
    third = await backend.hit("k", policy)

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert third.allowed is False
    assert 0 < third.reset_in <= 60


@pytest.mark.asyncio
async def test_in_memory_backend_window_expires():
    clock = {"now": 1000.0}
    backend = InMemoryRateLimiterBackend(cleanup_every=1, clock=lambda: clock["now"])
    policy = RateLimitPolicy("test", max_requests=1, interval_seconds=10)

    assert (await backend.hit("k", policy)).allowed
    assert not (await backend.hit("k", policy)).allowed

    clock["now"] += 10
    assert (await backend.hit("k", policy)).allowed


@pytest.mark.asyncio
async def test_rate_limiter_raises_with_retry_after(registry):
    limiter = RateLimiter(
        policies={"track_folio": RateLimitPolicy("track_folio", 1, 30), "default": RATE_LIMITS["default"]},
        metrics=registry,
    )

    await limiter.check("track_folio", "198.51.100.1")
    with pytest.raises(RateLimitExceededError) as exc:
        await limiter.check("track_folio", "198.51.100.1")

    assert exc.value.policy == "track_folio"
    assert 1 <= exc.value.retry_after <= 30
    assert registry.counter("rate_limit_rejections_total").value({"policy": "track_folio"}) == 1


@pytest.mark.asyncio
async def test_unknown_policy_falls_back_to_default():
    limiter = RateLimiter()

    result = await limiter.check("does-not-exist", "198.51.100.1")

    assert result.remaining == RATE_LIMITS["default"].max_requests - 1


@pytest.mark.asyncio
async def test_redis_backend_sets_expiry_on_first_hit_and_rejects_after_limit():
    client = FakeRedis()
    backend = RedisRateLimiterBackend(client)
    policy = RateLimitPolicy("track_folio", max_requests=2, interval_seconds=60)

    first = await backend.hit("track_folio:1.2.3.4", policy)
    assert first.allowed and first.remaining == 1
    assert client.ttls["ratelimit:track_folio:1.2.3.4"] == 60_000

    await backend.hit("track_folio:1.2.3.4", policy)
    rejected = await backend.hit("track_folio:1.2.3.4", policy)
    assert rejected.allowed is False
    assert rejected.reset_in == 60

    await backend.close()
    assert client.closed


def test_client_ip_prefers_forwarded_for():
    request = _request({"X-Forwarded-For": "198.51.100.7, 10.0.0.1", "X-Real-IP": "10.0.0.2"})
    assert get_client_ip(request) == "198.51.100.7"


def test_client_ip_falls_back_to_real_ip_then_peer_then_unknown():
    assert get_client_ip(_request({"X-Real-IP": "10.0.0.2"})) == "10.0.0.2"
    assert get_client_ip(_request()) == "203.0.113.5"
    assert get_client_ip(_request(client=None)) == "unknown"
