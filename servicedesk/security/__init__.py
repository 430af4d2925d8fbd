"""Security utilities for the public endpoints."""

from .rate_limit import (
    RATE_LIMITS,
    InMemoryRateLimiterBackend,
    RateLimitExceededError,
    RateLimiter,
    RateLimiterBackend,
    RateLimitPolicy,
    RateLimitResult,
    RedisRateLimiterBackend,
    get_client_ip,
)

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
