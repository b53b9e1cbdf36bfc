"""Per-endpoint request rate limiting (in-memory or Redis-backed)."""

from riseup.ratelimit.base import RateLimiter, RateLimitResult, rate_limit_headers
from riseup.ratelimit.identity import generate_identifier, get_client_ip
from riseup.ratelimit.memory import InMemoryRateLimiter
from riseup.ratelimit.redis_limiter import RedisRateLimiter

__all__ = [
    "RateLimiter",
    "RateLimitResult",
    "rate_limit_headers",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "generate_identifier",
    "get_client_ip",
]
