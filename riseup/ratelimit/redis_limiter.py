"""
Redis-backed sliding-window rate limiter.

Each identifier owns a sorted set of request timestamps (score = epoch ms).
A check:
  1. drops members older than now - window
  2. counts what is left
  3. under the limit: adds "{now}:{random}" scored at now, so two requests
     in the same millisecond stay two members
  4. at the limit: denies; reset is when the oldest member leaves the window

Every round trip is bounded by `timeout`. On a Redis error or timeout the
outcome is decided by the config's fail_mode and never retried inline:
  open   -> allowed, full quota reported
  closed -> denied, retry after one window
"""

import asyncio
import logging
import math
import secrets

from redis.asyncio import Redis
from redis.exceptions import RedisError

from riseup.config import RateLimitConfig
from riseup.ratelimit.base import RateLimiter, RateLimitResult
from riseup.ratelimit.memory import now_ms

logger = logging.getLogger(__name__)

# Extra TTL beyond the window so an idle key outlives its newest member.
KEY_TTL_MARGIN_SECONDS = 60


class RedisRateLimiter(RateLimiter):

    def __init__(
        self,
        client: Redis,
        config: RateLimitConfig,
        timeout: float = 0.5,
    ):
        super().__init__(config)
        self.client = client
        self.timeout = timeout

    def _key(self, identifier: str) -> str:
        return f"{self.config.key_prefix}:{identifier}"

    async def _sliding_window(self, identifier: str) -> RateLimitResult:
        key = self._key(identifier)
        now = now_ms()
        window_start = now - self.config.window_ms

        pipe = self.client.pipeline()
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.zcard(key)
        _, count = await pipe.execute()

        if count >= self.config.max_requests:
            oldest = await self.client.zrange(key, 0, 0, withscores=True)
            oldest_score = int(oldest[0][1]) if oldest else now
            reset_at = oldest_score + self.config.window_ms
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=reset_at,
                retry_after=max(1, math.ceil((reset_at - now) / 1000)),
            )

        member = f"{now}:{secrets.token_hex(3)}"
        await self.client.zadd(key, {member: now})
        await self.client.expire(key, math.ceil(self.config.window_ms / 1000) + KEY_TTL_MARGIN_SECONDS)

        return RateLimitResult(
            allowed=True,
            remaining=self.config.max_requests - count - 1,
            reset_at=now + self.config.window_ms,
        )

    def _on_backend_failure(self, error: BaseException) -> RateLimitResult:
        now = now_ms()
        window_seconds = math.ceil(self.config.window_ms / 1000)
        logger.error(
            f"[FAIL] Redis rate limiter {self.config.key_prefix}: {error!r}, "
            f"failing {self.config.fail_mode}"
        )
        if self.config.fail_mode == "open":
            return RateLimitResult(
                allowed=True,
                remaining=self.config.max_requests,
                reset_at=now + self.config.window_ms,
            )
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=now + self.config.window_ms,
            retry_after=window_seconds,
        )

    async def check_limit_with_result(self, identifier: str) -> RateLimitResult:
        try:
            return await asyncio.wait_for(self._sliding_window(identifier), timeout=self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            return self._on_backend_failure(e)

    async def reset(self, identifier: str) -> None:
        try:
            await asyncio.wait_for(self.client.delete(self._key(identifier)), timeout=self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Rate limit reset failed for {self.config.key_prefix}: {e!r}")
