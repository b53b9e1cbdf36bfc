"""
In-process rate limiter.

Fixed-window counter per identifier: the first request opens a window of
`window_ms`; requests inside it increment the count; the first request
after it opens a new one. This is an approximation of a sliding window
and can admit up to 2x max_requests across a window boundary.

State is per process. Use the Redis limiter when running more than one
worker.
"""

import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from riseup.config import RateLimitConfig
from riseup.ratelimit.base import RateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _Window:
    count: int
    reset_time: int


class InMemoryRateLimiter(RateLimiter):

    def __init__(self, config: RateLimitConfig, cleanup_interval: float = 60.0):
        super().__init__(config)
        self.cleanup_interval = cleanup_interval
        self._windows: Dict[str, _Window] = {}
        # Request handlers may run in threadpool workers; one lock covers
        # every read-modify-write of the map.
        self._lock = threading.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    def _key(self, identifier: str) -> str:
        return f"{self.config.key_prefix}:{identifier}"

    def hit(self, identifier: str) -> RateLimitResult:
        """Synchronous check-and-consume."""
        key = self._key(identifier)
        now = now_ms()

        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_time:
                window = _Window(count=1, reset_time=now + self.config.window_ms)
                self._windows[key] = window
                return RateLimitResult(
                    allowed=True,
                    remaining=self.config.max_requests - 1,
                    reset_at=window.reset_time,
                )

            if window.count >= self.config.max_requests:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=window.reset_time,
                    retry_after=max(1, math.ceil((window.reset_time - now) / 1000)),
                )

            window.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=self.config.max_requests - window.count,
                reset_at=window.reset_time,
            )

    async def check_limit_with_result(self, identifier: str) -> RateLimitResult:
        return self.hit(identifier)

    async def reset(self, identifier: str) -> None:
        with self._lock:
            self._windows.pop(self._key(identifier), None)

    def cleanup(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = now_ms()
        with self._lock:
            expired = [k for k, w in self._windows.items() if now > w.reset_time]
            for key in expired:
                del self._windows[key]
        if expired:
            logger.debug(f"Rate limiter {self.config.key_prefix}: swept {len(expired)} expired windows")
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()

    async def start(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
