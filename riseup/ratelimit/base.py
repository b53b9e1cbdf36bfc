"""
Rate limiter contract.

Both backends answer the same three questions for an identifier:
  check_limit              -> may this request proceed?
  check_limit_with_result  -> same, plus remaining quota and reset time
  reset                    -> forget everything about this identifier

A check that is allowed also consumes one unit of quota.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from riseup.config import RateLimitConfig


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds
    retry_after: Optional[int] = None  # seconds, set only when denied


class RateLimiter(ABC):

    def __init__(self, config: RateLimitConfig):
        self.config = config

    async def check_limit(self, identifier: str) -> bool:
        result = await self.check_limit_with_result(identifier)
        return result.allowed

    @abstractmethod
    async def check_limit_with_result(self, identifier: str) -> RateLimitResult:
        ...

    @abstractmethod
    async def reset(self, identifier: str) -> None:
        ...

    async def start(self) -> None:
        """Start background maintenance, if the backend has any."""

    async def stop(self) -> None:
        """Stop background maintenance and release resources."""


def rate_limit_headers(result: RateLimitResult, config: RateLimitConfig) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(config.max_requests),
        "X-RateLimit-Remaining": str(max(0, result.remaining)),
        "X-RateLimit-Reset": str(math.ceil(result.reset_at / 1000)),
    }
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers
