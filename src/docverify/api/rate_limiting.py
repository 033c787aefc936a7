#!/usr/bin/env python3
"""
Rate Limiting

Fixed window call counter backed by Redis. Used to meter calls to the
generative model across all workers.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

# Configure logging
logger = logging.getLogger(__name__)

@dataclass
class WindowStatus:
    """Usage inside the current fixed window."""
    count: int
    limit: Optional[int]
    window_size: int
    reset_in_ms: int

    @property
    def exceeded(self) -> bool:
        return self.limit is not None and self.count > self.limit

    def to_dict(self) -> dict:
        return {
            "callsInLastMinute": self.count,
            "resetInMs": self.reset_in_ms,
        }

class FixedWindowCounter:
    """Fixed window counter: every hit is counted, then compared to the limit."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "rate_limit:fixed"):
        self.redis = redis_client
        self.key_prefix = prefix

    def _key(self, identifier: str, window_start: int) -> str:
        return f"{self.key_prefix}:{identifier}:{window_start}"

    async def hit(
        self,
        identifier: str,
        window_size: int = 60,
        limit: Optional[int] = None,
        now: Optional[float] = None,
    ) -> WindowStatus:
        """Count one call and report the window usage including it."""
        now = time.time() if now is None else now
        current_time = int(now)
        window_start = current_time - (current_time % window_size)
        key = self._key(identifier, window_start)

        # Increment counter
        pipe = self.redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, window_size)
        count, _ = await pipe.execute()

        reset_in_ms = max(0, int((window_start + window_size - now) * 1000))

        status = WindowStatus(
            count=int(count),
            limit=limit,
            window_size=window_size,
            reset_in_ms=reset_in_ms,
        )
        if status.exceeded:
            logger.warning(f"Window limit exceeded for {identifier}: {status.count}/{limit}")
        return status

    async def current(
        self,
        identifier: str,
        window_size: int = 60,
        limit: Optional[int] = None,
        now: Optional[float] = None,
    ) -> WindowStatus:
        """Read the current window usage without counting a call."""
        now = time.time() if now is None else now
        current_time = int(now)
        window_start = current_time - (current_time % window_size)
        value = await self.redis.get(self._key(identifier, window_start))
        return WindowStatus(
            count=int(value) if value else 0,
            limit=limit,
            window_size=window_size,
            reset_in_ms=max(0, int((window_start + window_size - now) * 1000)),
        )
