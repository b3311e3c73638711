"""
In-memory sliding-window rate limiting for authenticated routes.

Each signed-in user gets RATE_LIMIT_PER_MINUTE requests per rolling minute.
Routes without a principal (health, public onboarding and referral forms)
are never counted. State is per process.
"""
from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from dataclasses import dataclass

from fastapi import HTTPException, Request

from clinicflow.config import get_settings

__all__ = [
    "Decision",
    "UserRateLimiter",
    "check_rate_limit",
    "get_limiter",
    "reset_limiter",
]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    remaining: int
    retry_after: float = 0.0


class UserRateLimiter:
    """Keeps the timestamps of recent hits per key; idle keys are dropped by ``evict_inactive``."""

    def __init__(self, limit: int = 60, window_seconds: float = 60.0, clock=time.monotonic) -> None:
        self.limit = limit
        self.window = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str) -> Decision:
        now = self._clock()
        async with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - self.window:
                hits.popleft()

            if len(hits) >= self.limit:
                return Decision(False, 0, retry_after=hits[0] + self.window - now)

            hits.append(now)
            return Decision(True, self.limit - len(hits))

    async def is_allowed(self, key: str) -> bool:
        return (await self.hit(key)).allowed

    async def evict_inactive(self, idle_seconds: float = 300.0) -> int:
        """Forget keys with no hit in the last ``idle_seconds``. Returns how many were dropped."""
        cutoff = self._clock() - idle_seconds
        async with self._lock:
            idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
            for key in idle:
                del self._hits[key]
        return len(idle)


_limiter: UserRateLimiter | None = None


def get_limiter() -> UserRateLimiter:
    global _limiter
    if _limiter is None:
        _limiter = UserRateLimiter(limit=get_settings().RATE_LIMIT_PER_MINUTE)
    return _limiter


def reset_limiter(limiter: UserRateLimiter | None = None) -> None:
    """Swap the process-wide limiter; None rebuilds it from settings on next use."""
    global _limiter
    _limiter = limiter


async def check_rate_limit(request: Request) -> None:
    """
    Dependency for authenticated routers. Must come after ``get_current_user``,
    which leaves the principal on request.state.user_id.
    """
    user_id = getattr(request.state, "user_id", "") or ""
    if not user_id:
        return

    limiter = get_limiter()
    decision = await limiter.hit(user_id)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Max {limiter.limit} requests per minute.",
            headers={"Retry-After": str(max(1, math.ceil(decision.retry_after)))},
        )
