"""Fixed-window rate limiting keyed by route and client IP.

Counting is done by ``limits``' fixed-window strategy over a storage built once
by the app factory (``memory://`` by default, any ``limits`` storage URI such
as ``redis://`` otherwise) and handed to the routes. The in-memory storage is
process-local: a restart clears every counter.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Mapping, Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage, Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

NAMESPACE = "omcard"


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_s: int

    def item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.max_requests, self.window_s, namespace=NAMESPACE)


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    remaining: int
    reset_time: float
    retry_after: Optional[int] = None


DRAW_RATE_LIMIT = RateLimitConfig(max_requests=5, window_s=60)
CHAT_RATE_LIMIT = RateLimitConfig(max_requests=20, window_s=60)


class RateLimiter:
    def __init__(self, storage: Optional[Storage] = None):
        self.storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self.storage)

    @classmethod
    def from_uri(cls, uri: str) -> "RateLimiter":
        return cls(storage_from_string(uri))

    def check(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request for ``key``.

        Never blocks; the caller turns ``success=False`` into a 429.
        """
        item = config.item()
        allowed = self._strategy.hit(item, key)
        stats = self._strategy.get_window_stats(item, key)

        if allowed:
            return RateLimitResult(success=True, remaining=stats.remaining, reset_time=stats.reset_time)

        return RateLimitResult(
            success=False,
            remaining=0,
            reset_time=stats.reset_time,
            retry_after=max(1, math.ceil(stats.reset_time - time.time())),
        )

    def reset(self) -> None:
        self.storage.reset()


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Proxy-aware client IP: X-Forwarded-For first hop, then X-Real-IP."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return "127.0.0.1"
