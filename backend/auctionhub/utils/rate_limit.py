"""Rate limiters for lightweight endpoint protection.

`InMemoryRateLimiter` keeps hits in process memory; `RedisRateLimiter`
keeps a fixed-window counter in Redis so the limit is shared by every
worker process and survives restarts. Both expose the same `allow`.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict, deque

import redis

logger = logging.getLogger("auctionhub.ratelimit")


class InMemoryRateLimiter:
    """Simple sliding-window limiter per key."""

    def __init__(self):
        self._hits = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_prune = time.monotonic()

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        retry_after = 0
        with self._lock:
            q = self._hits[key]
            cutoff = now - window_seconds
            while q and q[0] < cutoff:
                q.popleft()
            if len(q) >= max_requests:
                retry_after = max(1, int(window_seconds - (now - q[0])))
                return False, retry_after
            q.append(now)
            if now - self._last_prune >= window_seconds:
                self._prune(cutoff)
                self._last_prune = now
        return True, retry_after

    def _prune(self, cutoff: float) -> None:
        # drop keys whose newest hit is already outside the window
        stale = [k for k, q in self._hits.items() if not q or q[-1] < cutoff]
        for k in stale:
            del self._hits[k]


class RedisRateLimiter:
    """Fixed-window limiter backed by `INCR` + `EXPIRE` on a shared Redis."""

    def __init__(self, client: redis.Redis, prefix: str = "ratelimit:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisRateLimiter":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        window = int(time.time() // window_seconds)
        redis_key = f"{self._prefix}{key}:{window}"
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, window_seconds)
        count, _ = pipe.execute()
        if int(count) > max_requests:
            ttl = self._client.ttl(redis_key)
            return False, max(1, int(ttl) if ttl and ttl > 0 else window_seconds)
        return True, 0


def build_rate_limiter(redis_url: str = ""):
    """Return a Redis-backed limiter when `redis_url` is set, else the in-memory one."""
    if redis_url:
        logger.info("rate limiter backend: redis")
        return RedisRateLimiter.from_url(redis_url)
    return InMemoryRateLimiter()
