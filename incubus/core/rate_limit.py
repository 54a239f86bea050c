from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import defaultdict, deque

from redis.asyncio import Redis
from redis.exceptions import RedisError

from incubus.core.config import IncubusSettings, get_settings

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.@-]")


class RequestRateLimiter:
    """Counts hits per (counter, scope, identity) over a time window.

    Redis holds fixed-window counters shared by every API process. While Redis
    is unreachable each process falls back to its own sliding window.
    """

    def __init__(self, settings: IncubusSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self._redis: Redis | None = None
        self._lock = asyncio.Lock()
        self._windows: dict[str, deque[float]] = defaultdict(deque)

    async def check_limit(
        self,
        *,
        scope: str,
        identity: str,
        limit: int,
        window_seconds: int,
    ) -> tuple[bool, int]:
        """Count one request and report whether it stays within ``limit``."""
        if limit <= 0:
            return False, 0
        count = await self.hit("rl", scope, identity, window_seconds)
        return count <= limit, count

    async def record_authz_failure(self, *, scope: str, identity: str, window_seconds: int) -> int:
        return await self.hit("authzfail", scope, identity, window_seconds)

    async def hit(self, counter: str, scope: str, identity: str, window_seconds: int) -> int:
        window = max(1, int(window_seconds))
        key = ":".join((counter, scope, _UNSAFE_KEY_CHARS.sub("_", identity)))
        try:
            return await self._hit_redis(key, window)
        except (RedisError, OSError):
            logger.debug("Rate limit counter %s falling back to local window", key)
        return await self._hit_local(key, window)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def _hit_redis(self, key: str, window: int) -> int:
        if self._redis is None:
            self._redis = Redis.from_url(self.settings.REDIS_URL, decode_responses=True)
        bucket = int(time.time()) // window
        redis_key = f"{self.settings.INCUBUS_REDIS_PREFIX}:{key}:{bucket}"
        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, window + 2)
        count, _ = await pipe.execute()
        return int(count)

    async def _hit_local(self, key: str, window: int) -> int:
        now = time.monotonic()
        async with self._lock:
            hits = self._windows[key]
            while hits and hits[0] <= now - window:
                hits.popleft()
            hits.append(now)
            return len(hits)


rate_limiter = RequestRateLimiter()
