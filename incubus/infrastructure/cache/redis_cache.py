from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from incubus.core.config import get_settings

logger = logging.getLogger(__name__)

# Tag sets outlive their members so a late invalidation still finds them.
TAG_GRACE_SECONDS = 300


def _encode_param(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(sorted(str(item) for item in value))
    return str(value)


class RedisCache:
    """JSON response cache for list endpoints, invalidated by tag.

    Tags name a resource family (``games``, ``marketplace``) or a single
    user's inbox. A Redis outage reads as a miss and writes are dropped.
    """

    def __init__(self):
        self.settings = get_settings()
        self._redis: Redis | None = None

    @property
    def enabled(self) -> bool:
        return self.settings.INCUBUS_CACHE_ENABLED

    @property
    def prefix(self) -> str:
        return self.settings.INCUBUS_CACHE_PREFIX

    @staticmethod
    def notifications_tag(user_id: int) -> str:
        return f"notifications:{user_id}"

    def build_key(self, scope: str, params: Mapping[str, object] | None = None) -> str:
        key = f"{self.prefix}:{scope}"
        if params:
            key += ":" + "&".join(f"{name}={_encode_param(params[name])}" for name in sorted(params))
        return key

    async def get_json(self, key: str) -> Any:
        if not self.enabled:
            return None
        try:
            raw = await self._client().get(key)
            return None if raw is None else json.loads(raw)
        except (RedisError, OSError, ValueError) as exc:
            logger.debug("Cache miss on error key=%s: %s", key, exc)
            return None

    async def set_json(
        self,
        *,
        key: str,
        value: Any,
        ttl_seconds: int,
        tags: Iterable[str] | None = None,
    ) -> None:
        if not self.enabled:
            return
        ttl = max(1, int(ttl_seconds))
        try:
            pipe = self._client().pipeline()
            pipe.set(key, json.dumps(value, separators=(",", ":")), ex=ttl)
            for tag in tags or ():
                pipe.sadd(self._tag_key(tag), key)
                pipe.expire(self._tag_key(tag), ttl + TAG_GRACE_SECONDS)
            await pipe.execute()
        except (RedisError, OSError, TypeError) as exc:
            logger.debug("Cache write dropped key=%s: %s", key, exc)

    async def remember(
        self,
        key: str,
        *,
        ttl_seconds: int,
        tags: Iterable[str],
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value for ``key`` or store what ``loader`` produces."""
        cached = await self.get_json(key)
        if cached is not None:
            return cached
        value = await loader()
        await self.set_json(key=key, value=value, ttl_seconds=ttl_seconds, tags=tags)
        return value

    async def invalidate_tags(self, *tags: str) -> None:
        if not self.enabled:
            return
        names = sorted({tag.strip() for tag in tags if tag and tag.strip()})
        if not names:
            return
        client = self._client()
        try:
            for name in names:
                tag_key = self._tag_key(name)
                members = await client.smembers(tag_key)
                await client.delete(tag_key, *members)
        except (RedisError, OSError) as exc:
            logger.debug("Cache invalidation failed tags=%s: %s", names, exc)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _tag_key(self, tag: str) -> str:
        return f"{self.prefix}:tag:{tag}"

    def _client(self) -> Redis:
        if self._redis is None:
            self._redis = Redis.from_url(self.settings.REDIS_URL, decode_responses=True)
        return self._redis


cache = RedisCache()
