"""
Redis cache for read-heavy session listings.

Namespaced keys: padel:{namespace}:{key}
All values serialised as JSON.

Local dev:   redis://localhost:6379/0
Production:  set REDIS_URL in .env
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis.asyncio import ConnectionPool, Redis

from padel_api.core.config import settings

logger = logging.getLogger(__name__)

# ── Single connection pool shared across the whole app ────────────────────────
_pool: Optional[ConnectionPool] = None


def _get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        _pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=20,
            decode_responses=True,
        )
    return _pool


def get_redis() -> Redis:
    return Redis(connection_pool=_get_pool())


class RedisCache:
    """
    Async TTL cache backed by Redis.
    A Redis outage degrades to a cache miss; it never fails the request.
    """

    def __init__(self, namespace: str, default_ttl_seconds: int = 300):
        self.ns  = namespace
        self.ttl = default_ttl_seconds

    def _key(self, key: str) -> str:
        return f"padel:{self.ns}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await get_redis().get(self._key(key))
        except Exception as exc:
            logger.warning("[%s] get failed — %s", self.ns, exc)
            return None
        if raw is None:
            logger.debug("[%s] MISS %s", self.ns, key)
            return None
        logger.debug("[%s] HIT  %s", self.ns, key)
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl
        try:
            await get_redis().setex(self._key(key), ttl, json.dumps(value))
            logger.debug("[%s] SET  %s (ttl=%ds)", self.ns, key, ttl)
        except Exception as exc:
            logger.warning("[%s] set failed — %s", self.ns, exc)

    async def clear(self) -> None:
        try:
            r    = get_redis()
            keys = await r.keys(f"padel:{self.ns}:*")
            if keys:
                await r.delete(*keys)
            logger.info("[%s] Cleared %d keys", self.ns, len(keys or []))
        except Exception as exc:
            logger.warning("[%s] clear failed — %s", self.ns, exc)


# ── Shared instances, import these everywhere ─────────────────────────────────

available_sessions_cache = RedisCache("available_sessions", default_ttl_seconds=300)  # 5 min
