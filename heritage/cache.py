import hashlib
import json
import logging

import redis.asyncio as redis

from heritage.config import settings

logger = logging.getLogger(__name__)

LIST_KEY_PREFIX = "entries:list:"


class CacheManager:
    """
    Cache-aside manager for entry list pages, backed by Redis.

    Every public method tolerates Redis being unavailable: reads report a
    miss and writes are skipped, so a cache outage never fails a request.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, list cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the cached value for *key*, or None on a miss / error."""
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
            return json.loads(data) if data is not None else None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN (avoids blocking KEYS)."""
        if not self._redis:
            return
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Entry list helpers
    # ------------------------------------------------------------------

    @staticmethod
    def list_key(**dimensions) -> str:
        """
        Build the key for one list page.  Every dimension that changes the
        result is part of the digest; free-text search makes raw keys unsafe.
        """
        raw = json.dumps(dimensions, sort_keys=True, default=str)
        return LIST_KEY_PREFIX + hashlib.sha1(raw.encode()).hexdigest()

    async def invalidate_entries(self) -> None:
        """Purge every cached list page after a write to any entry."""
        await self.delete_pattern(LIST_KEY_PREFIX + "*")


# Module-level singleton shared across all request handlers.
cache = CacheManager()


_PURGE_FLAG = "heritage.purge_entries"


def invalidate_entries_on_commit(session) -> None:
    """Schedule a list-page purge for when *session* commits."""
    session.info[_PURGE_FLAG] = True


async def purge_after_commit(session) -> None:
    """Run the purge scheduled on *session*, if any.  Call only after commit."""
    if session.info.pop(_PURGE_FLAG, False):
        await cache.invalidate_entries()


def discard_pending_purge(session) -> None:
    session.info.pop(_PURGE_FLAG, None)
