"""Redis cache for ranked tour lists, keyed per site."""

import hashlib
import json
import logging
from typing import Any

import redis.asyncio as redis

from tourlink.config import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-backed cache. Every operation degrades to a miss when Redis is unavailable."""

    def __init__(self, url: str | None = None):
        self._url = settings.redis_url if url is None else url
        self._redis: redis.Redis | None = None

    async def _get_redis(self) -> redis.Redis | None:
        if not self._url:
            return None
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self._url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, cache disabled: {e}")
                self._redis = None
                self._url = ""
                return None
        return self._redis

    def ranked_tours_key(self, site_id: str) -> str:
        return f"tours:ranked:{site_id}"

    def ranked_tours_field(self, top_n: int, site_name: str) -> str:
        """Hash field per list size and site name; keyword filtering depends on the name."""
        name_hash = hashlib.md5(site_name.encode()).hexdigest()[:12]
        return f"{top_n}:{name_hash}"

    async def get_ranked_tours(self, site_id: str, site_name: str, top_n: int) -> list[dict] | None:
        """Cached ranking for a site, its current name and list size. Returns None on miss or error."""
        try:
            r = await self._get_redis()
            if r is None:
                return None
            raw = await r.hget(
                self.ranked_tours_key(site_id), self.ranked_tours_field(top_n, site_name)
            )
            if raw is None:
                return None
            return json.loads(raw)
        except Exception:
            return None

    async def set_ranked_tours(
        self, site_id: str, site_name: str, top_n: int, data: list[dict[str, Any]]
    ) -> bool:
        try:
            r = await self._get_redis()
            if r is None:
                return False
            key = self.ranked_tours_key(site_id)
            await r.hset(key, self.ranked_tours_field(top_n, site_name), json.dumps(data, default=str))
            await r.expire(key, settings.ranked_tours_cache_ttl)
            return True
        except Exception:
            return False

    async def invalidate_site(self, site_id: str) -> bool:
        """Drop every cached ranking for a site."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.delete(self.ranked_tours_key(site_id))
            return True
        except Exception:
            return False

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None


cache_service = CacheService()
