# app/utils/cache.py
import fnmatch
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

import redis.asyncio as redis
from pydantic import BaseModel

from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

SEARCH_NAMESPACE = "business_search"


def fingerprint(query: Any, namespace: str = SEARCH_NAMESPACE) -> str:
    """Deterministic cache key: namespace plus sorted-key JSON of the query.

    Pydantic queries contribute their cache payload, so pagination never splits
    one result list across several keys.
    """
    if hasattr(query, "cache_payload"):
        payload = query.cache_payload()
    elif isinstance(query, BaseModel):
        payload = query.model_dump(mode="json")
    else:
        payload = query
    return f"{namespace}:{json.dumps(payload, sort_keys=True, separators=(',', ':'), default=str)}"


def _key(query: Any, namespace: str) -> str:
    return query if isinstance(query, str) else fingerprint(query, namespace)


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class SearchCache:
    """In-process result cache with a TTL and an LRU bound.

    Entries are read lazily: an expired entry counts as a miss and is dropped on
    access. Each write replaces the whole entry under a lock, so readers never
    see a half-written value and the last writer for a key wins.
    """

    backend = "memory"

    def __init__(
        self,
        ttl_seconds: float = None,
        max_entries: int = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = settings.SEARCH_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.max_entries = settings.SEARCH_CACHE_MAX_ENTRIES if max_entries is None else max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    async def get(self, query: Any, namespace: str = SEARCH_NAMESPACE) -> Optional[Any]:
        """Get value from cache"""
        key = _key(query, namespace)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self.clock():
                del self._entries[key]
                entry = None
            if entry is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    async def set(self, query: Any, value: Any, namespace: str = SEARCH_NAMESPACE, ttl_seconds: float = None) -> str:
        """Set value in cache with expiration, returns the key used"""
        key = _key(query, namespace)
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        entry = CacheEntry(key=key, value=value, expires_at=self.clock() + ttl)
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self.evictions += 1
                logger.debug(f"Evicted cache entry {evicted[:80]}")
        return key

    async def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop entries whose key matches the glob pattern, or everything"""
        with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
                for key in doomed:
                    del self._entries[key]
                removed = len(doomed)
        logger.info(f"Invalidated {removed} cache entries (pattern={pattern!r})")
        return removed

    def purge_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        return {
            "backend": self.backend,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": len(self._entries),
        }


class RedisSearchCache:
    """Same contract as SearchCache, shared between workers through Redis.

    Values must be pydantic models or JSON-serialisable; `loader` turns the stored
    JSON back into the caller's type. Redis enforces the TTL, and an LRU bound
    belongs in the server's maxmemory-policy.
    """

    backend = "redis"

    def __init__(self, url: str = None, ttl_seconds: int = None, loader: Callable[[Any], Any] = None, client=None):
        self.ttl_seconds = int(settings.SEARCH_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds)
        self.loader = loader
        self.redis_client = client or redis.from_url(url or settings.REDIS_URL)
        self.hits = 0
        self.misses = 0

    async def get(self, query: Any, namespace: str = SEARCH_NAMESPACE) -> Optional[Any]:
        """Get value from cache"""
        value = await self.redis_client.get(_key(query, namespace))
        if value is None:
            self.misses += 1
            return None
        self.hits += 1
        data = json.loads(value)
        return self.loader(data) if self.loader else data

    async def set(self, query: Any, value: Any, namespace: str = SEARCH_NAMESPACE, ttl_seconds: int = None) -> str:
        """Set value in cache with expiration"""
        key = _key(query, namespace)
        if isinstance(value, BaseModel):
            payload = value.model_dump_json()
        else:
            payload = json.dumps(value, default=str)
        await self.redis_client.setex(key, int(ttl_seconds or self.ttl_seconds), payload)
        return key

    async def invalidate(self, pattern: Optional[str] = None) -> int:
        removed = 0
        async for key in self.redis_client.scan_iter(match=pattern or "*"):
            removed += await self.redis_client.delete(key)
        logger.info(f"Invalidated {removed} cache entries (pattern={pattern!r})")
        return removed

    async def close(self):
        await self.redis_client.aclose()

    def stats(self) -> dict:
        return {
            "backend": self.backend,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": 0,
            "size": None,
        }


def create_cache(backend: str = None, loader: Callable[[Any], Any] = None):
    backend = (backend or settings.SEARCH_CACHE_BACKEND).lower()
    if backend == "redis":
        if not settings.REDIS_URL:
            raise ValueError("SEARCH_CACHE_BACKEND=redis requires REDIS_URL")
        logger.info("Using Redis search cache")
        return RedisSearchCache(loader=loader)
    logger.info("Using in-memory search cache")
    return SearchCache()
