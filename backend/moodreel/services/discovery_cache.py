"""
Discovery cache.

Content-addressable, TTL-bound cache of the deduplicated candidate pool for a
(mood, filters) pair. The pool is stored before personalization, so entries
are shared across callers. Expiry is lazy: an entry older than its TTL is a
miss at read time. Writes are best-effort and never fail a discovery request.
"""
import hashlib
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from moodreel.core.config import settings
from moodreel.entities import CatalogItem, DiscoveryFilters
from moodreel.errors import CacheWriteError

logger = logging.getLogger(__name__)

KEY_PREFIX = "discovery:"


def cache_key(mood: str, filters: DiscoveryFilters, region: Optional[str] = None) -> str:
    """Deterministic key: equal mood + equal filters (by value) give the same key."""
    payload = {
        "mood": str(mood),
        "filters": filters.canonical(),
        "region": region or settings.catalog_region,
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return KEY_PREFIX + hashlib.sha256(raw).hexdigest()


class InMemoryCacheBackend:
    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str) -> List[str]:
        return [k for k in self._data if k.startswith(prefix)]


class RedisCacheBackend:
    """Redis storage. Redis key expiry mirrors the entry TTL as a secondary guard."""

    def __init__(self, redis):
        self.redis = redis

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self.redis.set(key, value, ex=max(1, int(ttl)))
        except Exception as e:
            raise CacheWriteError(f"Redis write failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)

    async def keys(self, prefix: str) -> List[str]:
        out = []
        async for k in self.redis.scan_iter(match=f"{prefix}*"):
            out.append(k.decode("utf-8") if isinstance(k, bytes) else str(k))
        return out


class DiscoveryCache:
    def __init__(self, backend, ttl: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.backend = backend
        self.ttl = ttl or settings.discovery_cache_ttl_seconds
        self.clock = clock

    def _decode(self, raw: Any) -> Optional[Dict[str, Any]]:
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            entry = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[Cache] Corrupt entry ignored: {e}")
            return None
        return entry if isinstance(entry, dict) else None

    def _is_fresh(self, entry: Dict[str, Any]) -> bool:
        created_at = float(entry.get("createdAt") or 0)
        ttl = float(entry.get("ttl") or self.ttl)
        return self.clock() - created_at < ttl

    async def get(self, key: str) -> Optional[List[CatalogItem]]:
        """Cached pool or None on miss, expiry, or read failure."""
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            logger.warning(f"[Cache] Read failed for {key}, treating as miss: {e}")
            return None
        entry = self._decode(raw)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            logger.info(f"[Cache] Expired: {key}")
            return None
        try:
            items = [CatalogItem.from_dict(d) for d in entry.get("items") or []]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"[Cache] Undecodable items in {key}: {e}")
            return None
        age = int(self.clock() - float(entry.get("createdAt") or 0))
        logger.info(f"[Cache] Hit: {key} ({len(items)} items, {age}s old)")
        return items

    async def set(self, key: str, items: List[CatalogItem], ttl: Optional[int] = None) -> bool:
        """Store a pool. Returns False (and logs) instead of raising on failure."""
        ttl = ttl or self.ttl
        entry = {
            "key": key,
            "createdAt": self.clock(),
            "ttl": ttl,
            "items": [item.to_dict() for item in items],
        }
        try:
            await self.backend.set(key, json.dumps(entry), ttl)
        except Exception as e:
            logger.warning(f"[Cache] Write failed for {key}: {e}")
            return False
        logger.info(f"[Cache] Stored: {key} ({len(items)} items)")
        return True

    async def delete(self, key: str) -> None:
        await self.backend.delete(key)

    async def clear(self) -> int:
        keys = await self.backend.keys(KEY_PREFIX)
        for key in keys:
            await self.backend.delete(key)
        logger.info(f"[Cache] Cleared {len(keys)} entries")
        return len(keys)

    async def clean_expired(self) -> int:
        removed = 0
        for key in await self.backend.keys(KEY_PREFIX):
            entry = self._decode(await self.backend.get(key))
            if entry is None or not self._is_fresh(entry):
                await self.backend.delete(key)
                removed += 1
        if removed:
            logger.info(f"[Cache] Removed {removed} expired entries")
        return removed

    async def stats(self) -> Dict[str, Any]:
        now = self.clock()
        count = 0
        total_items = 0
        oldest = 0.0
        for key in await self.backend.keys(KEY_PREFIX):
            entry = self._decode(await self.backend.get(key))
            if entry is None:
                continue
            count += 1
            total_items += len(entry.get("items") or [])
            oldest = max(oldest, now - float(entry.get("createdAt") or now))
        return {"count": count, "totalItems": total_items, "oldestAgeSeconds": int(oldest)}
