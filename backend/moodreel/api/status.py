import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from moodreel.api.deps import get_cache
from moodreel.core.redis_client import get_redis
from moodreel.services.discovery_cache import DiscoveryCache

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, Any]:
    """Liveness plus a Redis ping. Redis being down degrades, it does not fail the check."""
    redis_ok = False
    try:
        redis_ok = bool(await get_redis().ping())
    except Exception as e:
        logger.warning(f"[Health] Redis ping failed: {e}")
    return {"status": "ok" if redis_ok else "degraded", "redis": redis_ok}


@router.get("/api/discovery/cache/stats")
async def cache_stats(cache: DiscoveryCache = Depends(get_cache)) -> Dict[str, Any]:
    return await cache.stats()


@router.post("/api/discovery/cache/cleanup")
async def cache_cleanup(cache: DiscoveryCache = Depends(get_cache)) -> Dict[str, Any]:
    removed = await cache.clean_expired()
    return {"removed": removed}
