"""
Request-scoped wiring for the discovery stack.

Everything Redis-backed is built from get_redis(), which hands out one client
per event loop, so the objects here are cheap to rebuild per request.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Query

from moodreel.core.config import settings
from moodreel.core.database import get_session_factory
from moodreel.core.redis_client import get_redis
from moodreel.entities import QuotaSubject
from moodreel.services.aggregator import CatalogAggregator
from moodreel.services.discovery_cache import DiscoveryCache, RedisCacheBackend
from moodreel.services.discovery_controller import (
    DiscoveryController,
    RedisGenerationTracker,
    RedisSessionStore,
)
from moodreel.services.discovery_engine import DiscoveryEngine
from moodreel.services.personalization import PersonalizationScorer
from moodreel.services.rate_limit import AsyncLimiter
from moodreel.services.tmdb_client import TMDBClient
from moodreel.services.usage_quota import RedisQuotaStore, UsageQuotaGovernor
from moodreel.services.watchlist import SqlWatchlistStore


def get_cache() -> DiscoveryCache:
    return DiscoveryCache(RedisCacheBackend(get_redis()))


def get_engine() -> DiscoveryEngine:
    redis = get_redis()
    catalog = TMDBClient(limiter=AsyncLimiter(redis, "tmdb_api"), redis=redis)
    return DiscoveryEngine(
        aggregator=CatalogAggregator(catalog, settings.page_timeout_seconds),
        cache=get_cache(),
        scorer=PersonalizationScorer(SqlWatchlistStore(get_session_factory())),
        governor=UsageQuotaGovernor(RedisQuotaStore(redis)),
    )


def get_controller(engine: DiscoveryEngine = Depends(get_engine)) -> DiscoveryController:
    redis = get_redis()
    return DiscoveryController(engine, RedisSessionStore(redis), RedisGenerationTracker(redis))


def get_quota_subject(
    user_id: Optional[str] = Query(None, description="Authenticated user id"),
    guest_session: Optional[str] = Query(None, alias="session_id", description="Anonymous session token"),
    x_user_role: Optional[str] = Header(None),
) -> QuotaSubject:
    """Identity is resolved upstream; this only reads what the gateway forwarded."""
    try:
        return QuotaSubject(user_id=user_id, session_id=guest_session, is_admin=(x_user_role == "admin"))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
