"""Redis-backed stores against fakeredis, which runs the quota Lua script too."""
import asyncio
import json
from datetime import timedelta

import fakeredis

from moodreel.entities import CatalogItem, ContentType, DiscoveryFilters, QuotaSubject
from moodreel.services.discovery_cache import KEY_PREFIX, DiscoveryCache, RedisCacheBackend, cache_key
from moodreel.services.discovery_controller import (
    GENERATION_PREFIX,
    SESSION_PREFIX,
    RedisGenerationTracker,
    RedisSessionStore,
)
from moodreel.services.pagination import DiscoverySession
from moodreel.services.usage_quota import RedisQuotaStore, UsageQuotaGovernor

GUEST = QuotaSubject(session_id="guest_1700000000000_abc")
USER = QuotaSubject(user_id="42")


def redis_governor(redis, clock):
    return UsageQuotaGovernor(RedisQuotaStore(redis), guest_daily_limit=5, user_daily_limit=25,
                              window_hours=24, clock=clock)


def test_quota_script_enforces_the_ceiling(fake_clock):
    async def scenario():
        redis = fakeredis.FakeAsyncRedis()
        governor = redis_governor(redis, fake_clock)
        results = [await governor.increment(GUEST) for _ in range(7)]
        return results, await governor.get_limits(GUEST), await redis.hgetall("usage_quota:" + GUEST.key)

    results, quota, row = asyncio.run(scenario())
    assert results == [True] * 5 + [False] * 2
    assert quota.consumed == 5
    assert quota.remaining == 0
    assert int(row[b"consumed"]) == 5
    assert int(row[b"daily_limit"]) == 5


def test_quota_rolls_forward_after_the_window(fake_clock):
    start = fake_clock.now

    async def scenario():
        redis = fakeredis.FakeAsyncRedis()
        governor = redis_governor(redis, fake_clock)
        for _ in range(5):
            await governor.increment(GUEST)
        fake_clock.advance(hours=25)
        rolled = await governor.get_limits(GUEST)
        allowed = await governor.increment(GUEST)
        return rolled, allowed, await governor.get_limits(GUEST)

    rolled, allowed, after = asyncio.run(scenario())
    assert rolled.consumed == 0
    assert rolled.reset_at == start + timedelta(hours=49)
    assert allowed is True
    assert after.consumed == 1


def test_quota_subjects_are_counted_separately(fake_clock):
    async def scenario():
        redis = fakeredis.FakeAsyncRedis()
        governor = redis_governor(redis, fake_clock)
        for _ in range(5):
            await governor.increment(GUEST)
        return await governor.increment(USER), await governor.get_limits(USER)

    allowed, quota = asyncio.run(scenario())
    assert allowed is True
    assert quota.daily_limit == 25
    assert quota.consumed == 1


def test_cache_writes_with_redis_expiry(fake_time):
    key = cache_key("happy", DiscoveryFilters())
    items = [CatalogItem(id=1, content_type=ContentType.MOVIE, title="One", popularity=5.0)]

    async def scenario():
        redis = fakeredis.FakeAsyncRedis()
        cache = DiscoveryCache(RedisCacheBackend(redis), ttl=600, clock=fake_time)
        stored = await cache.set(key, items)
        ttl = await redis.ttl(key)
        hit = await cache.get(key)
        stats = await cache.stats()
        cleared = await cache.clear()
        return stored, ttl, hit, stats, cleared, await redis.exists(key)

    stored, ttl, hit, stats, cleared, exists = asyncio.run(scenario())
    assert key.startswith(KEY_PREFIX)
    assert stored is True
    assert 0 < ttl <= 600
    assert [i.key for i in hit] == [("movie", 1)]
    assert stats["count"] == 1
    assert stats["totalItems"] == 1
    assert cleared == 1
    assert exists == 0


def test_session_store_round_trip_and_corrupt_entries():
    session = DiscoverySession(mood="romantic", filters=DiscoveryFilters(min_rating=7.0),
                               next_page={"movie": 4}, retry_count=2, generation=3)

    async def scenario():
        redis = fakeredis.FakeAsyncRedis()
        store = RedisSessionStore(redis, ttl=120)
        await store.save("guest_a", session)
        loaded = await store.load("guest_a")
        ttl = await redis.ttl(SESSION_PREFIX + "guest_a")
        await redis.set(SESSION_PREFIX + "guest_b", json.dumps({"buffer": [{"nope": 1}]}))
        return loaded, ttl, await store.load("guest_b"), await store.load("guest_missing")

    loaded, ttl, corrupt, missing = asyncio.run(scenario())
    assert loaded.mood == "romantic"
    assert loaded.filters.min_rating == 7.0
    assert loaded.next_page == {"movie": 4}
    assert loaded.retry_count == 2
    assert loaded.generation == 3
    assert 0 < ttl <= 120
    assert corrupt is None
    assert missing is None


def test_generation_tracker_increments_atomically():
    async def scenario():
        redis = fakeredis.FakeAsyncRedis()
        tracker = RedisGenerationTracker(redis, ttl=120)
        before = await tracker.current("guest_a")
        handed_out = await asyncio.gather(*(tracker.next("guest_a") for _ in range(5)))
        return before, handed_out, await tracker.current("guest_a"), await redis.ttl(GENERATION_PREFIX + "guest_a")

    before, handed_out, current, ttl = asyncio.run(scenario())
    assert before == 0
    assert sorted(handed_out) == [1, 2, 3, 4, 5]
    assert current == 5
    assert 0 < ttl <= 120
