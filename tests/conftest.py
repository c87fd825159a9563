import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest

from moodreel.entities import ContentType
from moodreel.services.aggregator import CatalogAggregator
from moodreel.services.discovery_cache import DiscoveryCache, InMemoryCacheBackend
from moodreel.services.discovery_engine import DiscoveryEngine
from moodreel.services.personalization import PersonalizationScorer
from moodreel.services.usage_quota import InMemoryQuotaStore, UsageQuotaGovernor
from moodreel.services.watchlist import InMemoryWatchlistStore

SERIES_ID_OFFSET = 100000


def make_raw(id, popularity=10.0, rating=7.0, genres=(35,), date="2020-06-01", title=None):
    return {
        "id": id,
        "title": title or f"Title {id}",
        "overview": "",
        "poster_path": f"/p{id}.jpg",
        "vote_average": rating,
        "vote_count": 100,
        "popularity": popularity,
        "release_date": date,
        "genre_ids": list(genres),
        "original_language": "en",
    }


class StubCatalog:
    """Catalog double. handler(content_type, page, query) returns a payload, an exception, or a coroutine."""

    def __init__(self, handler=None):
        self.handler = handler or (lambda ct, page, query: {"items": [], "totalPages": 0})
        self.calls = []

    async def discover(self, content_type, page, query, budget=None):
        self.calls.append((content_type, page, query))
        result = self.handler(content_type, page, query)
        if asyncio.iscoroutine(result):
            result = await result
        if isinstance(result, BaseException):
            raise result
        return result


def paged_handler(counts, per_page=20, genres=(35,)):
    """Serve counts[content_type] records split into pages, most popular first."""
    def handler(content_type, page, query):
        total = counts.get(content_type, 0)
        total_pages = math.ceil(total / per_page) if total else 0
        start = (page - 1) * per_page
        offset = 0 if content_type is ContentType.MOVIE else SERIES_ID_OFFSET
        items = [
            make_raw(offset + i + 1, popularity=1000.0 - i, genres=genres)
            for i in range(start, min(start + per_page, total))
        ]
        return {"items": items, "totalPages": total_pages}
    return handler


class FakeTime:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def raw_record():
    return make_raw


@pytest.fixture
def stub_catalog():
    return StubCatalog


@pytest.fixture
def paged_catalog():
    return paged_handler


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def quota_store():
    return InMemoryQuotaStore()


@pytest.fixture
def governor(quota_store, fake_clock):
    return UsageQuotaGovernor(quota_store, guest_daily_limit=5, user_daily_limit=25, window_hours=24,
                              clock=fake_clock)


@pytest.fixture
def build_engine(fake_time, governor):
    """Factory: engine over a StubCatalog built from handler, with in-memory collaborators."""
    def build(handler, watchlists=None, page_timeout=5.0):
        catalog = StubCatalog(handler)
        cache = DiscoveryCache(InMemoryCacheBackend(), ttl=3600, clock=fake_time)
        engine = DiscoveryEngine(
            aggregator=CatalogAggregator(catalog, page_timeout=page_timeout),
            cache=cache,
            scorer=PersonalizationScorer(InMemoryWatchlistStore(watchlists or {}), weight=50),
            governor=governor,
            window=24,
            initial_page_count=3,
            load_more_page_count=3,
            default_min_rating=5.0,
        )
        return engine, catalog
    return build
