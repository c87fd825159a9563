import asyncio
from dataclasses import replace

from moodreel.entities import CatalogItem, ContentType, DiscoveryFilters
from moodreel.services.aggregator import CatalogAggregator
from moodreel.services.pagination import DiscoverySession, LoadMoreController
from moodreel.services.personalization import PersonalizationScorer


def buffer_of(n_movies, n_series):
    items = [CatalogItem(id=i, content_type=ContentType.MOVIE, popularity=1000.0 - i) for i in range(1, n_movies + 1)]
    items += [CatalogItem(id=100000 + i, content_type=ContentType.SERIES, popularity=1000.0 - i)
              for i in range(1, n_series + 1)]
    return items


def controller(catalog):
    return LoadMoreController(CatalogAggregator(catalog, page_timeout=5), PersonalizationScorer(weight=50),
                              page_count=3)


def session_with(buffer, visible=24, **kwargs):
    return DiscoverySession(mood="happy", filters=DiscoveryFilters(), buffer=buffer, visible_count=visible,
                            window=24, next_page={"movie": 4, "series": 4}, genres=[35], **kwargs)


def test_reveals_buffered_items_without_fetching(stub_catalog):
    catalog = stub_catalog()
    session = session_with(buffer_of(30, 30))
    updated = asyncio.run(controller(catalog).load_more(session))

    assert catalog.calls == []
    assert len(updated.visible()) == 48
    assert session.visible_count == 24


def test_fetches_next_pages_when_buffer_is_used_up(stub_catalog, paged_catalog):
    catalog = stub_catalog(paged_catalog({ContentType.MOVIE: 200, ContentType.SERIES: 200}))
    session = session_with(buffer_of(12, 12))
    updated = asyncio.run(controller(catalog).load_more(session))

    assert sorted({page for _, page, _ in catalog.calls}) == [4, 5, 6]
    assert all(query.genre_ids == (35,) for _, _, query in catalog.calls)
    assert updated.next_page == {"movie": 7, "series": 7}
    assert len(updated.buffer) == 24 + 120
    assert len(updated.visible()) == 48
    # The items already on screen stay in place
    assert updated.buffer[:24] == session.buffer
    assert updated.has_more()


def test_failed_type_keeps_its_page_position(stub_catalog, paged_catalog):
    ok = paged_catalog({ContentType.MOVIE: 200, ContentType.SERIES: 200})

    def handler(ct, page, query):
        if ct is ContentType.SERIES:
            return RuntimeError("series backend down")
        return ok(ct, page, query)

    catalog = stub_catalog(handler)
    session = session_with(buffer_of(12, 12))
    updated = asyncio.run(controller(catalog).load_more(session))

    assert updated.next_page == {"movie": 7, "series": 4}
    assert updated.exhausted == []
    assert len(updated.buffer) == 24 + 60

    catalog.handler = ok
    again = asyncio.run(controller(catalog).load_more(replace(updated, visible_count=len(updated.buffer))))
    assert sorted(page for ct, page, _ in catalog.calls[-6:] if ct is ContentType.SERIES) == [4, 5, 6]
    assert again.next_page == {"movie": 10, "series": 7}


def test_already_seen_items_are_not_appended(stub_catalog, raw_record):
    def handler(ct, page, query):
        offset = 0 if ct is ContentType.MOVIE else 100000
        return {"items": [raw_record(offset + 1), raw_record(offset + 500)], "totalPages": 50}

    session = session_with(buffer_of(12, 12))
    updated = asyncio.run(controller(stub_catalog(handler)).load_more(session))
    new_keys = [item.key for item in updated.buffer[24:]]
    assert new_keys == [("movie", 500), ("series", 100500)]


def test_exhausted_catalog_stops_fetching(stub_catalog, paged_catalog):
    catalog = stub_catalog(paged_catalog({ContentType.MOVIE: 70, ContentType.SERIES: 0}))
    session = session_with(buffer_of(12, 12))
    updated = asyncio.run(controller(catalog).load_more(session))

    assert set(updated.exhausted) == {"movie", "series"}
    assert len(updated.buffer) == 24 + 10
    assert not updated.has_more()

    calls_before = len(catalog.calls)
    final = asyncio.run(controller(catalog).load_more(updated))
    assert len(catalog.calls) == calls_before
    assert not final.has_more()


def test_session_round_trips_through_dict():
    session = session_with(buffer_of(2, 1), visible=3, exhausted=["series"], retry_count=2, generation=7)
    restored = DiscoverySession.from_dict(session.to_dict())
    assert restored == session
    assert restored.active_types() == [ContentType.MOVIE]
