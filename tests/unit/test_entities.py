import datetime

import pytest

from moodreel.entities import (
    CatalogItem,
    ContentType,
    DiscoveryFilters,
    QuotaSubject,
    UsageQuota,
    parse_genre_ids,
)


@pytest.mark.parametrize("raw, expected", [
    ([35, 18], {35, 18}),
    ([{"id": 35, "name": "Comedy"}, {"id": 18}], {35, 18}),
    ('[{"id": 27}]', {27}),
    ("[53, 80]", {53, 80}),
    ("35, 18", {35, 18}),
    ("not json [", set()),
    (None, set()),
    ("", set()),
    ([True, None, "x", 9648], {9648}),
])
def test_parse_genre_ids(raw, expected):
    assert parse_genre_ids(raw) == frozenset(expected)


def test_series_record_uses_name_and_first_air_date():
    raw = {"id": 7, "name": "Show", "first_air_date": "2019-04-02", "vote_average": 8.1,
           "popularity": 33.5, "genre_ids": [18]}
    item = CatalogItem.from_raw(raw, ContentType.SERIES)
    assert item.title == "Show"
    assert item.year == 2019
    assert item.key == ("series", 7)
    assert item.genre_ids == frozenset({18})


def test_missing_optional_fields_default():
    item = CatalogItem.from_raw({"id": 3}, ContentType.MOVIE)
    assert item.title == ""
    assert item.rating == 0.0
    assert item.release_date is None
    assert item.genre_ids == frozenset()


def test_item_serialization_keeps_score_and_date():
    item = CatalogItem(id=1, content_type=ContentType.MOVIE, title="A",
                       release_date=datetime.date(2001, 2, 3), genre_ids=frozenset({35}))
    scored = item.with_score(12.5)
    restored = CatalogItem.from_dict(scored.to_dict())
    assert restored == scored
    assert item.personalized_score is None


def test_filters_compare_by_value():
    a = DiscoveryFilters(platforms=frozenset({8, 337}), min_rating=6.0)
    b = DiscoveryFilters(platforms=[337, 8], min_rating=6.0)
    assert a == b
    assert a.canonical() == b.canonical()
    assert DiscoveryFilters.from_dict(a.to_dict()) == a


def test_filters_reject_unknown_content_type():
    with pytest.raises(ValueError):
        DiscoveryFilters(content_type="anime")


def test_filters_content_types():
    assert DiscoveryFilters().content_types() == (ContentType.MOVIE, ContentType.SERIES)
    assert DiscoveryFilters(content_type="series").content_types() == (ContentType.SERIES,)


def test_quota_subject_prefers_user_id():
    assert QuotaSubject(user_id="42", session_id="guest_1").key == "user:42"
    assert QuotaSubject(session_id="guest_1").key == "session:guest_1"
    assert not QuotaSubject(session_id="guest_1").is_authenticated
    with pytest.raises(ValueError):
        QuotaSubject()


def test_usage_quota_remaining():
    reset = datetime.datetime(2024, 1, 2, tzinfo=datetime.timezone.utc)
    assert UsageQuota(daily_limit=5, consumed=2, reset_at=reset).remaining == 3
    assert UsageQuota(daily_limit=5, consumed=9, reset_at=reset).remaining == 0
    assert UsageQuota(daily_limit=None, consumed=0, reset_at=reset, is_privileged=True).remaining is None
