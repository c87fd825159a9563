from moodreel.entities import CatalogItem, ContentType
from moodreel.services.interleave import alternate, dedupe, exclude_seen, interleave


def movies(n, start=1):
    return [CatalogItem(id=i, content_type=ContentType.MOVIE, title=f"m{i}") for i in range(start, start + n)]


def series(n, start=1):
    return [CatalogItem(id=i, content_type=ContentType.SERIES, title=f"s{i}") for i in range(start, start + n)]


def test_balanced_window_with_overflow():
    m, s = movies(18), series(22)
    result = interleave(m, s, 24)

    assert len(result.window) == 24
    assert sum(1 for i in result.window if i.content_type is ContentType.MOVIE) == 12
    assert sum(1 for i in result.window if i.content_type is ContentType.SERIES) == 12
    assert len(result.overflow) == 16
    assert len(result.ordered) == 40
    # Movie first, strictly alternating inside the window
    assert [i.content_type for i in result.window[:4]] == [
        ContentType.MOVIE, ContentType.SERIES, ContentType.MOVIE, ContentType.SERIES,
    ]
    # Per-type order survives
    assert [i.id for i in result.window if i.content_type is ContentType.MOVIE] == list(range(1, 13))


def test_scarce_type_gives_up_its_slots():
    result = interleave(movies(30), series(5), 24)
    assert len(result.window) == 24
    assert sum(1 for i in result.window if i.content_type is ContentType.SERIES) == 5
    assert sum(1 for i in result.window if i.content_type is ContentType.MOVIE) == 19
    assert len(result.overflow) == 11


def test_short_supply_fills_what_it_can():
    result = interleave(movies(3), series(2), 24)
    assert len(result.window) == 5
    assert result.overflow == []


def test_single_type():
    result = interleave([], series(30), 24)
    assert len(result.window) == 24
    assert len(result.overflow) == 6


def test_alternate_runs_both_lists_out():
    ordered = alternate(movies(1), series(3))
    assert [(i.content_type.value, i.id) for i in ordered] == [
        ("movie", 1), ("series", 1), ("series", 2), ("series", 3),
    ]


def test_dedupe_last_seen_wins_first_position_kept():
    first = CatalogItem(id=1, content_type=ContentType.MOVIE, title="old")
    other = CatalogItem(id=2, content_type=ContentType.MOVIE)
    updated = CatalogItem(id=1, content_type=ContentType.MOVIE, title="new")
    same_id_series = CatalogItem(id=1, content_type=ContentType.SERIES)

    out = dedupe([first, other, updated, same_id_series])
    assert [(i.key, i.title) for i in out] == [
        (("movie", 1), "new"), (("movie", 2), ""), (("series", 1), ""),
    ]


def test_exclude_seen():
    out = exclude_seen(movies(5), {("movie", 2), ("movie", 4), ("series", 1)})
    assert [i.id for i in out] == [1, 3, 5]
