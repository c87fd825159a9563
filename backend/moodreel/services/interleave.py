"""
Deduplication and type-balanced interleaving of movie and series results.
"""
from dataclasses import dataclass
from typing import Collection, Dict, Iterable, List, Optional, Tuple

from moodreel.entities import CatalogItem


def dedupe(items: Iterable[CatalogItem]) -> List[CatalogItem]:
    """Unique by (content_type, id). Last-seen wins, keeping the first-seen position."""
    by_key: Dict[Tuple[str, int], CatalogItem] = {}
    for item in items:
        by_key[item.key] = item
    return list(by_key.values())


def exclude_seen(items: Iterable[CatalogItem], seen: Collection[Tuple[str, int]]) -> List[CatalogItem]:
    return [item for item in dedupe(items) if item.key not in seen]


@dataclass
class InterleaveResult:
    window: List[CatalogItem]
    overflow: List[CatalogItem]

    @property
    def ordered(self) -> List[CatalogItem]:
        return self.window + self.overflow


def alternate(movies: List[CatalogItem], series: List[CatalogItem]) -> List[CatalogItem]:
    """Uncapped alternation, movie first, until both lists run out."""
    out: List[CatalogItem] = []
    for i in range(max(len(movies), len(series))):
        if i < len(movies):
            out.append(movies[i])
        if i < len(series):
            out.append(series[i])
    return out


def interleave(movies: List[CatalogItem], series: List[CatalogItem], window: int,
               movie_cap: Optional[int] = None, series_cap: Optional[int] = None) -> InterleaveResult:
    """Alternate movies and series into a window of at most `window` items.

    Each type gets half the window unless the other type runs out first, in
    which case the remaining slots go to whichever type still has supply.
    Internal order of each list is preserved. Whatever did not fit is the
    overflow buffer, itself alternated.
    """
    if movie_cap is None:
        movie_cap = window - window // 2
    if series_cap is None:
        series_cap = window // 2

    out: List[CatalogItem] = []
    mi = ti = 0
    while len(out) < window:
        progressed = False
        if mi < len(movies) and (mi < movie_cap or ti >= len(series)):
            out.append(movies[mi])
            mi += 1
            progressed = True
        if len(out) >= window:
            break
        if ti < len(series) and (ti < series_cap or mi >= len(movies)):
            out.append(series[ti])
            ti += 1
            progressed = True
        if not progressed:
            break

    return InterleaveResult(window=out, overflow=alternate(movies[mi:], series[ti:]))
