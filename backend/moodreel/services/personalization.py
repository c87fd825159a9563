"""
Personalization scorer.

Anonymous callers get plain popularity order. Authenticated callers get
popularity plus a boost for every genre they already keep in their watchlist:

    personalized_score = popularity + WEIGHT * sum(affinity[g] for g in item.genre_ids)

Sorting is stable, so ties keep fetch order.
"""
import logging
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from moodreel.core.config import settings
from moodreel.entities import CatalogItem, parse_genre_ids

logger = logging.getLogger(__name__)

GenreAffinityMap = Dict[int, int]


def build_affinity_map(watchlist: Iterable[Dict[str, Any]]) -> GenreAffinityMap:
    """Count genre id occurrences across saved watchlist entries."""
    counts: Counter = Counter()
    for entry in watchlist or []:
        if not isinstance(entry, dict):
            continue
        counts.update(parse_genre_ids(entry.get("genres")))
    return dict(counts)


def affinity_boost(item: CatalogItem, affinity: GenreAffinityMap) -> int:
    return sum(affinity.get(g, 0) for g in item.genre_ids)


def score(items: List[CatalogItem], affinity: Optional[GenreAffinityMap] = None,
          weight: Optional[float] = None) -> List[CatalogItem]:
    """Return new items sorted by descending score; input items are left untouched."""
    if weight is None:
        weight = settings.personalization_weight

    if not affinity:
        scored = [item.with_score(item.popularity) for item in items]
        return sorted(scored, key=lambda it: -it.popularity)

    scored = [
        item.with_score(item.popularity + weight * affinity_boost(item, affinity))
        for item in items
    ]
    return sorted(scored, key=lambda it: (-it.personalized_score, -it.popularity))


class PersonalizationScorer:
    """Builds the caller's affinity map from the watchlist store and scores with it.

    Watchlist lookups are an enhancement: on failure the caller is scored as
    anonymous.
    """

    def __init__(self, watchlist_store=None, weight: Optional[float] = None):
        self.watchlist_store = watchlist_store
        self.weight = settings.personalization_weight if weight is None else weight

    async def affinity_for(self, user_id: Optional[str]) -> Optional[GenreAffinityMap]:
        if not user_id or self.watchlist_store is None:
            return None
        try:
            watchlist = await self.watchlist_store.get_watchlist(user_id)
        except Exception as e:
            logger.warning(f"[Personalization] Watchlist lookup failed for user {user_id}, scoring anonymously: {e}")
            return None
        affinity = build_affinity_map(watchlist)
        logger.debug(f"[Personalization] user={user_id} affinity genres={len(affinity)}")
        return affinity or None

    def score(self, items: List[CatalogItem], affinity: Optional[GenreAffinityMap]) -> List[CatalogItem]:
        return score(items, affinity, self.weight)
