"""
Discovery session state and the load-more controller.

A DiscoverySession is a plain serializable value: the candidate buffer, how
much of it is visible, and where each content type's paging stopped. The
pipeline never keeps it in ambient storage; callers pass it in and get a new
one back.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from moodreel.core.config import settings
from moodreel.entities import CatalogItem, ContentType, DiscoveryFilters
from moodreel.services.aggregator import CatalogAggregator
from moodreel.services.interleave import alternate, exclude_seen
from moodreel.services.personalization import GenreAffinityMap, PersonalizationScorer
from moodreel.services.tmdb_client import CatalogQuery

logger = logging.getLogger(__name__)


@dataclass
class DiscoverySession:
    mood: Optional[str] = None
    filters: DiscoveryFilters = field(default_factory=DiscoveryFilters)
    buffer: List[CatalogItem] = field(default_factory=list)
    visible_count: int = 0
    window: int = 24
    next_page: Dict[str, int] = field(default_factory=dict)
    exhausted: List[str] = field(default_factory=list)
    genres: List[int] = field(default_factory=list)
    retry_count: int = 0
    generation: int = 0

    def visible(self) -> List[CatalogItem]:
        return self.buffer[: self.visible_count]

    def active_types(self) -> List[ContentType]:
        return [ct for ct in self.filters.content_types() if ct.value not in self.exhausted]

    def has_more(self) -> bool:
        return len(self.buffer) > self.visible_count or bool(self.active_types())

    def page(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.visible()],
            "hasMore": self.has_more(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mood": self.mood,
            "filters": self.filters.to_dict(),
            "buffer": [item.to_dict() for item in self.buffer],
            "visibleCount": self.visible_count,
            "window": self.window,
            "nextPage": dict(self.next_page),
            "exhausted": list(self.exhausted),
            "genres": list(self.genres),
            "retryCount": self.retry_count,
            "generation": self.generation,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DiscoverySession":
        data = data or {}
        return cls(
            mood=data.get("mood"),
            filters=DiscoveryFilters.from_dict(data.get("filters")),
            buffer=[CatalogItem.from_dict(d) for d in data.get("buffer") or []],
            visible_count=int(data.get("visibleCount") or 0),
            window=int(data.get("window") or settings.discovery_window),
            next_page={k: int(v) for k, v in (data.get("nextPage") or {}).items()},
            exhausted=list(data.get("exhausted") or []),
            genres=[int(g) for g in data.get("genres") or []],
            retry_count=int(data.get("retryCount") or 0),
            generation=int(data.get("generation") or 0),
        )


class LoadMoreController:
    def __init__(self, aggregator: CatalogAggregator, scorer: PersonalizationScorer,
                 page_count: Optional[int] = None):
        self.aggregator = aggregator
        self.scorer = scorer
        self.page_count = page_count or settings.load_more_page_count

    async def load_more(self, session: DiscoverySession,
                        affinity: Optional[GenreAffinityMap] = None) -> DiscoverySession:
        """Reveal the next window, fetching more pages only when the buffer is used up."""
        if len(session.buffer) > session.visible_count:
            return replace(session, visible_count=session.visible_count + session.window)

        content_types = session.active_types()
        if not content_types:
            logger.info(f"[LoadMore] Catalog exhausted for mood={session.mood}")
            return session

        start_pages = {ct: session.next_page.get(ct.value, 1) for ct in content_types}
        query = CatalogQuery.from_filters(session.filters, session.genres)
        result = await self.aggregator.fetch(content_types, query, self.page_count, start_pages=start_pages)

        next_page = dict(session.next_page)
        exhausted = list(session.exhausted)
        for ct in content_types:
            if ct not in result.last_page:
                # Every page of this type failed; ask for the same pages next time
                logger.warning(f"[LoadMore] No {ct.value} pages came back, keeping page {start_pages[ct]}")
                continue
            next_page[ct.value] = result.last_page[ct] + 1
            if result.exhausted(ct) and ct.value not in exhausted:
                exhausted.append(ct.value)

        seen = {item.key for item in session.buffer}
        per_type = {}
        for ct in (ContentType.MOVIE, ContentType.SERIES):
            fresh = exclude_seen(result.by_type.get(ct, []), seen)
            per_type[ct] = self.scorer.score(fresh, affinity)
        new_items = alternate(per_type[ContentType.MOVIE], per_type[ContentType.SERIES])

        if not new_items:
            # Nothing new came back; stop asking for types that answered with nothing
            for ct in content_types:
                if ct in result.last_page and ct.value not in exhausted:
                    exhausted.append(ct.value)

        logger.info(f"[LoadMore] mood={session.mood} appended {len(new_items)} new items")
        return replace(
            session,
            buffer=session.buffer + new_items,
            visible_count=session.visible_count + session.window,
            next_page=next_page,
            exhausted=exhausted,
        )
