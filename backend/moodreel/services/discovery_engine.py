"""
discovery_engine.py

Mood-driven discovery pipeline:

    mood -> genres -> cache (miss: aggregator under the fallback cascade)
         -> dedup -> per-type personalization -> balanced interleave -> window

The engine keeps no per-session state. Every entry point takes the caller's
DiscoverySession and returns a new one with the page to display.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from moodreel.core.config import settings
from moodreel.entities import CatalogItem, ContentType, DiscoveryFilters, QuotaSubject, UsageQuota
from moodreel.errors import UnknownMoodError
from moodreel.services.aggregator import CatalogAggregator
from moodreel.services.discovery_cache import DiscoveryCache, cache_key
from moodreel.services.fallback import ATTEMPT_FULL, FallbackCascade
from moodreel.services.interleave import dedupe, interleave
from moodreel.services.mood import Mood, genres_for, parse_mood
from moodreel.services.pagination import DiscoverySession, LoadMoreController
from moodreel.services.personalization import PersonalizationScorer
from moodreel.services.tmdb_client import CatalogQuery
from moodreel.services.usage_quota import UsageQuotaGovernor

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryOutcome:
    session: DiscoverySession
    from_cache: bool = False
    attempt: str = ATTEMPT_FULL
    limit_reached: bool = False

    @property
    def items(self) -> List[CatalogItem]:
        return self.session.visible()

    @property
    def has_more(self) -> bool:
        return self.session.has_more()

    def page(self) -> Dict[str, Any]:
        page = self.session.page()
        page["retryCount"] = self.session.retry_count
        return page


class DiscoveryEngine:
    def __init__(
        self,
        aggregator: CatalogAggregator,
        cache: DiscoveryCache,
        scorer: Optional[PersonalizationScorer] = None,
        governor: Optional[UsageQuotaGovernor] = None,
        window: Optional[int] = None,
        initial_page_count: Optional[int] = None,
        load_more_page_count: Optional[int] = None,
        default_min_rating: Optional[float] = None,
    ):
        self.aggregator = aggregator
        self.cache = cache
        self.scorer = scorer or PersonalizationScorer()
        self.governor = governor
        self.window = window or settings.discovery_window
        self.initial_page_count = initial_page_count or settings.initial_page_count
        self.default_min_rating = settings.default_min_rating if default_min_rating is None else default_min_rating
        self.cascade = FallbackCascade(aggregator)
        self.pager = LoadMoreController(aggregator, self.scorer, load_more_page_count)

    def default_filters(self) -> DiscoveryFilters:
        return DiscoveryFilters(min_rating=self.default_min_rating)

    async def select_mood(self, session: Optional[DiscoverySession], mood: Union[Mood, str],
                          user_id: Optional[str] = None) -> DiscoveryOutcome:
        """Fresh discovery for a mood. The previous buffer is discarded; filters carry over."""
        filters = session.filters if session is not None else self.default_filters()
        return await self._discover(parse_mood(mood).value, filters, user_id)

    async def select_mood_gated(self, session: Optional[DiscoverySession], mood: Union[Mood, str],
                                subject: QuotaSubject) -> DiscoveryOutcome:
        """Assistant variant of select_mood: one quota credit is spent before any catalog work.

        When the subject is out of credits nothing is fetched and the caller's
        session comes back unchanged with limit_reached set.
        """
        mood_value = parse_mood(mood).value
        if not await self.submit_query(subject):
            logger.info(f"[Discovery] Quota exhausted for {subject.key}, mood={mood_value} not dispatched")
            if session is None:
                session = DiscoverySession(filters=self.default_filters(), window=self.window)
            return DiscoveryOutcome(session=session, limit_reached=True)
        filters = session.filters if session is not None else self.default_filters()
        return await self._discover(mood_value, filters, subject.user_id)

    async def apply_filters(self, session: Optional[DiscoverySession], filters: DiscoveryFilters,
                            user_id: Optional[str] = None) -> DiscoveryOutcome:
        """Re-run the pipeline for the session's mood with a new filter set."""
        if session is None or not session.mood:
            raise UnknownMoodError(None)
        return await self._discover(session.mood, filters, user_id)

    async def retry(self, session: DiscoverySession, user_id: Optional[str] = None) -> DiscoveryOutcome:
        """Re-invoke the last discovery unchanged. A successful run resets the retry count."""
        if not session.mood:
            raise UnknownMoodError(None)
        return await self._discover(session.mood, session.filters, user_id)

    async def load_more(self, session: DiscoverySession, user_id: Optional[str] = None) -> DiscoveryOutcome:
        affinity = None
        if len(session.buffer) <= session.visible_count:
            affinity = await self.scorer.affinity_for(user_id)
        updated = await self.pager.load_more(session, affinity)
        return DiscoveryOutcome(session=updated)

    async def _discover(self, mood: str, filters: DiscoveryFilters, user_id: Optional[str]) -> DiscoveryOutcome:
        genres = genres_for(mood)
        content_types = filters.content_types()
        key = cache_key(mood, filters)

        pool = await self.cache.get(key)
        from_cache = pool is not None
        attempt = ATTEMPT_FULL
        next_page = {ct.value: self.initial_page_count + 1 for ct in content_types}
        exhausted: List[str] = []
        active_genres = genres

        if pool is None:
            query = CatalogQuery.from_filters(filters, genres)
            outcome = await self.cascade.run(content_types, query, self.initial_page_count, mood=mood)
            attempt = outcome.attempt
            active_genres = list(outcome.query.genre_ids)
            pool = []
            for ct in content_types:
                pool.extend(dedupe(outcome.result.by_type.get(ct, [])))
                if outcome.result.exhausted(ct):
                    exhausted.append(ct.value)
            # Only the mood-filtered pool is worth sharing under this key
            if attempt == ATTEMPT_FULL:
                await self.cache.set(key, pool)

        affinity = await self.scorer.affinity_for(user_id)
        movies = self.scorer.score([i for i in pool if i.content_type is ContentType.MOVIE], affinity)
        series = self.scorer.score([i for i in pool if i.content_type is ContentType.SERIES], affinity)
        result = interleave(movies, series, self.window)

        session = DiscoverySession(
            mood=mood,
            filters=filters,
            buffer=result.ordered,
            visible_count=self.window,
            window=self.window,
            next_page=next_page,
            exhausted=exhausted,
            genres=active_genres,
            retry_count=0,
        )
        logger.info(
            f"[Discovery] mood={mood} cache={'hit' if from_cache else 'miss'} attempt={attempt} "
            f"visible={len(result.window)} overflow={len(result.overflow)}"
        )
        return DiscoveryOutcome(session=session, from_cache=from_cache, attempt=attempt)

    async def get_usage_limits(self, subject: QuotaSubject) -> UsageQuota:
        return await self._require_governor().get_limits(subject)

    async def submit_query(self, subject: QuotaSubject) -> bool:
        """Spend one assistant query. Must be awaited before the guarded work starts."""
        return await self._require_governor().increment(subject)

    def _require_governor(self) -> UsageQuotaGovernor:
        if self.governor is None:
            raise RuntimeError("DiscoveryEngine was built without a usage quota governor")
        return self.governor
