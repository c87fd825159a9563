"""
Fallback cascade for empty discovery results.

Attempt A runs the full filter set (mood genres + platforms + rating floor).
Attempt B drops the genre restriction and keeps everything else. If B is
empty too the caller gets NoContentFoundError. The cascade stops at the first
attempt with at least one item.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from moodreel.entities import ContentType
from moodreel.errors import AggregateFetchError, NoContentFoundError
from moodreel.services.aggregator import AggregateResult, CatalogAggregator
from moodreel.services.tmdb_client import CatalogQuery

logger = logging.getLogger(__name__)

ATTEMPT_FULL = "full"
ATTEMPT_WITHOUT_GENRES = "without_genres"


@dataclass
class CascadeOutcome:
    result: AggregateResult
    attempt: str
    query: CatalogQuery
    attempts_made: int


class FallbackCascade:
    def __init__(self, aggregator: CatalogAggregator):
        self.aggregator = aggregator

    def plan(self, query: CatalogQuery) -> List[tuple]:
        steps = [(ATTEMPT_FULL, query)]
        # Without a genre restriction attempt B would repeat attempt A verbatim
        if query.genre_ids:
            steps.append((ATTEMPT_WITHOUT_GENRES, query.without_genres()))
        return steps

    async def run(
        self,
        content_types: Sequence[ContentType],
        query: CatalogQuery,
        page_count: int,
        mood: Optional[str] = None,
    ) -> CascadeOutcome:
        """Run attempts in order. Rate-limit and auth errors propagate untouched."""
        steps = self.plan(query)
        for index, (name, step_query) in enumerate(steps, start=1):
            try:
                result = await self.aggregator.fetch(content_types, step_query, page_count)
            except AggregateFetchError as e:
                logger.warning(f"[Fallback] Attempt {name} failed for mood={mood}: {e}")
                continue
            if result.is_empty():
                logger.warning(f"[Fallback] Attempt {name} returned no items for mood={mood}")
                continue
            if index > 1:
                logger.info(f"[Fallback] Recovered with attempt {name} for mood={mood}")
            return CascadeOutcome(result=result, attempt=name, query=step_query, attempts_made=index)

        logger.error(f"[Fallback] All {len(steps)} attempts exhausted for mood={mood}")
        raise NoContentFoundError(
            f"No content found for mood {mood!r} after {len(steps)} attempts",
            mood=mood,
            attempts=len(steps),
        )
