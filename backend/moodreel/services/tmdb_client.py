"""
TMDB client for moodreel.
- Async httpx client exposing the single "discover" call the pipeline needs.
- Reads the API key from settings, falling back to Redis-backed settings.
- Handles 429 with exponential backoff and Retry-After; 401 surfaces as AuthExpiredError.
- No in-module caching; results are cached by the discovery cache.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import httpx

from moodreel.core.config import settings
from moodreel.entities import CatalogItem, ContentType, DiscoveryFilters
from moodreel.errors import AuthExpiredError, UpstreamRateLimitedError
from moodreel.services.rate_limit import AsyncLimiter, with_backoff

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogQuery:
    """Filter set carried by every page fetch."""
    genre_ids: Tuple[int, ...] = ()
    platforms: FrozenSet[int] = field(default_factory=frozenset)
    min_rating: float = 0.0
    year_from: Optional[int] = None
    year_to: Optional[int] = None

    @classmethod
    def from_filters(cls, filters: DiscoveryFilters, genre_ids: Optional[List[int]] = None) -> "CatalogQuery":
        return cls(
            genre_ids=tuple(genre_ids or ()),
            platforms=filters.platforms,
            min_rating=filters.min_rating,
            year_from=filters.year_from,
            year_to=filters.year_to,
        )

    def accepts(self, item: CatalogItem) -> bool:
        """Client-side guard for the rating floor and year bounds."""
        if item.rating < self.min_rating:
            return False
        if self.year_from is None and self.year_to is None:
            return True
        year = item.year
        if year is None:
            return False
        if self.year_from is not None and year < self.year_from:
            return False
        if self.year_to is not None and year > self.year_to:
            return False
        return True

    def without_genres(self) -> "CatalogQuery":
        return CatalogQuery(
            genre_ids=(),
            platforms=self.platforms,
            min_rating=self.min_rating,
            year_from=self.year_from,
            year_to=self.year_to,
        )


async def get_tmdb_api_key(redis=None) -> Optional[str]:
    """API key from settings, else from Redis-backed settings."""
    if settings.tmdb_api_key:
        return settings.tmdb_api_key
    if redis is None:
        return None
    try:
        return await redis.get("settings:global:tmdb_api_key")
    except Exception as e:
        logger.warning(f"Could not read TMDB API key from Redis: {e}")
        return None


def _retry_after(resp: httpx.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class TMDBClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        region: Optional[str] = None,
        language: Optional[str] = None,
        min_vote_count: Optional[int] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_delay: float = 1.0,
        limiter: Optional[AsyncLimiter] = None,
        redis=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.region = region or settings.catalog_region
        self.language = language or settings.catalog_language
        self.min_vote_count = settings.min_vote_count if min_vote_count is None else min_vote_count
        self.timeout = timeout or settings.catalog_request_timeout_seconds
        self.max_retries = max_retries or settings.catalog_max_retries
        self.backoff_base_delay = backoff_base_delay
        self.limiter = limiter
        self._redis = redis
        self._transport = transport

    async def _api_key(self) -> str:
        if not self.api_key:
            self.api_key = await get_tmdb_api_key(self._redis)
        if not self.api_key:
            logger.error("TMDB API key not configured")
            raise AuthExpiredError("TMDB API key is not configured")
        return self.api_key

    def build_params(self, content_type: ContentType, page: int, query: CatalogQuery) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "sort_by": "popularity.desc",
            "page": page,
            "include_adult": "false",
            "language": self.language,
            "vote_count.gte": self.min_vote_count,
        }
        if query.min_rating:
            params["vote_average.gte"] = query.min_rating
        if query.genre_ids:
            # pipe = any-of; a comma would require every genre at once
            params["with_genres"] = "|".join(str(g) for g in query.genre_ids)
        if query.platforms:
            params["with_watch_providers"] = "|".join(str(p) for p in sorted(query.platforms))
            params["watch_region"] = self.region
        if content_type is ContentType.MOVIE:
            params["region"] = self.region
            date_field = "primary_release_date"
        else:
            date_field = "first_air_date"
        if query.year_from:
            params[f"{date_field}.gte"] = f"{query.year_from}-01-01"
        if query.year_to:
            params[f"{date_field}.lte"] = f"{query.year_to}-12-31"
        return params

    async def discover(self, content_type: ContentType, page: int, query: CatalogQuery,
                       budget: Optional[float] = None) -> Dict[str, Any]:
        """Fetch one discover page. Returns {"items": [...raw records], "totalPages": int}.

        budget caps the time spent in rate-limit backoff; see with_backoff.
        """
        params = self.build_params(content_type, page, query)
        params["api_key"] = await self._api_key()
        url = f"{self.base_url}/discover/{content_type.catalog_path}"

        async def make_request():
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=params)
                if resp.status_code == 401:
                    raise AuthExpiredError(f"TMDB rejected credentials for {content_type.value} page {page}")
                if resp.status_code == 429:
                    raise UpstreamRateLimitedError("TMDB rate limit", retry_after=_retry_after(resp))
                resp.raise_for_status()
                return resp.json()

        payload = await with_backoff(
            make_request,
            max_retries=self.max_retries,
            base_delay=self.backoff_base_delay,
            limiter=self.limiter,
            budget=budget,
        )
        return {
            "items": payload.get("results") or [],
            "totalPages": int(payload.get("total_pages") or 0),
        }
