"""
entities.py

Domain value objects shared by the discovery pipeline and the quota governor.
- CatalogItem: one normalized catalog record, identity is (content_type, id).
- DiscoveryFilters: immutable per request, compared by value.
- UsageQuota / QuotaSubject: daily usage metering.
"""
import json
import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class ContentType(str, Enum):
    MOVIE = "movie"
    SERIES = "series"

    @property
    def catalog_path(self) -> str:
        """Path segment the catalog uses for this type."""
        return "movie" if self is ContentType.MOVIE else "tv"


ALL_CONTENT_TYPES: Tuple[ContentType, ...] = (ContentType.MOVIE, ContentType.SERIES)


def parse_genre_ids(raw: Any) -> FrozenSet[int]:
    """Normalize the loosely typed genre field of catalog and watchlist records.

    Accepts a list of ints, a list of {"id": ...} objects, a JSON string of
    either, or a comma separated string. Unparseable entries are skipped.
    """
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return frozenset()
        if text[0] in "[{":
            try:
                raw = json.loads(text)
            except json.JSONDecodeError:
                return frozenset()
        else:
            raw = text.split(",")
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raw = [raw]

    ids = set()
    for entry in raw:
        if isinstance(entry, dict):
            entry = entry.get("id")
        if isinstance(entry, bool) or entry is None:
            continue
        try:
            ids.add(int(str(entry).strip()))
        except (TypeError, ValueError):
            continue
    return frozenset(ids)


def _parse_date(value: Any) -> Optional[datetime.date]:
    if not value:
        return None
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class CatalogItem:
    id: int
    content_type: ContentType
    title: str = ""
    overview: str = ""
    poster_ref: Optional[str] = None
    rating: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    release_date: Optional[datetime.date] = None
    genre_ids: FrozenSet[int] = field(default_factory=frozenset)
    original_language: Optional[str] = None
    personalized_score: Optional[float] = None

    @property
    def key(self) -> Tuple[str, int]:
        return (self.content_type.value, self.id)

    @property
    def year(self) -> Optional[int]:
        return self.release_date.year if self.release_date else None

    def with_score(self, score: float) -> "CatalogItem":
        return replace(self, personalized_score=score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "contentType": self.content_type.value,
            "title": self.title,
            "overview": self.overview,
            "posterRef": self.poster_ref,
            "rating": self.rating,
            "voteCount": self.vote_count,
            "popularity": self.popularity,
            "releaseDate": self.release_date.isoformat() if self.release_date else None,
            "genreIds": sorted(self.genre_ids),
            "originalLanguage": self.original_language,
            "personalizedScore": self.personalized_score,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogItem":
        return cls(
            id=int(data["id"]),
            content_type=ContentType(data["contentType"]),
            title=data.get("title") or "",
            overview=data.get("overview") or "",
            poster_ref=data.get("posterRef"),
            rating=float(data.get("rating") or 0.0),
            vote_count=int(data.get("voteCount") or 0),
            popularity=float(data.get("popularity") or 0.0),
            release_date=_parse_date(data.get("releaseDate")),
            genre_ids=parse_genre_ids(data.get("genreIds")),
            original_language=data.get("originalLanguage"),
            personalized_score=data.get("personalizedScore"),
        )

    @classmethod
    def from_raw(cls, raw: Dict[str, Any], content_type: ContentType) -> "CatalogItem":
        """Build an item from a raw catalog record. Missing optional fields default to empty/0."""
        return cls(
            id=int(raw["id"]),
            content_type=content_type,
            title=raw.get("title") or raw.get("name") or "",
            overview=raw.get("overview") or "",
            poster_ref=raw.get("poster_path"),
            rating=float(raw.get("vote_average") or 0.0),
            vote_count=int(raw.get("vote_count") or 0),
            popularity=float(raw.get("popularity") or 0.0),
            release_date=_parse_date(raw.get("release_date") or raw.get("first_air_date")),
            genre_ids=parse_genre_ids(raw.get("genre_ids", raw.get("genres"))),
            original_language=raw.get("original_language"),
        )


@dataclass(frozen=True)
class DiscoveryFilters:
    platforms: FrozenSet[int] = field(default_factory=frozenset)
    content_type: str = "all"
    min_rating: float = 5.0
    year_from: Optional[int] = None
    year_to: Optional[int] = None

    def __post_init__(self):
        if self.content_type not in ("movie", "series", "all"):
            raise ValueError(f"content_type must be movie, series or all, got {self.content_type!r}")
        if not isinstance(self.platforms, frozenset):
            object.__setattr__(self, "platforms", frozenset(int(p) for p in self.platforms))

    def content_types(self) -> Tuple[ContentType, ...]:
        if self.content_type == "all":
            return ALL_CONTENT_TYPES
        return (ContentType(self.content_type),)

    def canonical(self) -> Dict[str, Any]:
        return {
            "platforms": sorted(self.platforms),
            "contentType": self.content_type,
            "minRating": float(self.min_rating),
            "yearFrom": self.year_from,
            "yearTo": self.year_to,
        }

    def to_dict(self) -> Dict[str, Any]:
        return self.canonical()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DiscoveryFilters":
        data = data or {}
        return cls(
            platforms=frozenset(int(p) for p in data.get("platforms") or []),
            content_type=data.get("contentType") or "all",
            min_rating=float(data["minRating"]) if data.get("minRating") is not None else 5.0,
            year_from=data.get("yearFrom"),
            year_to=data.get("yearTo"),
        )


@dataclass(frozen=True)
class QuotaSubject:
    """Who is being metered: an authenticated user, else an anonymous session token."""
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    is_admin: bool = False

    def __post_init__(self):
        if not self.user_id and not self.session_id:
            raise ValueError("QuotaSubject needs a user_id or a session_id")

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def key(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        return f"session:{self.session_id}"


@dataclass
class UsageQuota:
    daily_limit: Optional[int]
    consumed: int
    reset_at: datetime.datetime
    is_privileged: bool = False

    @property
    def remaining(self) -> Optional[int]:
        if self.is_privileged or self.daily_limit is None:
            return None
        return max(0, self.daily_limit - self.consumed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dailyLimit": self.daily_limit,
            "consumed": self.consumed,
            "remaining": self.remaining,
            "resetAt": self.reset_at.isoformat(),
            "isPrivileged": self.is_privileged,
        }
