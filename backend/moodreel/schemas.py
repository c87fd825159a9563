"""
schemas.py

Pydantic payloads for the discovery and usage endpoints.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

from moodreel.entities import DiscoveryFilters


class FiltersPayload(BaseModel):
    platforms: List[int] = []
    contentType: Literal["movie", "series", "all"] = "all"
    minRating: float = Field(5.0, ge=0, le=10)
    yearFrom: Optional[int] = None
    yearTo: Optional[int] = None

    def to_filters(self) -> DiscoveryFilters:
        return DiscoveryFilters(
            platforms=frozenset(self.platforms),
            content_type=self.contentType,
            min_rating=self.minRating,
            year_from=self.yearFrom,
            year_to=self.yearTo,
        )


class SessionCreate(BaseModel):
    filters: Optional[FiltersPayload] = None


class MoodRequest(BaseModel):
    mood: str


# Responses
class SessionResponse(BaseModel):
    sessionId: str
    mood: Optional[str] = None
    filters: Dict[str, Any]


class DiscoveryPageResponse(BaseModel):
    sessionId: str
    mood: Optional[str] = None
    items: List[Dict[str, Any]]
    hasMore: bool
    retryCount: int = 0
    fromCache: bool = False
    attempt: str = "full"
    limitReached: bool = False


class UsageLimitsResponse(BaseModel):
    dailyLimit: Optional[int] = None
    consumed: int
    remaining: Optional[int] = None
    resetAt: str
    resetIn: str
    isPrivileged: bool = False


class SubmitQueryResponse(BaseModel):
    allowed: bool
    usage: UsageLimitsResponse
