from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from moodreel.errors import (
    AggregateFetchError,
    AuthExpiredError,
    DiscoveryError,
    NoContentFoundError,
    SessionNotFoundError,
    SupersededRequestError,
    UnknownMoodError,
    UpstreamRateLimitedError,
)
from moodreel.schemas import (
    DiscoveryPageResponse,
    FiltersPayload,
    MoodRequest,
    SessionCreate,
    SessionResponse,
)
from moodreel.api.deps import get_controller, get_quota_subject
from moodreel.entities import QuotaSubject
from moodreel.services.discovery_controller import DiscoveryController
from moodreel.services.discovery_engine import DiscoveryOutcome
from moodreel.services.mood import MOOD_GENRES, suggestion_for_time

router = APIRouter()


def to_http_error(e: DiscoveryError) -> HTTPException:
    """Map a discovery failure onto the status code the client acts on."""
    retry_count = getattr(e, "retry_count", None)
    if isinstance(e, UnknownMoodError):
        return HTTPException(status_code=422, detail={"error": "unknown_mood", "message": str(e)})
    if isinstance(e, NoContentFoundError):
        return HTTPException(status_code=404, detail={
            "error": "no_content", "message": str(e), "retryable": True,
            "mood": e.mood, "retryCount": retry_count,
        })
    if isinstance(e, UpstreamRateLimitedError):
        headers = {"Retry-After": str(int(e.retry_after))} if e.retry_after else None
        return HTTPException(status_code=429, headers=headers, detail={
            "error": "rate_limited", "message": str(e), "retryable": True,
            "retryAfter": e.retry_after, "retryCount": retry_count,
        })
    if isinstance(e, AuthExpiredError):
        return HTTPException(status_code=502, detail={"error": "auth_expired", "message": str(e), "retryable": False})
    if isinstance(e, SupersededRequestError):
        return HTTPException(status_code=409, detail={"error": "superseded", "message": str(e)})
    if isinstance(e, SessionNotFoundError):
        return HTTPException(status_code=404, detail={"error": "session_not_found", "message": str(e)})
    if isinstance(e, AggregateFetchError):
        return HTTPException(status_code=502, detail={
            "error": "catalog_unavailable", "message": str(e), "retryable": True, "retryCount": retry_count,
        })
    return HTTPException(status_code=500, detail={"error": "discovery_failed", "message": str(e)})


def _page_response(session_id: str, outcome: DiscoveryOutcome) -> DiscoveryPageResponse:
    page = outcome.page()
    return DiscoveryPageResponse(
        sessionId=session_id,
        mood=outcome.session.mood,
        items=page["items"],
        hasMore=page["hasMore"],
        retryCount=page["retryCount"],
        fromCache=outcome.from_cache,
        attempt=outcome.attempt,
        limitReached=outcome.limit_reached,
    )


@router.post("/sessions", response_model=SessionResponse)
async def create_session(
    payload: Optional[SessionCreate] = None,
    controller: DiscoveryController = Depends(get_controller),
):
    """Open a discovery session. Filters default to everything rated 5.0 or better."""
    filters = payload.filters.to_filters() if payload and payload.filters else None
    session_id, session = await controller.create_session(filters)
    return SessionResponse(sessionId=session_id, mood=session.mood, filters=session.filters.to_dict())


@router.post("/sessions/{session_id}/mood", response_model=DiscoveryPageResponse)
async def select_mood(
    session_id: str,
    request: MoodRequest,
    user_id: Optional[str] = Query(None),
    controller: DiscoveryController = Depends(get_controller),
):
    try:
        outcome = await controller.select_mood(session_id, request.mood, user_id)
    except DiscoveryError as e:
        raise to_http_error(e)
    return _page_response(session_id, outcome)


@router.post("/sessions/{session_id}/assistant", response_model=DiscoveryPageResponse)
async def select_mood_gated(
    session_id: str,
    request: MoodRequest,
    subject: QuotaSubject = Depends(get_quota_subject),
    controller: DiscoveryController = Depends(get_controller),
):
    """Quota-gated mood selection. limitReached=true means no credit was left and nothing was fetched."""
    try:
        outcome = await controller.select_mood_gated(session_id, request.mood, subject)
    except DiscoveryError as e:
        raise to_http_error(e)
    return _page_response(session_id, outcome)


@router.post("/sessions/{session_id}/filters", response_model=DiscoveryPageResponse)
async def apply_filters(
    session_id: str,
    payload: FiltersPayload,
    user_id: Optional[str] = Query(None),
    controller: DiscoveryController = Depends(get_controller),
):
    try:
        outcome = await controller.apply_filters(session_id, payload.to_filters(), user_id)
    except DiscoveryError as e:
        raise to_http_error(e)
    return _page_response(session_id, outcome)


@router.post("/sessions/{session_id}/more", response_model=DiscoveryPageResponse)
async def load_more(
    session_id: str,
    user_id: Optional[str] = Query(None),
    controller: DiscoveryController = Depends(get_controller),
):
    try:
        outcome = await controller.load_more(session_id, user_id)
    except DiscoveryError as e:
        raise to_http_error(e)
    return _page_response(session_id, outcome)


@router.post("/sessions/{session_id}/retry", response_model=DiscoveryPageResponse)
async def retry(
    session_id: str,
    user_id: Optional[str] = Query(None),
    controller: DiscoveryController = Depends(get_controller),
):
    try:
        outcome = await controller.retry(session_id, user_id)
    except DiscoveryError as e:
        raise to_http_error(e)
    return _page_response(session_id, outcome)


@router.get("/moods")
async def list_moods(user_timezone: str = Query("UTC", alias="timezone")) -> Dict[str, Any]:
    """Supported moods with their genre ids, plus a time-of-day hint for the idle screen."""
    suggestion = suggestion_for_time(user_timezone=user_timezone)
    return {
        "moods": [{"mood": mood.value, "genreIds": list(genres)} for mood, genres in MOOD_GENRES.items()],
        "suggestion": {
            "timeOfDay": suggestion.time_of_day,
            "genreIds": list(suggestion.suggested_genres),
            "minRuntime": suggestion.min_runtime,
            "maxRuntime": suggestion.max_runtime,
            "description": suggestion.description,
        },
    }
