"""
discovery_controller.py

HTTP-edge owner of discovery sessions.

Sessions live in a TTL-bound store keyed by session id. Every request for a
session takes a fresh generation number before it starts; when the engine
returns, the result is saved only if that generation is still the newest one.
A response that lost the race raises SupersededRequestError and leaves the
stored session alone.
"""
import asyncio
import json
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Dict, Optional, Tuple

from moodreel.core.config import settings
from moodreel.entities import DiscoveryFilters, QuotaSubject
from moodreel.errors import DiscoveryError, SessionNotFoundError, SupersededRequestError, UnknownMoodError
from moodreel.services.discovery_engine import DiscoveryEngine, DiscoveryOutcome
from moodreel.services.pagination import DiscoverySession
from moodreel.services.usage_quota import new_guest_session_id

logger = logging.getLogger(__name__)

SESSION_PREFIX = "discovery_session:"
GENERATION_PREFIX = "discovery_generation:"


def _with_mood(session: DiscoverySession, mood) -> DiscoverySession:
    # Remember the new mood so a retry re-runs it
    return replace(session, mood=str(getattr(mood, "value", mood)), buffer=[], visible_count=0, retry_count=0)


class InMemorySessionStore:
    def __init__(self):
        self._data: Dict[str, str] = {}

    async def load(self, session_id: str) -> Optional[DiscoverySession]:
        raw = self._data.get(session_id)
        return DiscoverySession.from_dict(json.loads(raw)) if raw else None

    async def save(self, session_id: str, session: DiscoverySession) -> None:
        self._data[session_id] = json.dumps(session.to_dict())


class RedisSessionStore:
    def __init__(self, redis, ttl: Optional[int] = None):
        self.redis = redis
        self.ttl = ttl or settings.session_ttl_seconds

    async def load(self, session_id: str) -> Optional[DiscoverySession]:
        raw = await self.redis.get(SESSION_PREFIX + session_id)
        if not raw:
            return None
        try:
            return DiscoverySession.from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"[Session] Corrupt session {session_id} discarded: {e}")
            return None

    async def save(self, session_id: str, session: DiscoverySession) -> None:
        await self.redis.set(SESSION_PREFIX + session_id, json.dumps(session.to_dict()), ex=self.ttl)


class InMemoryGenerationTracker:
    def __init__(self):
        self._current: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def next(self, session_id: str) -> int:
        async with self._lock:
            value = self._current.get(session_id, 0) + 1
            self._current[session_id] = value
            return value

    async def current(self, session_id: str) -> int:
        return self._current.get(session_id, 0)


class RedisGenerationTracker:
    """INCR is atomic, so concurrent workers never hand out the same generation."""

    def __init__(self, redis, ttl: Optional[int] = None):
        self.redis = redis
        self.ttl = ttl or settings.session_ttl_seconds

    async def next(self, session_id: str) -> int:
        key = GENERATION_PREFIX + session_id
        value = await self.redis.incr(key)
        await self.redis.expire(key, self.ttl)
        return int(value)

    async def current(self, session_id: str) -> int:
        raw = await self.redis.get(GENERATION_PREFIX + session_id)
        return int(raw or 0)


class DiscoveryController:
    def __init__(self, engine: DiscoveryEngine, sessions, generations):
        self.engine = engine
        self.sessions = sessions
        self.generations = generations

    async def create_session(self, filters: Optional[DiscoveryFilters] = None) -> Tuple[str, DiscoverySession]:
        session_id = new_guest_session_id()
        session = DiscoverySession(
            filters=filters or self.engine.default_filters(),
            window=self.engine.window,
        )
        await self.sessions.save(session_id, session)
        logger.info(f"[Session] Created {session_id}")
        return session_id, session

    async def get_session(self, session_id: str) -> DiscoverySession:
        session = await self.sessions.load(session_id)
        if session is None:
            raise SessionNotFoundError(f"Discovery session {session_id} not found")
        return session

    async def select_mood(self, session_id: str, mood: str, user_id: Optional[str] = None) -> DiscoveryOutcome:
        async def run(session: DiscoverySession) -> DiscoveryOutcome:
            return await self.engine.select_mood(session, mood, user_id)

        return await self._run(session_id, run, lambda session: _with_mood(session, mood))

    async def select_mood_gated(self, session_id: str, mood: str, subject: QuotaSubject) -> DiscoveryOutcome:
        async def run(session: DiscoverySession) -> DiscoveryOutcome:
            return await self.engine.select_mood_gated(session, mood, subject)

        return await self._run(session_id, run, lambda session: _with_mood(session, mood))

    async def apply_filters(self, session_id: str, filters: DiscoveryFilters,
                            user_id: Optional[str] = None) -> DiscoveryOutcome:
        async def run(session: DiscoverySession) -> DiscoveryOutcome:
            return await self.engine.apply_filters(session, filters, user_id)

        def on_failure(session: DiscoverySession) -> DiscoverySession:
            return replace(session, filters=filters, buffer=[], visible_count=0, retry_count=0)

        return await self._run(session_id, run, on_failure)

    async def retry(self, session_id: str, user_id: Optional[str] = None) -> DiscoveryOutcome:
        async def run(session: DiscoverySession) -> DiscoveryOutcome:
            return await self.engine.retry(session, user_id)

        def on_failure(session: DiscoverySession) -> DiscoverySession:
            return replace(session, retry_count=session.retry_count + 1)

        return await self._run(session_id, run, on_failure)

    async def load_more(self, session_id: str, user_id: Optional[str] = None) -> DiscoveryOutcome:
        async def run(session: DiscoverySession) -> DiscoveryOutcome:
            return await self.engine.load_more(session, user_id)

        return await self._run(session_id, run)

    async def _run(
        self,
        session_id: str,
        operation: Callable[[DiscoverySession], Awaitable[DiscoveryOutcome]],
        on_failure: Optional[Callable[[DiscoverySession], DiscoverySession]] = None,
    ) -> DiscoveryOutcome:
        session = await self.get_session(session_id)
        generation = await self.generations.next(session_id)
        try:
            outcome = await operation(session)
        except UnknownMoodError:
            raise
        except DiscoveryError as e:
            if on_failure is not None and await self._is_current(session_id, generation):
                failed = replace(on_failure(session), generation=generation)
                await self.sessions.save(session_id, failed)
                e.retry_count = failed.retry_count
            logger.error(f"[Session] {session_id} generation {generation} failed: {e}")
            raise

        current = await self.generations.current(session_id)
        if current != generation:
            logger.info(f"[Session] Discarding stale response for {session_id} ({generation} < {current})")
            raise SupersededRequestError(session_id, generation, current)

        outcome.session = replace(outcome.session, generation=generation)
        await self.sessions.save(session_id, outcome.session)
        return outcome

    async def _is_current(self, session_id: str, generation: int) -> bool:
        return await self.generations.current(session_id) == generation
