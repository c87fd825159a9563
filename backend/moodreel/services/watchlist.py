"""
Read-only access to saved watchlists, used to build genre affinity.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from moodreel.entities import parse_genre_ids
from moodreel.models import WatchlistItem

logger = logging.getLogger(__name__)


class InMemoryWatchlistStore:
    def __init__(self, entries: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._entries = entries or {}

    async def get_watchlist(self, user_id: str) -> List[Dict[str, Any]]:
        return list(self._entries.get(str(user_id), []))


class SqlWatchlistStore:
    """Runs the blocking SQLAlchemy query in the default executor."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _load(self, user_id: str) -> List[Dict[str, Any]]:
        db = self.session_factory()
        try:
            rows = (
                db.query(WatchlistItem.content_id, WatchlistItem.genres)
                .filter(WatchlistItem.user_id == str(user_id))
                .all()
            )
            return [
                {"contentId": content_id, "genres": sorted(parse_genre_ids(genres))}
                for content_id, genres in rows
            ]
        finally:
            db.close()

    async def get_watchlist(self, user_id: str) -> List[Dict[str, Any]]:
        loop = asyncio.get_running_loop()
        entries = await loop.run_in_executor(None, self._load, user_id)
        logger.debug(f"[Watchlist] user={user_id} entries={len(entries)}")
        return entries
