"""
usage_quota.py

Daily usage quota for the assistant-driven discovery variant.
- One row per subject (authenticated user id, else anonymous session token).
- Rows are created lazily and roll forward: once now >= reset_at the counter
  is zeroed and the window restarts at now.
- increment() is a single check-and-increment against the store; in Redis it
  is one Lua script so concurrent tabs cannot push consumed past the limit.
- Privileged subjects (admins) always pass and never touch the store.
"""
import asyncio
import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from moodreel.core.config import settings
from moodreel.entities import QuotaSubject, UsageQuota
from moodreel.utils.timezone import ensure_utc, utc_now

logger = logging.getLogger(__name__)

KEY_PREFIX = "usage_quota:"


def new_guest_session_id() -> str:
    """Anonymous subject token: guest_<epoch ms>_<random>."""
    return f"guest_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _to_quota(daily_limit: int, consumed: int, last_reset_at: datetime, window: timedelta) -> UsageQuota:
    return UsageQuota(daily_limit=daily_limit, consumed=consumed, reset_at=last_reset_at + window)


class InMemoryQuotaStore:
    """Process-local store; an asyncio lock makes check-and-increment atomic."""

    def __init__(self):
        self._rows: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    def put(self, key: str, consumed: int, last_reset_at: datetime) -> None:
        self._rows[key] = {"consumed": consumed, "last_reset_at": ensure_utc(last_reset_at)}

    def _roll(self, key: str, now: datetime, window: timedelta) -> Dict:
        row = self._rows.get(key)
        if row is None:
            row = {"consumed": 0, "last_reset_at": now}
            self._rows[key] = row
        elif now >= row["last_reset_at"] + window:
            row["consumed"] = 0
            row["last_reset_at"] = now
        return row

    async def observe(self, key: str, daily_limit: int, now: datetime, window: timedelta) -> UsageQuota:
        async with self._lock:
            row = self._roll(key, now, window)
            return _to_quota(daily_limit, row["consumed"], row["last_reset_at"], window)

    async def increment(self, key: str, daily_limit: int, now: datetime,
                        window: timedelta) -> Tuple[bool, UsageQuota]:
        async with self._lock:
            row = self._roll(key, now, window)
            allowed = row["consumed"] < daily_limit
            if allowed:
                row["consumed"] += 1
            return allowed, _to_quota(daily_limit, row["consumed"], row["last_reset_at"], window)


# Roll-forward plus optional conditional increment, atomically.
# KEYS[1] quota hash; ARGV: now (epoch s), window (s), daily limit, "read"|"incr"
_QUOTA_SCRIPT = """
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local data = redis.call('HMGET', KEYS[1], 'consumed', 'last_reset_at')
local consumed = tonumber(data[1])
local last_reset = tonumber(data[2])
if consumed == nil or last_reset == nil or now >= last_reset + window then
  consumed = 0
  last_reset = now
  redis.call('HSET', KEYS[1], 'consumed', 0, 'last_reset_at', ARGV[1])
end
redis.call('HSET', KEYS[1], 'daily_limit', limit)
local allowed = 0
if ARGV[4] == 'incr' and consumed < limit then
  consumed = redis.call('HINCRBY', KEYS[1], 'consumed', 1)
  allowed = 1
end
return {allowed, consumed, tostring(last_reset)}
"""


class RedisQuotaStore:
    def __init__(self, redis):
        self.redis = redis
        self._script = None

    def _get_script(self):
        if self._script is None:
            self._script = self.redis.register_script(_QUOTA_SCRIPT)
        return self._script

    async def _run(self, key: str, daily_limit: int, now: datetime, window: timedelta,
                   mode: str) -> Tuple[bool, UsageQuota]:
        script = self._get_script()
        allowed, consumed, last_reset = await script(
            keys=[KEY_PREFIX + key],
            args=[repr(now.timestamp()), int(window.total_seconds()), daily_limit, mode],
        )
        last_reset_at = datetime.fromtimestamp(float(last_reset), tz=timezone.utc)
        return bool(int(allowed)), _to_quota(daily_limit, int(consumed), last_reset_at, window)

    async def observe(self, key: str, daily_limit: int, now: datetime, window: timedelta) -> UsageQuota:
        _, quota = await self._run(key, daily_limit, now, window, "read")
        return quota

    async def increment(self, key: str, daily_limit: int, now: datetime,
                        window: timedelta) -> Tuple[bool, UsageQuota]:
        return await self._run(key, daily_limit, now, window, "incr")


class UsageQuotaGovernor:
    def __init__(self, store, guest_daily_limit: Optional[int] = None, user_daily_limit: Optional[int] = None,
                 window_hours: Optional[int] = None, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.guest_daily_limit = settings.guest_daily_limit if guest_daily_limit is None else guest_daily_limit
        self.user_daily_limit = settings.user_daily_limit if user_daily_limit is None else user_daily_limit
        self.window = timedelta(hours=window_hours or settings.quota_window_hours)
        self.clock = clock

    def limit_for(self, subject: QuotaSubject) -> Optional[int]:
        if subject.is_admin:
            return None
        return self.user_daily_limit if subject.is_authenticated else self.guest_daily_limit

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    async def get_limits(self, subject: QuotaSubject) -> UsageQuota:
        """Current quota for a subject, rolling the window forward if it elapsed."""
        now = self._now()
        if subject.is_admin:
            return UsageQuota(daily_limit=None, consumed=0, reset_at=now + self.window, is_privileged=True)
        limit = self.limit_for(subject)
        try:
            return await self.store.observe(subject.key, limit, now, self.window)
        except Exception as e:
            logger.error(f"[Quota] Limit lookup failed for {subject.key}, using defaults: {e}")
            return UsageQuota(daily_limit=limit, consumed=0, reset_at=now + self.window)

    async def increment(self, subject: QuotaSubject) -> bool:
        """Check-and-increment. False means the limit is reached (or the store failed); state is unchanged."""
        if subject.is_admin:
            logger.debug(f"[Quota] Privileged subject {subject.key} bypasses limit")
            return True
        limit = self.limit_for(subject)
        try:
            allowed, quota = await self.store.increment(subject.key, limit, self._now(), self.window)
        except Exception as e:
            logger.error(f"[Quota] Increment failed for {subject.key}: {e}")
            return False
        if allowed:
            logger.info(f"[Quota] {subject.key} used {quota.consumed}/{quota.daily_limit}")
        else:
            logger.info(f"[Quota] {subject.key} reached limit {quota.daily_limit}")
        return allowed


def format_reset_time(reset_at: datetime, now: Optional[datetime] = None) -> str:
    """Human countdown until reset: "3h 12m" or "45m"."""
    now = ensure_utc(now) if now is not None else utc_now()
    seconds = max(0, int((ensure_utc(reset_at) - now).total_seconds()))
    hours, rem = divmod(seconds, 3600)
    minutes = rem // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
