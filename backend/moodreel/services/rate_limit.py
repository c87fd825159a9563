"""
rate_limit.py

Redis-based AsyncLimiter for catalog API protection with exponential backoff.
Outbound only: this guards our calls to TMDB. Per-user assistant quotas live
in usage_quota.py.
"""
import time
import asyncio
import logging
import uuid
from typing import Optional

from moodreel.errors import UpstreamRateLimitedError

logger = logging.getLogger(__name__)

# Rate limit configurations
RATE_LIMITS = {
    "tmdb_api": {"limit": 40, "window": 10},      # 40 requests per 10 seconds
}

class AsyncLimiter:
    """Redis-based rate limiter with sliding window."""

    def __init__(self, redis, service: str = "tmdb_api", scope: str = "global"):
        self.service = service
        self.scope = scope
        self.redis = redis
        self.config = RATE_LIMITS.get(service, {"limit": 10, "window": 60})

    @property
    def key(self) -> str:
        return f"rate_limit:{self.service}:{self.scope}"

    async def acquire(self) -> bool:
        """Attempt to acquire a token. Returns True if allowed, False if rate limited."""
        now = time.time()
        window = self.config["window"]
        limit = self.config["limit"]

        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(self.key, 0, now - window)
        # Unique member per request so concurrent calls in the same second all count
        pipe.zadd(self.key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.zcard(self.key)
        pipe.expire(self.key, window)

        results = await pipe.execute()
        current_count = results[2]

        if current_count > limit:
            logger.warning(f"Rate limit exceeded for {self.service} ({self.scope}): {current_count}/{limit}")
            return False

        return True


async def with_backoff(func, *args, max_retries: int = 4, base_delay: float = 1.0,
                       max_delay: float = 30.0, limiter: Optional[AsyncLimiter] = None,
                       budget: Optional[float] = None, **kwargs):
    """Execute an async callable with exponential backoff on rate limit signals.

    Retries on UpstreamRateLimitedError (honoring retry_after when the server
    sent one) and on local limiter denials. Any other exception propagates
    immediately. When retries run out, UpstreamRateLimitedError is raised.

    budget bounds the whole call in seconds. A backoff sleep that would not
    finish inside it is skipped and the rate limit is raised straight away,
    so an outer timeout never hides it.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + budget if budget is not None else None
    delay = base_delay
    last_exception: Optional[UpstreamRateLimitedError] = None

    for attempt in range(max_retries):
        try:
            if limiter is not None and not await limiter.acquire():
                raise UpstreamRateLimitedError(f"Local rate limit reached for {limiter.service}")
            return await func(*args, **kwargs)
        except UpstreamRateLimitedError as e:
            last_exception = e
            if attempt == max_retries - 1:
                break
            sleep_for = min(max(delay, e.retry_after or 0), max_delay)
            if deadline is not None and loop.time() + sleep_for >= deadline:
                logger.warning(f"Rate limited on attempt {attempt + 1}/{max_retries}, "
                               f"{sleep_for}s backoff exceeds the remaining budget")
                break
            logger.warning(f"Rate limited on attempt {attempt + 1}/{max_retries}, sleeping {sleep_for}s")
            await asyncio.sleep(sleep_for)
            delay = min(delay * 2, max_delay)

    raise last_exception or UpstreamRateLimitedError(f"Max retries ({max_retries}) exceeded")
