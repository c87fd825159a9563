"""
errors.py

Error taxonomy for the discovery pipeline and the usage quota governor.
"""
from typing import Optional


class DiscoveryError(Exception):
    """Base exception for discovery failures."""
    pass


class UnknownMoodError(DiscoveryError, ValueError):
    """Raised when a mood outside the supported set is requested."""

    def __init__(self, mood):
        super().__init__(f"Unknown mood: {mood!r}")
        self.mood = mood


class AggregateFetchError(DiscoveryError):
    """Raised when every page of every requested content type failed."""

    def __init__(self, message: str, failures: Optional[list] = None):
        super().__init__(message)
        self.failures = failures or []


class NoContentFoundError(DiscoveryError):
    """Raised when every fallback step completed without a usable item."""

    retryable = True

    def __init__(self, message: str = "No content found", mood: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.mood = mood
        self.attempts = attempts


class UpstreamRateLimitedError(DiscoveryError):
    """Raised when the catalog service keeps answering with a rate-limit signal."""

    retryable = True

    def __init__(self, message: str = "Catalog rate limit reached", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class AuthExpiredError(DiscoveryError):
    """Raised when the catalog or backing store rejects our credentials."""

    retryable = False


class CacheWriteError(DiscoveryError):
    """Raised by cache backends on write failures. Never leaves DiscoveryCache."""
    pass


class SupersededRequestError(DiscoveryError):
    """Raised when a newer request for the same session started before this one finished."""

    def __init__(self, session_id: str, generation: int, current: int):
        super().__init__(f"Request generation {generation} superseded by {current} for session {session_id}")
        self.session_id = session_id
        self.generation = generation
        self.current = current


class SessionNotFoundError(DiscoveryError):
    """Raised when a discovery session id is unknown or expired."""
    pass
