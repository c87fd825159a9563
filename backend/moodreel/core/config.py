import os
from pydantic_settings import BaseSettings



class Settings(BaseSettings):
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    database_url: str = os.getenv("DATABASE_URL", f"postgresql+psycopg2://{os.getenv('POSTGRES_USER', 'moodreel')}:{os.getenv('POSTGRES_PASSWORD', 'moodreel')}@db:5432/{os.getenv('POSTGRES_DB', 'moodreel')}")

    # Catalog (TMDB). Key may also live in Redis under settings:global:tmdb_api_key
    tmdb_api_key: str = os.getenv("TMDB_API_KEY", "")
    tmdb_base_url: str = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    catalog_region: str = os.getenv("CATALOG_REGION", "US")
    catalog_language: str = os.getenv("CATALOG_LANGUAGE", "en-US")
    min_vote_count: int = int(os.getenv("MIN_VOTE_COUNT", "10"))
    catalog_request_timeout_seconds: float = float(os.getenv("CATALOG_REQUEST_TIMEOUT_SECONDS", "10"))
    catalog_max_retries: int = int(os.getenv("CATALOG_MAX_RETRIES", "4"))

    # Discovery pipeline
    discovery_window: int = int(os.getenv("DISCOVERY_WINDOW", "24"))
    initial_page_count: int = int(os.getenv("DISCOVERY_INITIAL_PAGES", "3"))
    load_more_page_count: int = int(os.getenv("DISCOVERY_LOAD_MORE_PAGES", "3"))
    page_timeout_seconds: float = float(os.getenv("DISCOVERY_PAGE_TIMEOUT_SECONDS", "12"))
    default_min_rating: float = float(os.getenv("DISCOVERY_DEFAULT_MIN_RATING", "5.0"))
    discovery_cache_ttl_seconds: int = int(os.getenv("DISCOVERY_CACHE_TTL", "3600"))  # 1h
    personalization_weight: float = float(os.getenv("PERSONALIZATION_WEIGHT", "50"))
    session_ttl_seconds: int = int(os.getenv("DISCOVERY_SESSION_TTL", "21600"))  # 6h

    # Assistant usage quota
    guest_daily_limit: int = int(os.getenv("GUEST_DAILY_LIMIT", "5"))
    user_daily_limit: int = int(os.getenv("USER_DAILY_LIMIT", "25"))
    quota_window_hours: int = int(os.getenv("QUOTA_WINDOW_HOURS", "24"))

settings = Settings()
