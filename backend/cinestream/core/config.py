import os
from pydantic_settings import BaseSettings



class Settings(BaseSettings):
    database_url: str = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{os.getenv('POSTGRES_USER', 'cinestream')}:{os.getenv('POSTGRES_PASSWORD', 'cinestream')}@db:5432/{os.getenv('POSTGRES_DB', 'cinestream')}",
    )
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")

    # Upstream movie metadata API
    movie_api_base_url: str = os.getenv("MOVIE_API_BASE_URL", "https://api.dulieuphim.ink")
    movie_api_version: str = os.getenv("MOVIE_API_VERSION", "v1")
    movie_api_timeout_seconds: float = float(os.getenv("MOVIE_API_TIMEOUT_SECONDS", "10"))
    movie_api_user_agent: str = os.getenv("MOVIE_API_USER_AGENT", "CineStream/1.0")
    movie_api_retries: int = int(os.getenv("MOVIE_API_RETRIES", "3"))
    movie_api_backoff_base: float = float(os.getenv("MOVIE_API_BACKOFF_BASE", "2"))
    circuit_failure_threshold: int = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))
    circuit_reset_seconds: float = float(os.getenv("CIRCUIT_RESET_SECONDS", "30"))

    # Response cache TTLs (seconds)
    cache_ttl_detail: int = int(os.getenv("CACHE_TTL_DETAIL", str(60 * 60 * 24)))
    cache_ttl_list: int = int(os.getenv("CACHE_TTL_LIST", "600"))
    cache_ttl_taxonomy: int = int(os.getenv("CACHE_TTL_TAXONOMY", str(60 * 60 * 24)))
    cache_ttl_stats: int = int(os.getenv("CACHE_TTL_STATS", "300"))
    movie_cache_max_age_days: int = int(os.getenv("MOVIE_CACHE_MAX_AGE_DAYS", "30"))
    sync_latest_pages: int = int(os.getenv("SYNC_LATEST_PAGES", "3"))

    # Auth
    jwt_secret: str = os.getenv("JWT_SECRET", "change-me-to-a-secret-that-is-at-least-32-characters")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
    refresh_token_expire_days: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30"))

    # Fixed-window rate limits: (requests, window seconds)
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
    rate_limit_default: int = int(os.getenv("RATE_LIMIT_DEFAULT", "100"))
    rate_limit_default_window: int = int(os.getenv("RATE_LIMIT_DEFAULT_WINDOW", "60"))
    rate_limit_burst: int = int(os.getenv("RATE_LIMIT_BURST", "10"))
    rate_limit_burst_window: int = int(os.getenv("RATE_LIMIT_BURST_WINDOW", "10"))
    rate_limit_search: int = int(os.getenv("RATE_LIMIT_SEARCH", "30"))
    rate_limit_search_window: int = int(os.getenv("RATE_LIMIT_SEARCH_WINDOW", "60"))

    slow_request_ms: int = int(os.getenv("SLOW_REQUEST_MS", "1000"))

    @property
    def cors_origin_list(self):
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()
