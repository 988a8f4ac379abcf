from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./feedsync.db"

    # Application
    DEBUG: bool = False
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Feed fetching
    FETCH_TIMEOUT_SECONDS: float = 20.0
    FETCH_MAX_REDIRECTS: int = 5
    FETCH_USER_AGENT: str = "Mozilla/5.0 (compatible; FeedSync/1.0; +https://github.com/feedsync)"

    # Discovery reads at most this many bytes of the root page
    DISCOVERY_MAX_BYTES: int = 512 * 1024

    # Parsed item snippet length (plain text characters)
    SNIPPET_MAX_LENGTH: int = 500

    # Feed Cache
    FEED_CACHE_TTL_SECONDS: int = 180  # 3 minutes
    FEED_CACHE_MAX_SIZE: int = 999  # Maximum number of feeds to cache

    # Sync
    SYNC_CONCURRENCY: int = 4  # Feeds synced in parallel by "refresh all"
    SYNC_RETRY_DELAY_SECONDS: float = 1.0  # Wait before the single transient-error retry

    # Background refresh
    SCHEDULER_ENABLED: bool = True
    SYNC_INTERVAL_MINUTES: int = 30

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
