from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./referify.db"

    # Reasoning collaborator
    reasoning_mode: str = "dev"  # dev | openai
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 60.0

    # Match scoring
    min_profile_chars: int = 50
    scoring_max_attempts: int = 3
    scoring_concurrency: int = 5
    suggestion_candidate_pool: int = 50

    # Live feed
    feed_resync_interval_seconds: float = 300.0  # 0 disables periodic resync
    feed_retry_max_seconds: float = 30.0
    feed_outbox_max_pending: int = 100  # notifications/statuses; snapshots coalesce
    feed_max_clock_skew_seconds: float = 60.0
    change_channel_max_pending: int = 256

    # App
    debug: bool = False
    allowed_origins: str = ""


settings = Settings()
