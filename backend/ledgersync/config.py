"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Supabase API Keys
    supabase_url: str
    supabase_secret_key: str  # Service key, backend-only (bypasses RLS)

    # Pluggy
    pluggy_client_id: str = ""
    pluggy_client_secret: str = ""
    pluggy_api_key: str | None = None  # Static key, skips /auth when set
    pluggy_api_url: str = "https://api.pluggy.ai"
    pluggy_timeout_seconds: float = 30.0
    pluggy_api_key_ttl_seconds: int = 600  # Pluggy keys live ~30 min

    # Item refresh polling
    poll_interval_seconds: float = 5.0
    poll_budget_seconds: float = 480.0  # Keep headroom under the 540s runtime deadline

    # Sync window (months around today)
    sync_months_back: int = 12
    sync_months_forward: int = 1

    # Job queue
    job_ttl_hours: int = 24
    stale_job_seconds: int = 900
    claim_max_retries: int = 3
    queue_sweep_seconds: int = 60

    # Institution name cache
    institution_cache_ttl_seconds: int = 3600

    # Shared secret for the internal trigger endpoint and webhook
    worker_secret: str = ""

    # App
    app_name: str = "LedgerSync"
    app_env: str = "development"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # API
    api_v1_prefix: str = "/app/v1"

    # Cron Jobs
    enable_cron_jobs: bool = True  # Queue sweep + stale job reaper

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
