"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "mawjood"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Public base URLs
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"

    # Postgres (empty disables database features)
    database_url: str = ""
    database_pool_size: int = 5
    database_max_overflow: int = 10
    # Create tables on startup instead of running Alembic (local development)
    database_auto_create: bool = False

    # Redis (Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # PayTabs
    paytabs_server_key: str = ""
    paytabs_profile_id: str = ""
    paytabs_api_url: str = "https://secure.paytabs.sa"
    paytabs_currency: str = "SAR"
    paytabs_callback_url: Optional[str] = None
    paytabs_return_url: Optional[str] = None
    paytabs_timeout_seconds: float = 15.0

    # Redirect hop 2 waits up to attempts * interval for the callback
    redirect_poll_attempts: int = 6
    redirect_poll_interval_seconds: float = 0.5

    # Pending payment sweep
    pending_reconcile_after_minutes: int = 10
    pending_reconcile_batch_size: int = 50

    # Brevo transactional email
    brevo_api_key: str = ""
    brevo_sender_email: str = "noreply@mawjood.sa"
    brevo_sender_name: str = "Mawjood"

    # Timezone
    default_timezone: str = "Asia/Riyadh"

    # Admin
    admin_api_key: str = ""

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def callback_url(self) -> str:
        """Absolute server-to-server callback URL handed to PayTabs."""
        if self.paytabs_callback_url:
            return self.paytabs_callback_url
        return f"{self.backend_url.rstrip('/')}/api/payments/gateway/callback"

    @property
    def return_url(self) -> str:
        """Absolute browser return URL handed to PayTabs."""
        if self.paytabs_return_url:
            return self.paytabs_return_url
        return f"{self.backend_url.rstrip('/')}/api/payments/gateway/return"

    @property
    def paytabs_configured(self) -> bool:
        return bool(self.paytabs_server_key and self.paytabs_profile_id and self.paytabs_api_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
