"""
Application Settings for the Lovelock subscription backend

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Price IDs are read here but only interpreted by the PriceCatalog
    (see app.domain.tier_resolver), which validates them eagerly.
    """

    # Supabase Configuration (datastore + identity)
    supabase_url: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_timeout_seconds: float = 10.0

    # Stripe price IDs (tier x billing cycle)
    stripe_premium_monthly_price_id: Optional[str] = None
    stripe_premium_yearly_price_id: Optional[str] = None
    stripe_unlimited_monthly_price_id: Optional[str] = None
    stripe_unlimited_yearly_price_id: Optional[str] = None

    # Sandbox price IDs are not always registered in the mapping above.
    # When enabled, ids starting with the prefix resolve by name.
    stripe_test_price_prefix: str = "price_test_"
    stripe_test_price_fallback: Optional[bool] = None

    # Scheduled expiry sweep
    cron_secret_token: Optional[str] = None
    expiring_soon_days: int = 7

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_command_timeout: float = 10.0
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def apply_environment_defaults(self) -> "Settings":
        """Resolve defaults that depend on the environment."""
        if self.stripe_test_price_fallback is None:
            self.stripe_test_price_fallback = not self.is_production

        if self.expiring_soon_days < 1:
            raise ValueError("EXPIRING_SOON_DAYS must be at least 1")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def stripe_mode(self) -> str:
        """'test' or 'live' depending on the configured secret key."""
        if self.stripe_secret_key and self.stripe_secret_key.startswith("sk_test_"):
            return "test"
        return "live"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
