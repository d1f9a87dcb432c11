"""Application settings and configuration."""

import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret", "your_jwt_secret_key_here_at_least_32_characters"}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "guroute"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json
    allowed_origins: str = "http://localhost:3000"

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24

    # Database
    database_url: str = "sqlite:///./guroute.db"

    # Ledger
    welcome_credits: int = 2  # Granted once when the ledger is created
    referral_bonus: int = 1  # Paid to both referrer and referred user
    monthly_free_credits: int = 1
    monthly_interval_days: int = 30
    trip_cost: int = 1

    # Referral
    referral_code_prefix: str = "GR-"
    referral_share_url: str = "https://guroute.app/invite"

    # Rate limiting
    rate_limit_enabled: bool | None = None  # None = production only
    rate_limit_default: str = "200/minute"
    rate_limit_storage_uri: str = "memory://"
    referral_validate_rate_limit: str = "30/minute"  # Public endpoint, guards code guessing


# Global settings instance
settings = Settings()

# ── Security validation ──────────────────────────────────────────────
if settings.env == "production":
    if settings.jwt_secret_key in _INSECURE_JWT_DEFAULTS or len(settings.jwt_secret_key) < 32:
        print(
            "\n❌  FATAL: JWT_SECRET_KEY is insecure or too short (min 32 chars).\n"
            "   Set a strong random value:  openssl rand -hex 32\n",
            file=sys.stderr,
        )
        sys.exit(1)
