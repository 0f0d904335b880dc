"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
"""
from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # --- Core ---
    APP_NAME: str = "Venue Payments API"
    APP_VERSION: str = "1.4.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"   # local | staging | production

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'venue_payments.db'}"

    # --- HTTP ---
    API_PREFIX: str = "/api/v1"
    API_BASE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: list[str] = ["*"]

    # --- Frontend ---
    FRONTEND_URL: str = "http://localhost:5173"
    FRONTEND_LOCAL_URL: str = "https://localhost:5173"

    # --- Stripe ---
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_API_VERSION: str = "2025-04-30.basil"

    # --- Email (Brevo) ---
    BREVO_API_KEY: str = ""
    BREVO_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    BREVO_SENDER_EMAIL: str = "bookings@example.com"
    BREVO_SENDER_NAME: str = "La Torre sulla via Francigena"
    EMAIL_TIMEOUT_SECONDS: int = 30

    # --- Payment workflow ---
    DEFAULT_CURRENCY: str = "eur"
    SECOND_PAYMENT_DEFAULT_EXPIRY_HOURS: int = 48
    STAGE_CHECKOUT_EXPIRY_MINUTES: int = 30
    REMINDER_UPCOMING_DAYS: int = 7
    REMINDER_COOLDOWN_HOURS: int = 24
    SERVICE_CHARGE_STAGE_DUE_DAYS: int = 7

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = str(BASE_DIR / "logs")

    @property
    def frontend_base_url(self) -> str:
        """Checkout redirects go to the local dev server when ENVIRONMENT=local."""
        if self.ENVIRONMENT == "local":
            return self.FRONTEND_LOCAL_URL
        return self.FRONTEND_URL.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached settings and read the environment again."""
    get_settings.cache_clear()
    return get_settings()
