"""
Application configuration using environment variables.
"""
import os
import secrets
from functools import lru_cache
from pydantic_settings import BaseSettings
from typing import List, Optional


_GENERATED_SECRET = secrets.token_urlsafe(32)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Storefront Mail API"
    debug: bool = False
    environment: str = "development"

    # Identity (JWTs are issued by the storefront auth service)
    secret_key: str = os.getenv("SECRET_KEY", _GENERATED_SECRET)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./storefront_mail.db")

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Public base URL, used for unsubscribe links
    app_url: str = "http://localhost:3000"

    # Shared secrets
    email_queue_api_key: Optional[str] = None
    resend_webhook_secret: Optional[str] = None

    # Transport
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com/emails"
    email_from_address: str = "Storefront <orders@example.com>"
    transport_timeout_seconds: int = 10

    # Unsubscribe tokens
    unsubscribe_token_ttl_days: int = 7

    # Webhooks
    webhook_tolerance_seconds: int = 15 * 60

    # Queue
    default_batch_size: int = 50
    max_batch_size: int = 500

    # Rate limiting
    rate_limit_max_attempts: int = 5
    rate_limit_window_ms: int = 15 * 60 * 1000
    rate_limit_storage_uri: str = "memory://"

    # Order confirmation
    order_confirmation_max_retries: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Validate secret key on startup
settings = get_settings()
if settings.environment == "production" and settings.secret_key == _GENERATED_SECRET:
    raise ValueError(
        "SECRET_KEY must be set in production! "
        "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )
