from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    PUBLIC_SITE_URL: str = "http://localhost:8080"
    CORS_ORIGINS: list[str] = [
        "http://localhost:8080",
        "https://vitalityx.health",
        "https://www.vitalityx.health",
    ]

    # Supabase
    # Default placeholder values keep local/test runs from failing when Supabase
    # credentials are not required. Real deployments should override via env.
    SUPABASE_URL: str = "http://localhost"
    SUPABASE_ANON_KEY: str = "test-anon-key"
    SUPABASE_SERVICE_ROLE_KEY: str = "test-service-role-key"
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"
    DOCUMENTS_BUCKET: str = "crm-documents"

    # Payments (held by the payments service only)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    ORDER_CURRENCY: str = "USD"
    PENDING_ORDER_TTL_HOURS: int = 24
    PAYMENTS_SERVICE_URL: str = "http://localhost:8003"

    # Lead capture webhook; empty disables the shared-secret check
    WEBHOOK_SECRET: str = ""

    # Portal data loading
    PROFILE_FETCH_TIMEOUT_SECONDS: float = 15.0
    ROLE_FETCH_TIMEOUT_SECONDS: float = 10.0

    # Cart persistence
    CART_STORAGE_DIR: Path = Path(".cart")
    CART_STORAGE_KEY: str = "vitalityx-cart"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("PUBLIC_SITE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
