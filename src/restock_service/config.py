"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import (
    FREE_MONTHLY_NOTIFY_LIMIT,
    NOTIFY_CLAIM_TTL_SECONDS,
    PRO_MONTHLY_NOTIFY_LIMIT,
    RECOVERY_LINK_TTL_DAYS,
    RESTOCK_BATCH_DELAY_MS,
    RESTOCK_BATCH_SIZE,
    WIDGET_CACHE_TTL_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "restock-service"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "restock"
    postgres_password: str = ""
    postgres_db: str = "restock"
    # Full async URL, e.g. sqlite+aiosqlite:///./restock.db; wins over postgres_*
    database_url_override: str = ""

    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Construct async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct synchronous database connection URL (for Alembic)."""
        if self.database_url_override:
            return self.database_url_override.replace("+aiosqlite", "").replace(
                "+asyncpg", ""
            )
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    # When disabled, webhook work runs in-process after the response is sent
    jobs_enabled: bool = False
    celery_broker_url: str = ""
    celery_result_backend: str = ""

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url

    # -------------------------------------------------------------------------
    # Notification Delivery
    # -------------------------------------------------------------------------
    notifications_enabled: bool = False
    email_provider: Literal["mock", "postmark"] = "mock"
    sms_provider: Literal["mock", "twilio"] = "mock"
    mock_delivery_path: str = ""
    delivery_timeout_seconds: float = 10.0

    postmark_server_token: str = ""
    postmark_from_address: str = "noreply@example.com"

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""

    # -------------------------------------------------------------------------
    # Shopify / Storefront
    # -------------------------------------------------------------------------
    frontend_url: str = "http://localhost:3000"
    shopify_api_secret: str = ""

    @field_validator("frontend_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # -------------------------------------------------------------------------
    # Restock Settings
    # -------------------------------------------------------------------------
    restock_batch_size: int = RESTOCK_BATCH_SIZE
    restock_batch_delay_ms: int = RESTOCK_BATCH_DELAY_MS
    recovery_link_ttl_days: int = RECOVERY_LINK_TTL_DAYS
    notify_claim_ttl_seconds: int = NOTIFY_CLAIM_TTL_SECONDS
    free_monthly_notify_limit: int = FREE_MONTHLY_NOTIFY_LIMIT
    pro_monthly_notify_limit: int = PRO_MONTHLY_NOTIFY_LIMIT
    widget_cache_ttl_seconds: int = WIDGET_CACHE_TTL_SECONDS


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
