"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def normalize_shop_domain(value: str) -> str:
    """Strip protocol, slashes and whitespace from a shop domain."""
    shop = (value or "").strip().lower()
    for prefix in ("https://", "http://"):
        if shop.startswith(prefix):
            shop = shop[len(prefix):]
    return shop.strip("/ ")


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
    app_name: str = "upsell-recommender"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # -------------------------------------------------------------------------
    # Shopify Admin API
    # -------------------------------------------------------------------------
    shopify_access_token: str = ""
    shopify_api_version: str = "2025-07"
    shopify_api_secret: str = ""
    shopify_api_timeout: float = 30.0
    order_page_size: int = 250
    order_batch_delay_seconds: float = 0.1
    scheduled_shops: str = ""

    @field_validator("scheduled_shops", mode="before")
    @classmethod
    def parse_scheduled_shops(cls, v: str | list[str]) -> str:
        if isinstance(v, (list, tuple)):
            return ",".join(v)
        return v

    @property
    def scheduled_shop_list(self) -> list[str]:
        """Shop domains the worker runs due checks for."""
        return [
            normalize_shop_domain(shop)
            for shop in self.scheduled_shops.split(",")
            if shop.strip()
        ]

    # -------------------------------------------------------------------------
    # Text Generation (OpenAI-compatible chat completions)
    # -------------------------------------------------------------------------
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4"
    openai_max_tokens: int = 2000
    openai_temperature: float = 0.3
    openai_timeout: float = 60.0

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "upsell"
    postgres_password: str = ""
    postgres_db: str = "upsell_recommender"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Construct PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct synchronous PostgreSQL connection URL (for Alembic)."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis (Celery broker)
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
    # Period Scheduling
    # -------------------------------------------------------------------------
    processing_window_days: int = 3
    claim_lease_seconds: int = 3600
    default_schedule_frequency: Literal[
        "monthly", "quarterly", "semiannual", "annual", "manual"
    ] = "quarterly"
    default_data_period_months: int = 3

    # -------------------------------------------------------------------------
    # Recommendation Settings
    # -------------------------------------------------------------------------
    co_purchase_threshold: int = 2
    prompt_top_n: int = 10

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------
    webhook_secret: str = ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
