"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - inventory_encryption_key is validated by PayloadCodec at startup, not here,
      so a missing key surfaces as ConfigurationError from the lifespan

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from stockroom.core.domain_types import (
    BULK_IMPORT_MAX_ITEMS, DEFAULT_RESERVATION_TIMEOUT_MINUTES,
)


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://stockroom:stockroom@db:5432/stockroom"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting platforms provide postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Encryption: 64 hex chars (256-bit AES key)
    inventory_encryption_key: str | None = None

    # Reservations
    reservation_timeout_minutes: int = Field(
        DEFAULT_RESERVATION_TIMEOUT_MINUTES, ge=1,
    )
    reservation_lock_timeout_ms: int = Field(3000, ge=1)

    # Intake
    bulk_import_max_items: int = Field(BULK_IMPORT_MAX_ITEMS, ge=1)

    # Reconciliation scheduler
    scheduler_enabled: bool = True
    expire_interval_minutes: int = 60
    release_interval_minutes: int = 10
    low_stock_interval_minutes: int = 30
    stock_sync_interval_minutes: int = 30

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
