"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )

    # ===================
    # BATCH PROCESSING
    # ===================
    process_chunk_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Records enriched and saved concurrently per chunk"
    )
    default_units_sold: int = Field(
        default=1,
        ge=0,
        description="Units sold assumed when a distributor row omits it"
    )

    # ===================
    # BACKFILL SYNC
    # ===================
    sync_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Distributor keys re-resolved per backfill chunk"
    )
    sync_batch_delay_ms: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Pause between backfill chunks in milliseconds"
    )
    propagate_batch_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Mappings propagated concurrently per chunk"
    )

    # ===================
    # MASTER IMPORT
    # ===================
    product_import_chunk_size: int = Field(
        default=2000,
        ge=1,
        le=10000,
        description="Product mappings upserted per import chunk"
    )
    store_import_chunk_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Store mappings upserted per import chunk"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def sync_batch_delay_seconds(self) -> float:
        """Backfill pause expressed in seconds for asyncio.sleep."""
        return self.sync_batch_delay_ms / 1000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()
