"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Supabase credentials are optional: without them the catalog runs
from local memory (degraded mode) and nothing persists past the process.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


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
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )

    # ===================
    # ADMIN GATE
    # ===================
    admin_password: str = Field(
        default="TINCTester",
        min_length=1,
        description="Shared secret for catalog-editing routes (soft UI gate only)"
    )

    # ===================
    # MATCHING
    # ===================
    default_system_id: str = Field(
        default="umdns",
        description="Nomenclature system used for Device Type when a session names none"
    )
    max_suggestions: int = Field(
        default=8,
        ge=1,
        le=50,
        description="Maximum candidate terms returned per value"
    )
    low_confidence_threshold: float = Field(
        default=0.4,
        ge=0,
        le=1,
        description="Suggestions scoring at or below this need explicit confirmation"
    )

    # ===================
    # REVIEW SESSIONS
    # ===================
    review_session_ttl_minutes: int = Field(
        default=120,
        ge=1,
        le=1440,
        description="Minutes an idle review session is kept in memory"
    )
    seed_on_startup: bool = Field(
        default=True,
        description="Seed the starter catalog on startup when the store is empty"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def missing_store_settings(self) -> list[str]:
        """Names of the Supabase env vars that are not set."""
        missing = []
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_key:
            missing.append("SUPABASE_KEY")
        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are present but invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
