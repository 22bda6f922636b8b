# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides:
# - Settings: static configuration validated once at startup
# - RuntimeConfig: the mutable remote-backend configuration (URL + anon key)
#   that components receive at construction and resolve on every call
#
# Usage:
#   from app.config import settings
#   print(settings.LOCAL_STORE_DIR)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# Unlike most settings, the Supabase values are optional. An empty URL or key
# means "remote not configured" and every service serves LocalStore only.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------
    # Optional - leaving either empty keeps the service in local-only mode

    SUPABASE_URL: str = Field(
        default="",
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_ANON_KEY: str = Field(
        default="",
        description="Supabase anon/public API key sent as apikey + bearer token"
    )

    INSPECTION_ASSET_BUCKET: str = Field(
        default="inspection-assets",
        min_length=1,
        description="Storage bucket receiving migrated inspection/job images"
    )

    REMOTE_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        gt=0,
        le=300,
        description="Transport timeout for every PostgREST/Storage request"
    )

    # -------------------------------------------------------------------------
    # Local Store
    # -------------------------------------------------------------------------

    LOCAL_STORE_DIR: str = Field(
        default=".sparkery_store",
        description="Directory holding one JSON document per local collection"
    )

    LOCAL_STORE_MAX_BYTES: int = Field(
        default=5 * 1024 * 1024,
        ge=1024,
        description="Per-document quota; saves above it report failure"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://myapp.com" -> ["http://localhost:3000", "https://myapp.com"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


# =============================================================================
# Runtime Remote Configuration
# =============================================================================

@dataclass(frozen=True)
class RemoteConfig:
    """A resolved, usable remote endpoint. Only exists when both fields are set."""

    url: str
    anon_key: str

    @property
    def rest_url(self) -> str:
        return f"{self.url}/rest/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.url}/storage/v1"


class RuntimeConfig(BaseModel):
    """
    Process-wide, mutable remote configuration.

    Passed explicitly to every component that talks to the backend. Components
    call resolve() once per operation, so an update made through the config
    endpoint takes effect on the next call without rebuilding services.

    Example:
        runtime = RuntimeConfig(url="https://x.supabase.co", anon_key="...")
        runtime.resolve()   # RemoteConfig(...)
        runtime.clear()
        runtime.resolve()   # None -> local-only
    """

    url: str = ""
    anon_key: str = ""

    model_config = {"validate_assignment": True}

    def resolve(self) -> RemoteConfig | None:
        """Return a RemoteConfig when both fields are non-blank, else None."""
        url = (self.url or "").strip().rstrip("/")
        anon_key = (self.anon_key or "").strip()
        if url and anon_key:
            return RemoteConfig(url=url, anon_key=anon_key)
        return None

    @property
    def is_configured(self) -> bool:
        return self.resolve() is not None

    def update(self, url: str, anon_key: str) -> None:
        self.url = url
        self.anon_key = anon_key

    def clear(self) -> None:
        self.url = ""
        self.anon_key = ""

    @classmethod
    def from_settings(cls, source: Settings) -> "RuntimeConfig":
        return cls(url=source.SUPABASE_URL, anon_key=source.SUPABASE_ANON_KEY)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access. This is the recommended pattern for
    pydantic-settings.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
