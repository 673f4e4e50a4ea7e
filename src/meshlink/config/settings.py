"""
Application settings with environment variable support.

Uses Pydantic Settings for type-safe configuration with automatic
environment variable loading and validation.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from meshlink.config.constants import (
    DEFAULT_DEVELOPMENT_ENDPOINT_ID,
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_INITIAL_SWEEP_DELAY,
    DEFAULT_LOCAL_SWEEP_INTERVAL,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_PRODUCTION_ENDPOINT_ID,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SWEEP_INTERVAL,
    ENDPOINT_CACHE_TTL_MS,
    LOCAL_ENDPOINT,
    OFFLINE_THRESHOLD_MS,
    PREFERENCE_DEBOUNCE,
    PRODUCTION_FALLBACK_ENDPOINTS,
    REAUTH_SETTLE_DELAY,
)


class Environment(str, Enum):
    """Deployment environment."""

    PRODUCTION = "production"
    DEVELOPMENT = "development"


class FallbackEndpoint(BaseModel):
    """Static endpoint used when discovery is unavailable."""

    id: str
    display_name: str
    region: str
    base_url: str
    stream_url: str
    is_local_dev: bool = False


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via MESHLINK_-prefixed environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="MESHLINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Deployment
    # =========================================================================

    environment: Environment = Field(
        default=Environment.PRODUCTION,
        description="Production uses HTTPS endpoints; development adds the loopback endpoint",
    )

    entry_point_url: str = Field(
        default="",
        description="Base URL of the mesh member queried first for discovery",
    )

    fallback_endpoints: list[FallbackEndpoint] | None = Field(
        default=None,
        description="Override for the built-in fallback endpoint list (JSON)",
    )

    # =========================================================================
    # Scheduling
    # =========================================================================

    sweep_interval: float = Field(
        default=DEFAULT_SWEEP_INTERVAL,
        gt=0.0,
        description="Seconds between full health sweeps",
    )

    local_sweep_interval: float = Field(
        default=DEFAULT_LOCAL_SWEEP_INTERVAL,
        gt=0.0,
        description="Seconds between local-dev probes (development only)",
    )

    discovery_interval: float = Field(
        default=DEFAULT_DISCOVERY_INTERVAL,
        gt=0.0,
        description="Seconds between re-discoveries",
    )

    initial_sweep_delay: float = Field(
        default=DEFAULT_INITIAL_SWEEP_DELAY,
        ge=0.0,
        description="Delay before the first sweep so discovery can land first",
    )

    probe_timeout: float = Field(
        default=DEFAULT_PROBE_TIMEOUT,
        gt=0.0,
        le=60.0,
        description="Per-endpoint health probe timeout in seconds",
    )

    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0.0,
        le=120.0,
        description="Timeout for discovery, peer and preference requests",
    )

    # =========================================================================
    # Persistence
    # =========================================================================

    cache_path: Path | None = Field(
        default=None,
        description="JSON file for persisted state (in-memory when unset)",
    )

    cache_ttl_ms: int = Field(
        default=ENDPOINT_CACHE_TTL_MS,
        ge=0,
        description="Maximum age of the endpoint cache used at startup",
    )

    offline_threshold_ms: int = Field(
        default=OFFLINE_THRESHOLD_MS,
        ge=0,
        description="Offline endpoints checked longer ago than this are hidden",
    )

    # =========================================================================
    # Preference Sync & Re-auth
    # =========================================================================

    session_token: SecretStr | None = Field(
        default=None,
        description="Bearer token for profile preference sync (sync disabled when unset)",
    )

    preference_debounce: float = Field(
        default=PREFERENCE_DEBOUNCE,
        ge=0.0,
        description="Seconds to coalesce preference writes before pushing",
    )

    reauth_settle_delay: float = Field(
        default=REAUTH_SETTLE_DELAY,
        ge=0.0,
        description="Delay between dropping the old session and logging in again",
    )

    # =========================================================================
    # Peer Mesh
    # =========================================================================

    peer_feed_enabled: bool = Field(
        default=False,
        description="Subscribe to pushed peer-mesh updates over WebSocket",
    )

    # =========================================================================
    # Operation
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )

    log_file: Path | None = Field(
        default=None,
        description="Optional log file",
    )

    use_uvloop: bool = Field(
        default=True,
        description="Use uvloop for improved async performance",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("entry_point_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the entry point so routes can be appended."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_intervals(self) -> "Settings":
        """Ensure the local sweep is actually faster than the full sweep."""
        if self.local_sweep_interval >= self.sweep_interval:
            raise ValueError("local_sweep_interval must be shorter than sweep_interval")
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in a development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def default_endpoint_id(self) -> str:
        """Endpoint selected when nothing else applies."""
        if self.is_development:
            return DEFAULT_DEVELOPMENT_ENDPOINT_ID
        return DEFAULT_PRODUCTION_ENDPOINT_ID

    @property
    def local_endpoint(self) -> FallbackEndpoint | None:
        """Loopback endpoint, present only in development."""
        if not self.is_development:
            return None
        endpoint_id, name, region, base_url, stream_url = LOCAL_ENDPOINT
        return FallbackEndpoint(
            id=endpoint_id,
            display_name=name,
            region=region,
            base_url=base_url,
            stream_url=stream_url,
            is_local_dev=True,
        )

    @property
    def resolved_fallback_endpoints(self) -> list[FallbackEndpoint]:
        """Fallback list for the current environment."""
        if self.fallback_endpoints is not None:
            return list(self.fallback_endpoints)

        endpoints = [
            FallbackEndpoint(
                id=endpoint_id,
                display_name=name,
                region=region,
                base_url=base_url,
                stream_url=stream_url,
            )
            for endpoint_id, name, region, base_url, stream_url in PRODUCTION_FALLBACK_ENDPOINTS
        ]

        local = self.local_endpoint
        if local is not None:
            endpoints.insert(0, local)

        return endpoints


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are loaded only once.
    Clear cache with `get_settings.cache_clear()` if needed.
    """
    return Settings()
