"""
Configuration Management for Home Alone Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The presence of the two Supabase connection parameters is the only
switch between the local and remote storage backends, and that switch
is resolved once (see orchestrator.resolve_backend) rather than by
inspecting the environment wherever storage is touched.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageBackend(str, Enum):
    """Which persistence adapter backs the store."""
    LOCAL = "local"
    SUPABASE = "supabase"


class MigrationStrategy(str, Enum):
    """How the local adapter handles a stored blob with another schema version."""
    RESEED = "reseed"      # Discard and start from the seed dataset
    UPGRADE = "upgrade"    # Walk the per-version transform chain


class SupabaseSettings(BaseSettings):
    """Supabase (remote backend) configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    url: Optional[str] = Field(
        default=None,
        description="Supabase project URL, e.g. https://xyz.supabase.co"
    )
    anon_key: Optional[str] = Field(
        default=None,
        description="Supabase public (anon) API key"
    )
    load_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Budget for the initial six-table load"
    )
    realtime_enabled: bool = Field(
        default=True,
        description="Subscribe to row-level change notifications"
    )
    write_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per remote write before giving up"
    )
    write_retry_max_wait: float = Field(
        default=10.0,
        ge=0,
        description="Upper bound (seconds) of the exponential backoff between write attempts"
    )
    
    @field_validator('url', 'anon_key')
    @classmethod
    def blank_is_missing(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty strings from .env files as not configured."""
        if v is not None and not v.strip():
            return None
        return v.strip().rstrip("/") if v else v
    
    @property
    def is_configured(self) -> bool:
        """Both connection parameters are present."""
        return bool(self.url and self.anon_key)
    
    @property
    def realtime_url(self) -> str:
        base = (self.url or "").replace("https://", "wss://").replace("http://", "ws://")
        return f"{base}/realtime/v1/websocket?apikey={self.anon_key}&vsn=1.0.0"


class LocalStorageSettings(BaseSettings):
    """Local JSON file storage configuration."""
    
    model_config = SettingsConfigDict(
        env_prefix="HOME_TRACKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    data_path: str = Field(
        default="~/.home-tracker/state.json",
        description="Path of the JSON document holding the whole state"
    )
    sidecar_path: str = Field(
        default="~/.home-tracker/remote-sidecar.json",
        description="Where settings and timeline live when the remote backend is active"
    )
    migration_strategy: MigrationStrategy = Field(
        default=MigrationStrategy.RESEED,
        description="What to do with a blob written under another schema version"
    )
    
    @property
    def data_file(self) -> Path:
        return Path(self.data_path).expanduser()
    
    @property
    def sidecar_file(self) -> Path:
        return Path(self.sidecar_path).expanduser()


class AppSettings(BaseSettings):
    """
    Main application settings.
    
    Loads configuration from environment variables and .env file.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structlog output"
    )
    
    # Timeline policy
    budget_change_threshold_pct: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Relative change in an expense value that earns a timeline entry"
    )
    log_mode_switch: bool = Field(
        default=False,
        description="Append a timeline note when the lifecycle mode is switched"
    )
    
    # Store
    snapshot_history_limit: int = Field(
        default=50,
        ge=0,
        le=1000,
        description="How many previous state snapshots the store keeps"
    )
    
    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.
    
    Aggregates all sub-settings for easy access.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    
    # Sub-settings are loaded lazily to allow partial configuration
    
    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()
    
    @property
    def local_storage(self) -> LocalStorageSettings:
        return LocalStorageSettings()
    
    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).
    
    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.
    
    Returns a dict of {setting_name: is_valid} plus an error message
    per failing group, and whether the remote backend is configured.
    Useful for startup checks.
    """
    results: dict[str, object] = {}
    
    settings = get_settings()
    
    for name in ("supabase", "local_storage", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
    
    if results["supabase"]:
        results["supabase_configured"] = settings.supabase.is_configured
    else:
        results["supabase_configured"] = False
    
    return results
