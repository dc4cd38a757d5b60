"""Configuration package."""

from home_tracker.config.settings import (
    AppSettings,
    LocalStorageSettings,
    MigrationStrategy,
    Settings,
    StorageBackend,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "LocalStorageSettings",
    "MigrationStrategy",
    "Settings",
    "StorageBackend",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
