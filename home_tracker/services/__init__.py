"""Services package."""

from home_tracker.services.auth import (
    AuthError,
    Session,
    SessionProvider,
    SupabaseAuth,
)
from home_tracker.services.storage import (
    ConnectionError,
    InMemoryStorage,
    LoadTimeoutError,
    LocalJsonStorage,
    NotFoundError,
    StateStorageInterface,
    StorageError,
    SupabaseStorage,
)

__all__ = [
    # Auth
    "AuthError",
    "Session",
    "SessionProvider",
    "SupabaseAuth",
    # Storage
    "ConnectionError",
    "InMemoryStorage",
    "LoadTimeoutError",
    "LocalJsonStorage",
    "NotFoundError",
    "StateStorageInterface",
    "StorageError",
    "SupabaseStorage",
]
