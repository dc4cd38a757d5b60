"""
Storage Services Package

Provides the abstract state storage interface and its implementations:
a local JSON file, Supabase (remote, with live changes) and in-memory.
"""

from home_tracker.services.storage.interface import (
    ChangeKind,
    ChangeListener,
    ConnectionError,
    LoadResult,
    LoadSource,
    LoadTimeoutError,
    MigrationError,
    NotFoundError,
    StateChange,
    StateStorageInterface,
    StorageError,
)
from home_tracker.services.storage.local_json import LocalJsonStorage, atomic_write_json
from home_tracker.services.storage.memory import InMemoryStorage
from home_tracker.services.storage.migrations import MIGRATIONS, migrate
from home_tracker.services.storage.realtime import ChangeFeed, RealtimeChangeFeed
from home_tracker.services.storage.supabase import (
    LocalSidecar,
    SupabaseRestClient,
    SupabaseStorage,
)

__all__ = [
    # Interface
    "ChangeKind",
    "ChangeListener",
    "LoadResult",
    "LoadSource",
    "StateChange",
    "StateStorageInterface",
    # Exceptions
    "ConnectionError",
    "LoadTimeoutError",
    "MigrationError",
    "NotFoundError",
    "StorageError",
    # Local file
    "LocalJsonStorage",
    "MIGRATIONS",
    "atomic_write_json",
    "migrate",
    # In-memory
    "InMemoryStorage",
    # Supabase
    "ChangeFeed",
    "LocalSidecar",
    "RealtimeChangeFeed",
    "SupabaseRestClient",
    "SupabaseStorage",
]
