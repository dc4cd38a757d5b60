"""
Main Orchestrator for Home Alone Tracker

Wires the components together:
1. Configuration → pick the storage backend ONCE
2. Backend → storage adapter (local JSON or Supabase + live changes)
3. Settings → timeline policy → recorder
4. Storage + recorder → TrackerStore, loaded and ready

DESIGN DECISION: Backend selection happens here and nowhere else.
The store, derivations and policy never inspect the environment; they
receive an already-built StateStorageInterface.
"""

from typing import Optional

import httpx
import structlog

from home_tracker.config import (
    Settings,
    StorageBackend,
    get_settings,
)
from home_tracker.policy.rules import TimelinePolicy
from home_tracker.services.auth import Session, SupabaseAuth
from home_tracker.services.storage import (
    LocalJsonStorage,
    LocalSidecar,
    RealtimeChangeFeed,
    StateStorageInterface,
    SupabaseRestClient,
    SupabaseStorage,
)
from home_tracker.store import TrackerStore
from home_tracker.timeline import TimelineRecorder, configure_log_level

logger = structlog.get_logger()


def resolve_backend(settings: Optional[Settings] = None) -> StorageBackend:
    """Supabase when both connection parameters are present, local otherwise."""
    settings = settings or get_settings()
    if settings.supabase.is_configured:
        return StorageBackend.SUPABASE
    return StorageBackend.LOCAL


def create_storage(
    backend: StorageBackend,
    settings: Optional[Settings] = None,
    session: Optional[Session] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StateStorageInterface:
    """
    Build the storage adapter for a backend.

    Args:
        backend: Which adapter to build
        settings: Defaults to get_settings()
        session: Signed-in session; its token authorizes remote writes
        transport: httpx transport override (tests)

    Raises:
        ValueError: Supabase requested without connection parameters
    """
    settings = settings or get_settings()
    local = settings.local_storage

    if backend == StorageBackend.LOCAL:
        return LocalJsonStorage(
            local.data_file,
            migration_strategy=local.migration_strategy,
        )

    supabase = settings.supabase
    if not supabase.is_configured:
        raise ValueError("Supabase backend requested but SUPABASE_URL / SUPABASE_ANON_KEY are not set")

    client = SupabaseRestClient(
        supabase.url,
        supabase.anon_key,
        access_token=session.access_token if session else None,
        timeout=supabase.load_timeout_seconds,
        retry_attempts=supabase.write_retry_attempts,
        retry_max_wait=supabase.write_retry_max_wait,
        transport=transport,
    )
    feed = RealtimeChangeFeed(supabase.realtime_url) if supabase.realtime_enabled else None
    return SupabaseStorage(
        client,
        LocalSidecar(local.sidecar_file),
        load_timeout=supabase.load_timeout_seconds,
        change_feed=feed,
    )


def create_auth(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[SupabaseAuth]:
    """Session provider for the remote backend (None when it is not configured)."""
    supabase = (settings or get_settings()).supabase
    if not supabase.is_configured:
        return None
    return SupabaseAuth(supabase.url, supabase.anon_key, transport=transport)


async def create_tracker(
    backend: Optional[StorageBackend] = None,
    settings: Optional[Settings] = None,
    storage: Optional[StateStorageInterface] = None,
    session: Optional[Session] = None,
) -> TrackerStore:
    """
    Factory function to create a loaded TrackerStore.

    Args:
        backend: Storage backend; resolved from settings when omitted
        settings: Defaults to get_settings()
        storage: Pre-built adapter (skips backend selection entirely)
        session: Signed-in session for the remote backend

    Returns:
        The store, already loaded. Check store.load_error for a failed load.
    """
    settings = settings or get_settings()
    app = settings.app
    configure_log_level(app.log_level)

    if storage is None:
        backend = backend or resolve_backend(settings)
        storage = create_storage(backend, settings, session=session)
    logger.info(
        "tracker_starting",
        backend=backend.value if backend else type(storage).__name__,
        environment=app.app_environment,
    )

    store = TrackerStore(
        storage,
        recorder=TimelineRecorder(policy=TimelinePolicy.from_settings(app)),
        history_limit=app.snapshot_history_limit,
    )
    await store.load()
    return store
