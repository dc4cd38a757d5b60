"""
Abstract Storage Interface

DESIGN DECISION: The store talks to persistence through one abstract
interface with two real implementations (local JSON file, Supabase) and
an in-memory one for tests. This allows us to:
1. Pick the backend once, at construction, from configuration
2. Keep the store and derivations unaware of which backend is active
3. Run the whole store in tests without touching disk or network

The interface is snapshot-oriented: persist() receives both the list of
entity-level changes a mutation produced and the resulting full state.
Backends use whichever fits (the local file rewrites the whole document,
the remote backend replays the row changes).

Adapters never mutate entities; they only serialize snapshots.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from home_tracker.models.budget import DomainModel
from home_tracker.models.state import AppState, Collection


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UPSERT = "upsert"   # Insert or overwrite; used when replaying failed writes


class StateChange(BaseModel):
    """
    One entity-level change produced by a store mutation.

    entity is the new version for INSERT/UPDATE/UPSERT and None for DELETE.
    Singletons (settings) use entity_id=None.
    """
    model_config = ConfigDict(frozen=True)

    collection: Collection
    kind: ChangeKind
    entity_id: Optional[str] = None
    entity: Optional[DomainModel] = None

    @classmethod
    def insert(cls, collection: Collection, entity: DomainModel) -> 'StateChange':
        return cls(
            collection=collection,
            kind=ChangeKind.INSERT,
            entity_id=getattr(entity, "id", None),
            entity=entity,
        )

    @classmethod
    def update(cls, collection: Collection, entity: DomainModel) -> 'StateChange':
        return cls(
            collection=collection,
            kind=ChangeKind.UPDATE,
            entity_id=getattr(entity, "id", None),
            entity=entity,
        )

    @classmethod
    def delete(cls, collection: Collection, entity_id: str) -> 'StateChange':
        return cls(collection=collection, kind=ChangeKind.DELETE, entity_id=entity_id)

    def as_upsert(self) -> 'StateChange':
        """The same change, safe to send again whether or not it landed."""
        if self.kind in (ChangeKind.DELETE, ChangeKind.UPSERT):
            return self
        return self.model_copy(update={"kind": ChangeKind.UPSERT})


class LoadSource(str, Enum):
    """Where the loaded state came from."""
    SEED = "seed"            # Nothing stored (or unreadable): fresh seed
    STORED = "stored"        # Stored document, current schema version
    MIGRATED = "migrated"    # Stored document upgraded through the migration chain
    RESEEDED = "reseeded"    # Stored document discarded on version mismatch
    REMOTE = "remote"        # Loaded from the remote backend


class LoadResult(BaseModel):
    state: AppState
    source: LoadSource
    stored_version: Optional[int] = None


# Receives a collection and its full, freshly fetched contents
ChangeListener = Callable[[Collection, Sequence[DomainModel]], None]


class StateStorageInterface(ABC):
    """
    Abstract interface for state persistence.

    Any backend (local file, Supabase, ...) must implement these methods.
    """

    # True when persist writes the full state, so one success repairs any
    # earlier failure. Row-level backends leave it False and get failed
    # changes replayed instead.
    persists_whole_state: bool = False

    @abstractmethod
    async def load(self) -> LoadResult:
        """
        Load the initial state.

        Returns:
            The state plus where it came from

        Raises:
            StorageError: If the backend cannot produce a state at all
            LoadTimeoutError: If the load exceeds its time budget
        """
        pass

    @abstractmethod
    async def persist(self, changes: Sequence[StateChange], state: AppState) -> None:
        """
        Durably record a mutation.

        Args:
            changes: Entity-level changes the mutation produced
            state: The full state after the mutation

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def reset(self, state: AppState) -> None:
        """
        Discard everything stored and make state the new baseline.

        Raises:
            StorageError: If the reset fails
        """
        pass

    @abstractmethod
    def subscribe(self, listener: ChangeListener) -> None:
        """
        Register for live change notifications.

        Backends without a live feed accept the listener and never call it.
        """
        pass

    async def close(self) -> None:
        """Release connections and background tasks."""
        return None


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class LoadTimeoutError(StorageError):
    """The initial load did not finish within its time budget."""
    pass


class MigrationError(StorageError):
    """A stored document could not be upgraded to the current schema."""
    pass
