"""
In-Memory Storage

Keeps the last persisted state in memory. Used in tests and when the
tracker runs without durable storage.
"""

from collections.abc import Callable, Sequence
from typing import Optional

from home_tracker.data.seed import seed_state
from home_tracker.models.state import AppState
from home_tracker.services.storage.interface import (
    ChangeListener,
    LoadResult,
    LoadSource,
    StateChange,
    StateStorageInterface,
    StorageError,
)


class InMemoryStorage(StateStorageInterface):
    """
    Non-durable backend.

    fail_writes / fail_load make it raise StorageError, to exercise the
    store's error paths.
    """

    persists_whole_state = True

    def __init__(
        self,
        initial: Optional[AppState] = None,
        seed_factory: Callable[[], AppState] = seed_state,
    ):
        self._seed_factory = seed_factory
        self.state: Optional[AppState] = initial
        self.writes: list[list[StateChange]] = []
        self.listeners: list[ChangeListener] = []
        self.fail_writes = False
        self.fail_load = False
        self.reset_count = 0

    async def load(self) -> LoadResult:
        if self.fail_load:
            raise StorageError("In-memory load failure")
        if self.state is None:
            return LoadResult(state=self._seed_factory(), source=LoadSource.SEED)
        return LoadResult(state=self.state, source=LoadSource.STORED)

    async def persist(self, changes: Sequence[StateChange], state: AppState) -> None:
        if self.fail_writes:
            raise StorageError("In-memory write failure")
        self.writes.append(list(changes))
        self.state = state

    async def reset(self, state: AppState) -> None:
        if self.fail_writes:
            raise StorageError("In-memory reset failure")
        self.reset_count += 1
        self.writes.clear()
        self.state = state

    def subscribe(self, listener: ChangeListener) -> None:
        self.listeners.append(listener)
