"""State store package."""

from home_tracker.store.store import EntityNotFoundError, MutationResult, TrackerStore

__all__ = [
    "EntityNotFoundError",
    "MutationResult",
    "TrackerStore",
]
