"""Validation package."""

from home_tracker.validation.validator import (
    EntityValidator,
    InvalidTransitionError,
    InvalidUpdateError,
    ValidationIssue,
    apply_updates,
    validate_entity,
)

__all__ = [
    "EntityValidator",
    "InvalidTransitionError",
    "InvalidUpdateError",
    "ValidationIssue",
    "apply_updates",
    "validate_entity",
]
