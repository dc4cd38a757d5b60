"""Mode visibility and timeline rules."""

from home_tracker.policy.rules import (
    TimelinePolicy,
    filter_for_mode,
    is_visible_in_mode,
)

__all__ = [
    "TimelinePolicy",
    "filter_for_mode",
    "is_visible_in_mode",
]
