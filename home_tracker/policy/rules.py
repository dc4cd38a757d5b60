"""
Mode and Timeline Policy

Cross-cutting rules consulted by the store before it commits a mutation:

1. Visibility: which expenses count in the active mode.
2. Timeline-worthiness: which mutations append a timeline entry.

Only purchase completion, checklist completion (false -> true only),
significant expense value changes and move-date changes are logged.
Everything else is silent, including a mode switch unless
log_mode_switch is turned on.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Optional

from home_tracker.config.settings import AppSettings
from home_tracker.models.budget import Expense, ExpenseVisibility, Mode


# =============================================================================
# VISIBILITY
# =============================================================================

def is_visible_in_mode(expense: Expense, mode: Mode) -> bool:
    """An expense counts iff its visibility is the mode itself or BOTH."""
    return expense.visibility in (ExpenseVisibility.BOTH, ExpenseVisibility(mode.value))


def filter_for_mode(expenses: Iterable[Expense], mode: Mode) -> list[Expense]:
    return [e for e in expenses if is_visible_in_mode(e, mode)]


# =============================================================================
# TIMELINE
# =============================================================================

class TimelinePolicy:
    """
    Decides whether a mutation is notable enough for the timeline.

    The budget-change threshold is relative: 10% of a R$ 50 expense is
    R$ 5, of a R$ 2.000 one R$ 200.
    """

    def __init__(
        self,
        budget_change_threshold_pct: float = 10.0,
        log_mode_switch: bool = False,
    ):
        if budget_change_threshold_pct < 0:
            raise ValueError("Budget change threshold cannot be negative")
        self.budget_change_threshold_pct = Decimal(str(budget_change_threshold_pct))
        self.log_mode_switch = log_mode_switch

    @classmethod
    def from_settings(cls, settings: AppSettings) -> 'TimelinePolicy':
        return cls(
            budget_change_threshold_pct=settings.budget_change_threshold_pct,
            log_mode_switch=settings.log_mode_switch,
        )

    def is_significant_budget_change(self, baseline: Decimal, new_value: Decimal) -> bool:
        """
        Relative change of new_value against baseline reaches the threshold.

        From zero, any non-zero value is significant.
        """
        if new_value == baseline:
            return False
        if baseline == 0:
            return True
        change_pct = abs(new_value - baseline) / abs(baseline) * 100
        return change_pct >= self.budget_change_threshold_pct

    def should_log_checklist(self, was_completed: bool, is_completed: bool) -> bool:
        """Only completing a task is logged; reopening it is not."""
        return is_completed and not was_completed

    def should_log_date_change(self, old: Optional[date], new: Optional[date]) -> bool:
        return old != new

    def should_log_mode_switch(self, old: Mode, new: Mode) -> bool:
        return self.log_mode_switch and old != new
