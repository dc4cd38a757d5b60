"""
Timeline Recorder

DESIGN DECISION: The store never builds timeline events itself.
It hands the before/after entities to the recorder, which:
- Consults the TimelinePolicy to decide if the change is notable
- Builds the event with TimelineEventBuilder (standard wording)
- Logs it locally through structlog

The recorder does not persist anything; the returned events are
appended to the state by the store and persisted with it.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import structlog

from home_tracker.models.budget import ChecklistItem, Expense, ShoppingItem, UserSettings
from home_tracker.models.timeline import TimelineEvent, TimelineEventBuilder
from home_tracker.policy.rules import TimelinePolicy


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_log_level(level: str = "INFO") -> None:
    """Route stdlib logging (which structlog renders through) at the given level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))
    logging.getLogger().setLevel(getattr(logging, level.upper()))


Clock = Callable[[], datetime]


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class TimelineRecorder:
    """
    Turns notable mutations into timeline events.

    Budget changes are measured against a per-expense baseline: the value
    at the last logged change, or the value before the first update seen
    in this session. A slow drift (100 -> 109 -> 111) is therefore logged
    once it reaches the threshold against 100, even though no single
    step does.
    """

    def __init__(
        self,
        policy: Optional[TimelinePolicy] = None,
        clock: Optional[Clock] = None,
    ):
        self.policy = policy or TimelinePolicy()
        self._clock = clock or _utc_clock
        self._budget_baselines: dict[str, Decimal] = {}
        self._logger = structlog.get_logger()

    def record(self, event: TimelineEvent) -> TimelineEvent:
        """Log an event locally and hand it back for appending."""
        self._logger.info("timeline_event", **event.to_log_dict())
        return event

    def item_purchased(self, item: ShoppingItem) -> TimelineEvent:
        """Purchases are always logged. item is the already-purchased entity."""
        return self.record(
            TimelineEventBuilder.purchase(item, item.actual_price, timestamp=self._clock())
        )

    def checklist_toggled(
        self,
        before: ChecklistItem,
        after: ChecklistItem,
    ) -> Optional[TimelineEvent]:
        if not self.policy.should_log_checklist(before.completed, after.completed):
            return None
        return self.record(
            TimelineEventBuilder.checklist_completed(after, timestamp=self._clock())
        )

    def expense_updated(
        self,
        before: Expense,
        after: Expense,
    ) -> Optional[TimelineEvent]:
        old_value, new_value = before.current_value, after.current_value
        if old_value == new_value:
            return None

        baseline = self._budget_baselines.setdefault(after.id, old_value)
        if not self.policy.is_significant_budget_change(baseline, new_value):
            self._logger.debug(
                "budget_change_below_threshold",
                expense_id=after.id,
                baseline=str(baseline),
                new_value=str(new_value),
            )
            return None

        self._budget_baselines[after.id] = new_value
        self._logger.info(
            "budget_change_logged",
            expense_id=after.id,
            baseline=str(baseline),
            new_value=str(new_value),
        )
        return self.record(
            TimelineEventBuilder.budget_change(
                after, old_value, new_value, baseline=baseline, timestamp=self._clock()
            )
        )

    def settings_updated(
        self,
        before: UserSettings,
        after: UserSettings,
    ) -> list[TimelineEvent]:
        events = []
        if self.policy.should_log_date_change(before.target_move_date, after.target_move_date):
            events.append(self.record(
                TimelineEventBuilder.date_change(
                    before.target_move_date,
                    after.target_move_date,
                    timestamp=self._clock(),
                )
            ))
        if before.current_mode != after.current_mode:
            self._logger.info(
                "mode_switched",
                old_mode=before.current_mode.value,
                new_mode=after.current_mode.value,
            )
            if self.policy.should_log_mode_switch(before.current_mode, after.current_mode):
                events.append(self.record(
                    TimelineEventBuilder.mode_switch(
                        before.current_mode,
                        after.current_mode,
                        timestamp=self._clock(),
                    )
                ))
        return events

    def note(
        self,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> TimelineEvent:
        return self.record(
            TimelineEventBuilder.note(title, description, metadata, timestamp=self._clock())
        )

    def forget_expense(self, expense_id: str) -> None:
        self._budget_baselines.pop(expense_id, None)

    def reset(self) -> None:
        """Drop all session baselines (after a reseed or a remote refresh)."""
        self._budget_baselines.clear()
