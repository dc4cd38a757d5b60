"""
Timeline Models for Home Alone Tracker

The timeline is an informal, append-only log of notable changes shown
on the dashboard: purchases, completed checklist tasks, big budget
changes, move-date changes and free-form notes.

DESIGN DECISION: Timeline events are append-only. They are never
modified, and there is no user-facing delete.
It is NOT an audit trail: most mutations never reach it (see
policy.rules.TimelinePolicy for which ones do).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from home_tracker.formatting import format_currency, format_date
from home_tracker.models.budget import (
    ChecklistItem,
    DomainModel,
    Expense,
    Mode,
    ShoppingItem,
    new_id,
    utc_now,
)


class TimelineEventType(str, Enum):
    """Kinds of timeline entries."""
    PURCHASE = "purchase"
    CHECKLIST = "checklist-completion"
    BUDGET_CHANGE = "budget-change"
    DATE_CHANGE = "date-change"
    NOTE = "note"


# Values written before the type names were hyphenated
LEGACY_EVENT_TYPES = {
    "checklist": TimelineEventType.CHECKLIST,
    "budget_change": TimelineEventType.BUDGET_CHANGE,
    "date_change": TimelineEventType.DATE_CHANGE,
}


class TimelineEvent(DomainModel):
    """A single timeline entry."""

    id: str = Field(default_factory=new_id)
    type: TimelineEventType
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = Field(default=None, max_length=1000)

    # Keyed by the triggering entity (item_id, expense_id, ...) plus event data
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator('type', mode='before')
    @classmethod
    def accept_legacy_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return LEGACY_EVENT_TYPES.get(v, v)
        return v

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.type.value,
            "title": self.title,
            "description": self.description,
            "metadata": self.metadata,
        }


class TimelineEventBuilder:
    """
    Helper class to build timeline events with their standard wording.

    Usage:
        event = TimelineEventBuilder.purchase(item, Decimal("750"))
        event = TimelineEventBuilder.checklist_completed(task)
    """

    @staticmethod
    def purchase(
        item: ShoppingItem,
        actual_price: Decimal,
        timestamp: Optional[datetime] = None,
    ) -> TimelineEvent:
        return TimelineEvent(
            type=TimelineEventType.PURCHASE,
            timestamp=timestamp or utc_now(),
            title=f"Purchased {item.name} for {format_currency(actual_price)}",
            description=f"{item.category.value} / {item.phase.value}",
            metadata={
                "item_id": item.id,
                "actual_price": str(actual_price),
            },
        )

    @staticmethod
    def checklist_completed(
        task: ChecklistItem,
        timestamp: Optional[datetime] = None,
    ) -> TimelineEvent:
        return TimelineEvent(
            type=TimelineEventType.CHECKLIST,
            timestamp=timestamp or utc_now(),
            title=f"Completed: {task.description}",
            metadata={"checklist_item_id": task.id},
        )

    @staticmethod
    def budget_change(
        expense: Expense,
        old_value: Decimal,
        new_value: Decimal,
        baseline: Optional[Decimal] = None,
        timestamp: Optional[datetime] = None,
    ) -> TimelineEvent:
        """
        old_value is the value right before this update. baseline, when
        given, is the value the change was measured against.
        """
        direction = "increased" if new_value > old_value else "decreased"
        metadata = {
            "expense_id": expense.id,
            "old_value": str(old_value),
            "new_value": str(new_value),
        }
        if baseline is not None:
            metadata["baseline"] = str(baseline)
        return TimelineEvent(
            type=TimelineEventType.BUDGET_CHANGE,
            timestamp=timestamp or utc_now(),
            title=f"{expense.name} {direction}",
            description=f"From {format_currency(old_value)} to {format_currency(new_value)}",
            metadata=metadata,
        )

    @staticmethod
    def date_change(
        old_date: Optional[date],
        new_date: Optional[date],
        timestamp: Optional[datetime] = None,
    ) -> TimelineEvent:
        if new_date is None:
            title = "Move date cleared"
        elif old_date is None:
            title = f"Move date set to {format_date(new_date)}"
        else:
            title = f"Move date changed to {format_date(new_date)}"
        return TimelineEvent(
            type=TimelineEventType.DATE_CHANGE,
            timestamp=timestamp or utc_now(),
            title=title,
            description=f"From {format_date(old_date)} to {format_date(new_date)}",
            metadata={
                "old_date": old_date.isoformat() if old_date else None,
                "new_date": new_date.isoformat() if new_date else None,
            },
        )

    @staticmethod
    def mode_switch(
        old_mode: Mode,
        new_mode: Mode,
        timestamp: Optional[datetime] = None,
    ) -> TimelineEvent:
        return TimelineEvent(
            type=TimelineEventType.NOTE,
            timestamp=timestamp or utc_now(),
            title=f"Switched to {new_mode.value} mode",
            metadata={"old_mode": old_mode.value, "new_mode": new_mode.value},
        )

    @staticmethod
    def note(
        title: str,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> TimelineEvent:
        return TimelineEvent(
            type=TimelineEventType.NOTE,
            timestamp=timestamp or utc_now(),
            title=title,
            description=description,
            metadata=metadata or {},
        )
