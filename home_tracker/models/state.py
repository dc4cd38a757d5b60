"""
Application State Snapshot

AppState is the whole tracker in one immutable value: every collection,
both income records, the settings singleton and the timeline.
The store replaces it wholesale on every mutation; previous snapshots
stay valid and can be inspected.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from home_tracker.models.budget import (
    ChecklistItem,
    DomainModel,
    Expense,
    ExpenseCategory,
    Income,
    Mode,
    Scenario,
    ShoppingItem,
    UserSettings,
)
from home_tracker.models.timeline import TimelineEvent

# Bump when the durable document changes shape.
# Register a step in services.storage.migrations for every bump.
SCHEMA_VERSION = 2


class Collection(str, Enum):
    """Addressable collections of the state (and their durable names)."""
    ITEMS = "items"
    EXPENSES = "expenses"
    EXPENSE_CATEGORIES = "expense_categories"
    INCOMES = "incomes"
    CHECKLIST = "checklist"
    SCENARIOS = "scenarios"
    SETTINGS = "settings"
    TIMELINE = "timeline"


class AppState(DomainModel):
    """
    Immutable snapshot of all tracker data.

    INVARIANT: incomes always holds one record per Mode.
    """

    items: tuple[ShoppingItem, ...] = ()
    expenses: tuple[Expense, ...] = ()
    expense_categories: tuple[ExpenseCategory, ...] = ()
    incomes: dict[Mode, Income] = Field(default_factory=dict, validate_default=True)
    checklist: tuple[ChecklistItem, ...] = ()
    scenarios: tuple[Scenario, ...] = ()
    settings: UserSettings = Field(default_factory=UserSettings)
    timeline: tuple[TimelineEvent, ...] = ()

    @field_validator('incomes', mode='after')
    @classmethod
    def ensure_income_per_mode(cls, v: dict[Mode, Income]) -> dict[Mode, Income]:
        """Default any missing mode to a zero income record."""
        incomes = dict(v)
        for mode in Mode:
            if mode not in incomes:
                incomes[mode] = Income(mode=mode)
            elif incomes[mode].mode != mode:
                raise ValueError(
                    f"Income stored under {mode.value} belongs to {incomes[mode].mode.value}"
                )
        return incomes

    @classmethod
    def empty(cls) -> 'AppState':
        """No data at all (used when a remote load fails)."""
        return cls()

    @property
    def current_mode(self) -> Mode:
        return self.settings.current_mode

    def income_for(self, mode: Mode) -> Income:
        return self.incomes[mode]

    def evolve(self, **changes: Any) -> 'AppState':
        """
        Return a new snapshot with some top-level fields replaced.

        Lists are frozen into tuples; entity objects are shared with the
        previous snapshot, never copied.
        """
        for key, value in changes.items():
            if isinstance(value, list):
                changes[key] = tuple(value)
        return self.model_copy(update=changes)

    def find(self, collection: Collection, entity_id: str) -> Optional[DomainModel]:
        """Look an entity up by id in one of the id-keyed collections."""
        for entity in getattr(self, collection.value):
            if entity.id == entity_id:
                return entity
        return None

    def to_document(self) -> dict:
        """Durable JSON-ready document (camelCase keys, ISO dates, string decimals)."""
        document = self.model_dump(mode="json", by_alias=True)
        document["schemaVersion"] = SCHEMA_VERSION
        return document

    @classmethod
    def from_document(cls, document: dict) -> 'AppState':
        """Inverse of to_document. Raises pydantic.ValidationError on bad data."""
        payload = {k: v for k, v in document.items() if k != "schemaVersion"}
        return cls.model_validate(payload)
