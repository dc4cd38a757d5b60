"""
Core Data Models for Home Alone Tracker

These models define the schemas for everything the tracker keeps:
shopping items, recurring expenses, income per mode, the move checklist,
saved scenarios and user settings.

They are designed to:
1. Enforce the entity invariants at construction time
2. Be immutable (frozen) so every change produces a new snapshot
3. Round-trip through JSON without information loss

DESIGN DECISION: Python code uses snake_case attributes while the durable
JSON document uses camelCase keys (alias generator). Money is Decimal,
dates are ISO-8601 strings once serialized, enums are fixed lowercase strings.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Client-generated identity for new entities."""
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ItemCategory(str, Enum):
    """Room a shopping item belongs to."""
    KITCHEN = "kitchen"
    BEDROOM = "bedroom"
    BATHROOM = "bathroom"
    HOUSE = "house"


class ItemPhase(str, Enum):
    """
    When the item is needed, relative to the move.

    Independent of Mode: a post-move item can be planned while still
    in preparation mode.
    """
    PRE_MOVE = "pre-move"
    POST_MOVE = "post-move"


class ItemPriority(str, Enum):
    ESSENTIAL = "essential"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ItemStatus(str, Enum):
    """
    Shopping item lifecycle.

    pending -> researching -> saving -> purchased
    Deposits force SAVING from any non-terminal state.
    PURCHASED is terminal.
    """
    PENDING = "pending"
    RESEARCHING = "researching"
    SAVING = "saving"
    PURCHASED = "purchased"


class ExpenseType(str, Enum):
    FIXED = "fixed"        # Same every month (rent, internet)
    VARIABLE = "variable"  # Fluctuates (groceries, electricity)


class ExpenseSource(str, Enum):
    """Which income component pays for the expense."""
    SALARY = "salary"
    BENEFIT = "benefit"


class Mode(str, Enum):
    """Lifecycle stage the whole app is operating in."""
    PREPARATION = "preparation"
    LIVING = "living"


class ExpenseVisibility(str, Enum):
    """Which mode(s) count an expense toward totals."""
    PREPARATION = "preparation"
    LIVING = "living"
    BOTH = "both"


# =============================================================================
# BASE
# =============================================================================

class DomainModel(BaseModel):
    """
    Base for persisted entities.

    Frozen: mutations go through model_validate on a merged dict
    (see validation.apply_updates) so invariants are re-checked.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def merged_with(self, updates: dict[str, Any]) -> dict[str, Any]:
        """Field values after applying updates (keyed by field name)."""
        merged = self.model_dump()
        merged.update(updates)
        return merged


def _pick_key(data: dict, name: str) -> str:
    """Return whichever of the field name or its camelCase alias is in use."""
    alias = to_camel(name)
    if name in data or alias not in data:
        return name
    return alias


# =============================================================================
# SHOPPING
# =============================================================================

class ShoppingItem(DomainModel):
    """
    A planned purchase with its own savings box.

    INVARIANT: actual_price is set if and only if status is PURCHASED.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What to buy"
    )
    category: ItemCategory
    phase: ItemPhase
    priority: ItemPriority = ItemPriority.MEDIUM

    # Price range is independent on both ends
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    actual_price: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="What was actually paid (only once purchased)"
    )
    amount_saved: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Money already put aside for this item"
    )

    status: ItemStatus = ItemStatus.PENDING
    purchase_date: Optional[datetime] = None
    note: Optional[str] = Field(default=None, max_length=1000)
    sort_order: int = 0

    @model_validator(mode='after')
    def validate_purchase_fields(self) -> 'ShoppingItem':
        """Tie actual_price to the purchased status."""
        if self.status == ItemStatus.PURCHASED and self.actual_price is None:
            raise ValueError("Purchased items must have an actual price")
        if self.status != ItemStatus.PURCHASED and self.actual_price is not None:
            raise ValueError("Actual price can only be set on purchased items")
        return self


# =============================================================================
# MONTHLY BUDGET
# =============================================================================

class ExpenseCategory(DomainModel):
    """Grouping bucket for expenses. Seeded at first run, read-mostly."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = Field(default="", max_length=50)
    sort_order: int = 0


class Expense(DomainModel):
    """
    A recurring monthly cost.

    The min/max range is advisory: current_value is never clamped to it.
    For FIXED expenses the range collapses to a single suggestion.
    """

    id: str = Field(default_factory=new_id)
    category_id: str
    name: str = Field(..., min_length=1, max_length=200)
    min_value: Optional[Decimal] = Field(default=None, ge=0)
    max_value: Optional[Decimal] = Field(default=None, ge=0)
    current_value: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="The amount actually counted in totals"
    )
    type: ExpenseType = ExpenseType.VARIABLE
    source: ExpenseSource = ExpenseSource.SALARY
    active: bool = True
    note: Optional[str] = Field(default=None, max_length=1000)
    sort_order: int = 0
    visibility: ExpenseVisibility = ExpenseVisibility.BOTH

    @model_validator(mode='before')
    @classmethod
    def collapse_fixed_range(cls, data: Any) -> Any:
        """Fixed expenses carry one suggested value: min wins, else max."""
        if not isinstance(data, dict) or data.get("type") != ExpenseType.FIXED:
            return data
        min_key = _pick_key(data, "min_value")
        max_key = _pick_key(data, "max_value")
        low, high = data.get(min_key), data.get(max_key)
        value = low if low is not None else high
        data = dict(data)
        data[min_key] = value
        data[max_key] = value
        return data

    def merged_with(self, updates: dict[str, Any]) -> dict[str, Any]:
        """On a fixed expense, a bound set on its own sets both."""
        merged = super().merged_with(updates)
        if merged.get("type") == ExpenseType.FIXED:
            touched = [name for name in ("min_value", "max_value") if name in updates]
            if len(touched) == 1:
                merged["min_value"] = merged["max_value"] = updates[touched[0]]
        return merged


class Income(DomainModel):
    """
    Income assumptions for ONE mode.

    Two records always exist (preparation and living) so each lifecycle
    stage can have its own numbers.
    """

    id: str = Field(default_factory=new_id)
    mode: Mode
    salary: Decimal = Field(default=Decimal("0"), ge=0)
    benefit: Decimal = Field(default=Decimal("0"), ge=0)
    extras: Decimal = Field(default=Decimal("0"), ge=0)
    reference_month: Optional[str] = Field(
        default=None,
        pattern=r"^\d{4}-\d{2}$",
        description="Month these numbers refer to (YYYY-MM)"
    )


# =============================================================================
# CHECKLIST
# =============================================================================

class ChecklistItem(DomainModel):
    """A move-readiness task."""

    id: str = Field(default_factory=new_id)
    description: str = Field(..., min_length=1, max_length=500)
    target_date: Optional[date] = None
    completed: bool = False
    note: Optional[str] = Field(default=None, max_length=1000)
    sort_order: int = 0


# =============================================================================
# SCENARIOS
# =============================================================================

class ScenarioExpense(DomainModel):
    """Captured value and active flag of one expense."""
    current_value: Decimal = Field(..., ge=0)
    active: bool


class ScenarioIncome(DomainModel):
    """Captured income triple."""
    salary: Decimal = Field(default=Decimal("0"), ge=0)
    benefit: Decimal = Field(default=Decimal("0"), ge=0)
    extras: Decimal = Field(default=Decimal("0"), ge=0)


class ScenarioConfiguration(DomainModel):
    expenses: dict[str, ScenarioExpense] = Field(default_factory=dict)
    income: ScenarioIncome = Field(default_factory=ScenarioIncome)


class Scenario(DomainModel):
    """
    A saved hypothetical budget.

    Write-once: created from a simulation, never mutated, only deleted.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    configuration: ScenarioConfiguration
    resulting_balance: Decimal
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# SETTINGS
# =============================================================================

class UserSettings(DomainModel):
    """
    Process-wide singleton. Always exists (defaulted if absent).

    Named UserSettings to keep it apart from the environment
    configuration in home_tracker.config.
    """
    target_move_date: Optional[date] = None
    current_mode: Mode = Mode.PREPARATION


# =============================================================================
# CREATION DRAFTS - validated builders accepted by the store's add_* operations
# =============================================================================

class NewShoppingItem(DomainModel):
    """
    Everything needed to create a ShoppingItem.

    New items always start PENDING with nothing saved. Leave sort_order
    empty to append at the end of the item's (category, phase) group.
    """
    name: str = Field(..., min_length=1, max_length=200)
    category: ItemCategory
    phase: ItemPhase
    priority: ItemPriority = ItemPriority.MEDIUM
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)
    note: Optional[str] = Field(default=None, max_length=1000)
    sort_order: Optional[int] = None

    def build(self, sort_order: int) -> ShoppingItem:
        data = self.model_dump(exclude={"sort_order"})
        return ShoppingItem(**data, sort_order=sort_order)


class NewExpense(DomainModel):
    """Everything needed to create an Expense. Visibility is chosen by the caller."""
    category_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    min_value: Optional[Decimal] = Field(default=None, ge=0)
    max_value: Optional[Decimal] = Field(default=None, ge=0)
    current_value: Decimal = Field(default=Decimal("0"), ge=0)
    type: ExpenseType = ExpenseType.VARIABLE
    source: ExpenseSource = ExpenseSource.SALARY
    active: bool = True
    note: Optional[str] = Field(default=None, max_length=1000)
    visibility: ExpenseVisibility = ExpenseVisibility.BOTH
    sort_order: Optional[int] = None

    def build(self, sort_order: int) -> Expense:
        data = self.model_dump(exclude={"sort_order"})
        return Expense(**data, sort_order=sort_order)


class NewChecklistItem(DomainModel):
    """Everything needed to create a ChecklistItem. Created not completed."""
    description: str = Field(..., min_length=1, max_length=500)
    target_date: Optional[date] = None
    note: Optional[str] = Field(default=None, max_length=1000)

    def build(self, sort_order: int) -> ChecklistItem:
        return ChecklistItem(**self.model_dump(), sort_order=sort_order)
