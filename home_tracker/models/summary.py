"""
Derived Result Models

Shapes returned by the derivation functions in home_tracker.calculations.
None of these are persisted: they are recomputed from the state on read.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from home_tracker.models.budget import (
    ChecklistItem,
    Expense,
    ExpenseCategory,
    ItemPhase,
    Mode,
    ScenarioExpense,
    ScenarioIncome,
    ShoppingItem,
)
from home_tracker.models.timeline import TimelineEvent


class HealthIndicator(str, Enum):
    """
    Three-level classification of the balance relative to income.

    healthy: balance >= 10% of income
    caution: 0% <= balance < 10%
    critical: negative balance, or no income at all
    """
    HEALTHY = "healthy"
    CAUTION = "caution"
    CRITICAL = "critical"

    @property
    def color(self) -> str:
        return {
            HealthIndicator.HEALTHY: "green",
            HealthIndicator.CAUTION: "yellow",
            HealthIndicator.CRITICAL: "red",
        }[self]


class ExpenseWithCategory(BaseModel):
    """
    An expense joined with its category.

    category is None when the expense references a category that no
    longer exists; it is never substituted with another one.
    """
    expense: Expense
    category: Optional[ExpenseCategory] = None

    @property
    def has_category(self) -> bool:
        return self.category is not None


class CategoryTotal(BaseModel):
    """Active spending in one category."""
    category: Optional[ExpenseCategory] = Field(
        default=None,
        description="None groups expenses whose category is missing"
    )
    total: Decimal
    percent: float = Field(description="Share of all active expenses")
    percent_of_income: float = Field(default=0.0, description="Share of total income")


class FinancialSummary(BaseModel):
    """Everything the dashboard balance card needs."""
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    percent_committed: float
    health: HealthIndicator
    by_category: list[CategoryTotal] = Field(default_factory=list)


class PurchaseProgress(BaseModel):
    """Shopping progress for one phase."""
    phase: ItemPhase
    total: int = 0
    purchased: int = 0
    estimated_total: Decimal = Decimal("0")
    purchased_total: Decimal = Decimal("0")
    saved_total: Decimal = Decimal("0")
    percent_complete: float = 0.0


class SavingsPlan(BaseModel):
    """How much to put aside per month to afford the pre-move list in time."""
    remaining: Decimal
    days_remaining: int
    monthly_target: Decimal


class ExpenseOverride(BaseModel):
    """A simulated change to one expense. Unset fields keep the live value."""
    current_value: Optional[Decimal] = Field(default=None, ge=0)
    active: Optional[bool] = None


class SimulationResult(BaseModel):
    """
    Outcome of a what-if budget.

    expense_snapshot and income_snapshot hold the simulated configuration
    in the exact shape save_scenario captures.
    """
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    original_balance: Decimal
    difference: Decimal
    health: HealthIndicator
    expense_snapshot: dict[str, ScenarioExpense] = Field(default_factory=dict)
    income_snapshot: ScenarioIncome


class ChecklistProgress(BaseModel):
    total: int = 0
    completed: int = 0
    overdue: int = 0
    percent_complete: float = 0.0


class NextSteps(BaseModel):
    """Short to-do list for the dashboard."""
    tasks: list[ChecklistItem] = Field(default_factory=list)
    essential_items: list[ShoppingItem] = Field(default_factory=list)
    saving_items: list[ShoppingItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.tasks or self.essential_items or self.saving_items)


class DashboardSummary(BaseModel):
    """Aggregate view rendered on the home page."""
    mode: Mode
    financial: FinancialSummary
    pre_move: PurchaseProgress
    post_move: PurchaseProgress
    checklist: ChecklistProgress
    next_steps: NextSteps
    savings_plan: SavingsPlan
    days_until_move: Optional[int] = None
    suggest_living_mode: bool = False
    recent_events: list[TimelineEvent] = Field(default_factory=list)
