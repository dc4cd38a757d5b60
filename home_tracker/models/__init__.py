"""
Data Models Package

This package contains all Pydantic models used in Home Alone Tracker.
All data flowing through the system must conform to these schemas.
"""

from home_tracker.models.budget import (
    ChecklistItem,
    Expense,
    ExpenseCategory,
    ExpenseSource,
    ExpenseType,
    ExpenseVisibility,
    Income,
    ItemCategory,
    ItemPhase,
    ItemPriority,
    ItemStatus,
    Mode,
    NewChecklistItem,
    NewExpense,
    NewShoppingItem,
    Scenario,
    ScenarioConfiguration,
    ScenarioExpense,
    ScenarioIncome,
    ShoppingItem,
    UserSettings,
    new_id,
)
from home_tracker.models.timeline import (
    TimelineEvent,
    TimelineEventBuilder,
    TimelineEventType,
)
from home_tracker.models.state import (
    SCHEMA_VERSION,
    AppState,
    Collection,
)
from home_tracker.models.summary import (
    CategoryTotal,
    ChecklistProgress,
    DashboardSummary,
    ExpenseOverride,
    ExpenseWithCategory,
    FinancialSummary,
    HealthIndicator,
    NextSteps,
    PurchaseProgress,
    SavingsPlan,
    SimulationResult,
)

__all__ = [
    # Budget entities
    "ChecklistItem",
    "Expense",
    "ExpenseCategory",
    "ExpenseSource",
    "ExpenseType",
    "ExpenseVisibility",
    "Income",
    "ItemCategory",
    "ItemPhase",
    "ItemPriority",
    "ItemStatus",
    "Mode",
    "NewChecklistItem",
    "NewExpense",
    "NewShoppingItem",
    "Scenario",
    "ScenarioConfiguration",
    "ScenarioExpense",
    "ScenarioIncome",
    "ShoppingItem",
    "UserSettings",
    "new_id",
    # Timeline
    "TimelineEvent",
    "TimelineEventBuilder",
    "TimelineEventType",
    # State
    "SCHEMA_VERSION",
    "AppState",
    "Collection",
    # Derived results
    "CategoryTotal",
    "ChecklistProgress",
    "DashboardSummary",
    "ExpenseOverride",
    "ExpenseWithCategory",
    "FinancialSummary",
    "HealthIndicator",
    "NextSteps",
    "PurchaseProgress",
    "SavingsPlan",
    "SimulationResult",
]
