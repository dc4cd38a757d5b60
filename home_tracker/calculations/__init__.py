"""
Derivation Functions

Pure, deterministic functions over entity collections. They never do
I/O and never raise on missing data.
"""

from home_tracker.calculations.dashboard import (
    build_dashboard,
    checklist_progress,
    next_steps,
    should_suggest_living_mode,
)
from home_tracker.calculations.finance import (
    balance,
    expenses_by_category,
    expenses_with_category,
    financial_summary,
    health_indicator,
    total_expenses,
    total_income,
)
from home_tracker.calculations.periods import days_elapsed, days_remaining
from home_tracker.calculations.shopping import (
    amount_remaining_for_item,
    filter_items,
    monthly_savings_target,
    next_checklist_sort_order,
    next_expense_sort_order,
    next_item_sort_order,
    pre_move_remaining,
    pre_move_savings_plan,
    purchase_progress,
)
from home_tracker.calculations.simulation import (
    apply_overrides,
    apply_scenario,
    simulate_budget,
    simulate_scenario,
    snapshot_expenses,
    snapshot_income,
)

__all__ = [
    "amount_remaining_for_item",
    "apply_overrides",
    "apply_scenario",
    "balance",
    "build_dashboard",
    "checklist_progress",
    "days_elapsed",
    "days_remaining",
    "expenses_by_category",
    "expenses_with_category",
    "filter_items",
    "financial_summary",
    "health_indicator",
    "monthly_savings_target",
    "next_checklist_sort_order",
    "next_expense_sort_order",
    "next_item_sort_order",
    "next_steps",
    "pre_move_remaining",
    "pre_move_savings_plan",
    "purchase_progress",
    "should_suggest_living_mode",
    "simulate_budget",
    "simulate_scenario",
    "snapshot_expenses",
    "snapshot_income",
    "total_expenses",
    "total_income",
]
