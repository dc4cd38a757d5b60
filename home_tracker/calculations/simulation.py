"""
Budget simulation ("what if").

A simulation never touches the live state: it applies overrides to
copies of the expenses and income, and reports the outcome next to the
live balance. The snapshot maps in the result are what save_scenario
stores.
"""

from collections.abc import Iterable, Mapping
from typing import Optional, Union

from home_tracker.calculations.finance import (
    IncomeLike,
    balance,
    health_indicator,
    total_expenses,
    total_income,
)
from home_tracker.models.budget import (
    Expense,
    Income,
    Scenario,
    ScenarioExpense,
    ScenarioIncome,
)
from home_tracker.models.summary import ExpenseOverride, SimulationResult

OverrideInput = Union[ExpenseOverride, ScenarioExpense, Mapping]


def snapshot_expenses(expenses: Iterable[Expense]) -> dict[str, ScenarioExpense]:
    """Capture value and active flag per expense id."""
    return {
        e.id: ScenarioExpense(current_value=e.current_value, active=e.active)
        for e in expenses
    }


def snapshot_income(income: IncomeLike) -> ScenarioIncome:
    return ScenarioIncome(
        salary=income.salary,
        benefit=income.benefit,
        extras=income.extras,
    )


def _as_override(value: OverrideInput) -> ExpenseOverride:
    if isinstance(value, ExpenseOverride):
        return value
    if isinstance(value, ScenarioExpense):
        return ExpenseOverride(current_value=value.current_value, active=value.active)
    return ExpenseOverride.model_validate(dict(value))


def apply_overrides(
    expenses: Iterable[Expense],
    overrides: Optional[Mapping[str, OverrideInput]] = None,
) -> list[Expense]:
    """Copies of the expenses with overrides applied. Unknown ids are ignored."""
    overrides = overrides or {}
    simulated = []
    for expense in expenses:
        if expense.id not in overrides:
            simulated.append(expense)
            continue
        override = _as_override(overrides[expense.id])
        updates = override.model_dump(exclude_none=True)
        simulated.append(expense.model_copy(update=updates))
    return simulated


def simulate_budget(
    income: Income,
    expenses: Iterable[Expense],
    expense_overrides: Optional[Mapping[str, OverrideInput]] = None,
    income_override: Optional[ScenarioIncome] = None,
) -> SimulationResult:
    """
    Compute the simulated balance against the live one.

    expenses should already be filtered for the active mode.
    """
    expenses = list(expenses)
    simulated_expenses = apply_overrides(expenses, expense_overrides)
    simulated_income: IncomeLike = income_override or income

    sim_income_total = total_income(simulated_income)
    sim_expense_total = total_expenses(simulated_expenses)
    sim_balance = sim_income_total - sim_expense_total
    original = balance(income, expenses)

    return SimulationResult(
        total_income=sim_income_total,
        total_expenses=sim_expense_total,
        balance=sim_balance,
        original_balance=original,
        difference=sim_balance - original,
        health=health_indicator(sim_balance, sim_income_total),
        expense_snapshot=snapshot_expenses(simulated_expenses),
        income_snapshot=snapshot_income(simulated_income),
    )


def simulate_scenario(
    scenario: Scenario,
    income: Income,
    expenses: Iterable[Expense],
) -> SimulationResult:
    """Re-run a saved scenario against the current expenses and income."""
    return simulate_budget(
        income,
        expenses,
        expense_overrides=scenario.configuration.expenses,
        income_override=scenario.configuration.income,
    )


def apply_scenario(scenario: Scenario, expenses: Iterable[Expense]) -> list[Expense]:
    """Expenses as a saved scenario configured them, ready for further what-ifs."""
    return apply_overrides(expenses, scenario.configuration.expenses)
