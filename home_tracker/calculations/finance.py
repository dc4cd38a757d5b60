"""
Monthly budget derivations.

All functions are pure: collections come in as arguments, nothing is read
from the store, and missing data yields zero/neutral values instead of
raising. Callers pass the expenses already filtered for the active mode
(see policy.rules.filter_for_mode).
"""

from collections.abc import Iterable
from decimal import Decimal
from typing import Optional, Protocol, Union

from home_tracker.models.budget import Expense, ExpenseCategory
from home_tracker.models.summary import (
    CategoryTotal,
    ExpenseWithCategory,
    FinancialSummary,
    HealthIndicator,
)

ZERO = Decimal("0")

# Balance share (percent of income) from which the budget is healthy
HEALTHY_THRESHOLD_PCT = Decimal("10")


class IncomeLike(Protocol):
    """Anything with the income triple (Income, ScenarioIncome)."""
    salary: Decimal
    benefit: Decimal
    extras: Decimal


ExpenseInput = Union[Expense, ExpenseWithCategory]


def _expense(entry: ExpenseInput) -> Expense:
    return entry.expense if isinstance(entry, ExpenseWithCategory) else entry


def total_income(income: Optional[IncomeLike]) -> Decimal:
    if income is None:
        return ZERO
    return income.salary + income.benefit + income.extras


def total_expenses(expenses: Iterable[ExpenseInput]) -> Decimal:
    """Sum of current values of ACTIVE expenses. Inactive ones count as 0."""
    return sum(
        (e.current_value for e in map(_expense, expenses) if e.active),
        ZERO,
    )


def balance(income: Optional[IncomeLike], expenses: Iterable[ExpenseInput]) -> Decimal:
    return total_income(income) - total_expenses(expenses)


def health_indicator(balance_value: Decimal, income_total: Decimal) -> HealthIndicator:
    """
    Classify the balance relative to income.

    Zero income is always CRITICAL, whatever the balance: the
    division guard takes precedence.
    """
    if income_total == 0:
        return HealthIndicator.CRITICAL
    pct = Decimal(balance_value) / Decimal(income_total) * 100
    if pct >= HEALTHY_THRESHOLD_PCT:
        return HealthIndicator.HEALTHY
    if pct >= 0:
        return HealthIndicator.CAUTION
    return HealthIndicator.CRITICAL


def expenses_with_category(
    expenses: Iterable[Expense],
    categories: Iterable[ExpenseCategory],
) -> list[ExpenseWithCategory]:
    """
    Left-join expenses with their categories.

    A dangling category reference yields category=None. It is not
    replaced by any other category.
    """
    by_id = {c.id: c for c in categories}
    return [
        ExpenseWithCategory(expense=e, category=by_id.get(e.category_id))
        for e in expenses
    ]


def expenses_by_category(
    expenses: Iterable[ExpenseWithCategory],
    income_total: Optional[Decimal] = None,
) -> list[CategoryTotal]:
    """
    Aggregate active expenses per category, largest first.

    Uncategorized (dangling) expenses are grouped under category=None.
    percent is the share of all active expenses (0 if there are none).
    """
    active = [e for e in expenses if e.expense.active]
    grand_total = sum((e.expense.current_value for e in active), ZERO)

    groups: dict[Optional[str], CategoryTotal] = {}
    for entry in active:
        key = entry.category.id if entry.category else None
        if key not in groups:
            groups[key] = CategoryTotal(category=entry.category, total=ZERO, percent=0.0)
        group = groups[key]
        group.total += entry.expense.current_value

    for group in groups.values():
        group.percent = float(group.total / grand_total * 100) if grand_total > 0 else 0.0
        if income_total:
            group.percent_of_income = float(group.total / income_total * 100)

    return sorted(groups.values(), key=lambda g: g.total, reverse=True)


def financial_summary(
    income: Optional[IncomeLike],
    expenses: Iterable[Expense],
    categories: Iterable[ExpenseCategory] = (),
) -> FinancialSummary:
    """Totals, balance, health and category breakdown in one structure."""
    joined = expenses_with_category(expenses, categories)
    income_total = total_income(income)
    expense_total = total_expenses(joined)
    balance_value = income_total - expense_total

    return FinancialSummary(
        total_income=income_total,
        total_expenses=expense_total,
        balance=balance_value,
        percent_committed=float(expense_total / income_total * 100) if income_total > 0 else 0.0,
        health=health_indicator(balance_value, income_total),
        by_category=expenses_by_category(joined, income_total),
    )
