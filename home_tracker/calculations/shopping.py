"""
Shopping list derivations: progress per phase, savings still needed,
monthly savings targets and ordering of new entries.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Optional

from home_tracker.calculations.periods import DateLike, days_remaining
from home_tracker.models.budget import (
    ChecklistItem,
    Expense,
    ItemCategory,
    ItemPhase,
    ItemPriority,
    ItemStatus,
    ShoppingItem,
)
from home_tracker.models.summary import PurchaseProgress, SavingsPlan

ZERO = Decimal("0")

DAYS_PER_MONTH = 30


def purchase_progress(items: Iterable[ShoppingItem], phase: ItemPhase) -> PurchaseProgress:
    """
    Progress of one phase.

    estimated_total only counts items with BOTH price bounds (midpoint);
    an item with a single bound is skipped, not approximated.
    saved_total includes purchased items.
    """
    phase_items = [i for i in items if i.phase == phase]
    purchased = [i for i in phase_items if i.status == ItemStatus.PURCHASED]

    estimated = sum(
        (
            (i.min_price + i.max_price) / 2
            for i in phase_items
            if i.min_price is not None and i.max_price is not None
        ),
        ZERO,
    )

    return PurchaseProgress(
        phase=phase,
        total=len(phase_items),
        purchased=len(purchased),
        estimated_total=estimated,
        purchased_total=sum((i.actual_price or ZERO for i in purchased), ZERO),
        saved_total=sum((i.amount_saved for i in phase_items), ZERO),
        percent_complete=len(purchased) / len(phase_items) * 100 if phase_items else 0.0,
    )


def target_price(item: ShoppingItem) -> Decimal:
    """The price to save for: max, else min, else 0."""
    if item.max_price is not None:
        return item.max_price
    if item.min_price is not None:
        return item.min_price
    return ZERO


def amount_remaining_for_item(item: ShoppingItem) -> Decimal:
    if item.status == ItemStatus.PURCHASED:
        return ZERO
    return max(ZERO, target_price(item) - item.amount_saved)


def monthly_savings_target(remaining: Decimal, days_left: int) -> Decimal:
    """
    Spread the remaining amount over the months left (floored, at least 1).

    No days left means everything has to be saved now.
    """
    if days_left <= 0:
        return remaining
    months = max(1, days_left // DAYS_PER_MONTH)
    return remaining / months


def pre_move_remaining(items: Iterable[ShoppingItem]) -> Decimal:
    """Money still missing for every unpurchased pre-move item."""
    return sum(
        (
            amount_remaining_for_item(i)
            for i in items
            if i.phase == ItemPhase.PRE_MOVE and i.status != ItemStatus.PURCHASED
        ),
        ZERO,
    )


def pre_move_savings_plan(
    items: Iterable[ShoppingItem],
    target_move_date: Optional[DateLike],
    now: Optional[datetime] = None,
) -> SavingsPlan:
    remaining = pre_move_remaining(items)
    days_left = days_remaining(target_move_date, now)
    return SavingsPlan(
        remaining=remaining,
        days_remaining=days_left,
        monthly_target=monthly_savings_target(remaining, days_left),
    )


def filter_items(
    items: Iterable[ShoppingItem],
    phase: Optional[ItemPhase] = None,
    category: Optional[ItemCategory] = None,
    status: Optional[ItemStatus] = None,
    priority: Optional[ItemPriority] = None,
) -> list[ShoppingItem]:
    """Items matching every given filter, in sort order."""
    result = [
        i for i in items
        if (phase is None or i.phase == phase)
        and (category is None or i.category == category)
        and (status is None or i.status == status)
        and (priority is None or i.priority == priority)
    ]
    return sorted(result, key=lambda i: i.sort_order)


# =============================================================================
# ORDERING OF NEW ENTRIES
# =============================================================================

def next_item_sort_order(
    items: Iterable[ShoppingItem],
    category: ItemCategory,
    phase: ItemPhase,
) -> int:
    """Sort order is unique within a (category, phase) group, not globally."""
    orders = [i.sort_order for i in items if i.category == category and i.phase == phase]
    return max(orders, default=0) + 1


def next_expense_sort_order(expenses: Iterable[Expense], category_id: str) -> int:
    orders = [e.sort_order for e in expenses if e.category_id == category_id]
    return max(orders, default=0) + 1


def next_checklist_sort_order(checklist: Iterable[ChecklistItem]) -> int:
    return max([0, *(c.sort_order for c in checklist)]) + 1
