"""
Seed Dataset

The state a fresh install starts from (and what reset_to_seed restores):
a realistic first-apartment budget, a starter shopping list and a move
checklist. Seed ids are stable so a reseed keeps references intact.
"""

from decimal import Decimal

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
    Mode,
    ShoppingItem,
    UserSettings,
)
from home_tracker.models.state import AppState


def _d(value: str) -> Decimal:
    return Decimal(value)


def seed_categories() -> tuple[ExpenseCategory, ...]:
    return (
        ExpenseCategory(id="cat-housing", name="Housing", icon="home", sort_order=1),
        ExpenseCategory(id="cat-utilities", name="Utilities", icon="zap", sort_order=2),
        ExpenseCategory(id="cat-food", name="Food", icon="shopping-cart", sort_order=3),
        ExpenseCategory(id="cat-transport", name="Transport", icon="bus", sort_order=4),
        ExpenseCategory(id="cat-health", name="Health", icon="heart", sort_order=5),
        ExpenseCategory(id="cat-leisure", name="Leisure", icon="music", sort_order=6),
    )


def seed_expenses() -> tuple[Expense, ...]:
    living = ExpenseVisibility.LIVING
    both = ExpenseVisibility.BOTH
    return (
        Expense(
            id="exp-rent", category_id="cat-housing", name="Rent",
            min_value=_d("1200"), current_value=_d("1200"),
            type=ExpenseType.FIXED, visibility=living, sort_order=1,
        ),
        Expense(
            id="exp-condo", category_id="cat-housing", name="Condo fee",
            min_value=_d("350"), current_value=_d("350"),
            type=ExpenseType.FIXED, visibility=living, sort_order=2,
        ),
        Expense(
            id="exp-power", category_id="cat-utilities", name="Electricity",
            min_value=_d("80"), max_value=_d("150"), current_value=_d("110"),
            visibility=living, sort_order=1,
        ),
        Expense(
            id="exp-water", category_id="cat-utilities", name="Water",
            min_value=_d("40"), max_value=_d("80"), current_value=_d("60"),
            visibility=living, sort_order=2,
        ),
        Expense(
            id="exp-internet", category_id="cat-utilities", name="Internet",
            min_value=_d("100"), current_value=_d("100"),
            type=ExpenseType.FIXED, visibility=living, sort_order=3,
        ),
        Expense(
            id="exp-phone", category_id="cat-utilities", name="Mobile phone",
            min_value=_d("50"), current_value=_d("50"),
            type=ExpenseType.FIXED, visibility=both, sort_order=4,
        ),
        Expense(
            id="exp-groceries", category_id="cat-food", name="Groceries",
            min_value=_d("500"), max_value=_d("800"), current_value=_d("650"),
            source=ExpenseSource.BENEFIT, visibility=living, sort_order=1,
        ),
        Expense(
            id="exp-lunch", category_id="cat-food", name="Lunch at work",
            min_value=_d("200"), max_value=_d("350"), current_value=_d("250"),
            source=ExpenseSource.BENEFIT, visibility=both, sort_order=2,
        ),
        Expense(
            id="exp-transit", category_id="cat-transport", name="Public transit",
            min_value=_d("180"), max_value=_d("250"), current_value=_d("200"),
            visibility=both, sort_order=1,
        ),
        Expense(
            id="exp-pharmacy", category_id="cat-health", name="Pharmacy",
            min_value=_d("30"), max_value=_d("120"), current_value=_d("50"),
            visibility=both, sort_order=1,
        ),
        Expense(
            id="exp-streaming", category_id="cat-leisure", name="Streaming",
            min_value=_d("40"), current_value=_d("40"),
            type=ExpenseType.FIXED, visibility=both, sort_order=1,
        ),
        Expense(
            id="exp-going-out", category_id="cat-leisure", name="Going out",
            min_value=_d("100"), max_value=_d("300"), current_value=_d("150"),
            visibility=both, sort_order=2,
        ),
    )


def seed_incomes() -> dict[Mode, Income]:
    return {
        Mode.PREPARATION: Income(
            id="income-preparation", mode=Mode.PREPARATION,
            salary=_d("3500"), benefit=_d("600"),
        ),
        Mode.LIVING: Income(
            id="income-living", mode=Mode.LIVING,
            salary=_d("3500"), benefit=_d("600"),
        ),
    }


def seed_items() -> tuple[ShoppingItem, ...]:
    pre, post = ItemPhase.PRE_MOVE, ItemPhase.POST_MOVE
    return (
        ShoppingItem(
            id="item-fridge", name="Refrigerator", category=ItemCategory.KITCHEN, phase=pre,
            priority=ItemPriority.ESSENTIAL, min_price=_d("1800"), max_price=_d("2800"), sort_order=1,
        ),
        ShoppingItem(
            id="item-stove", name="Stove", category=ItemCategory.KITCHEN, phase=pre,
            priority=ItemPriority.ESSENTIAL, min_price=_d("600"), max_price=_d("1200"), sort_order=2,
        ),
        ShoppingItem(
            id="item-pans", name="Pots and pans set", category=ItemCategory.KITCHEN, phase=pre,
            priority=ItemPriority.HIGH, min_price=_d("150"), max_price=_d("400"), sort_order=3,
        ),
        ShoppingItem(
            id="item-microwave", name="Microwave", category=ItemCategory.KITCHEN, phase=post,
            priority=ItemPriority.MEDIUM, min_price=_d("400"), max_price=_d("700"), sort_order=1,
        ),
        ShoppingItem(
            id="item-bed", name="Bed and mattress", category=ItemCategory.BEDROOM, phase=pre,
            priority=ItemPriority.ESSENTIAL, min_price=_d("1200"), max_price=_d("2500"), sort_order=1,
        ),
        ShoppingItem(
            id="item-bedding", name="Sheets and pillows", category=ItemCategory.BEDROOM, phase=pre,
            priority=ItemPriority.HIGH, min_price=_d("200"), max_price=_d("450"), sort_order=2,
        ),
        ShoppingItem(
            id="item-wardrobe", name="Wardrobe", category=ItemCategory.BEDROOM, phase=post,
            priority=ItemPriority.LOW, min_price=_d("700"), max_price=_d("1500"), sort_order=1,
        ),
        ShoppingItem(
            id="item-towels", name="Towels", category=ItemCategory.BATHROOM, phase=pre,
            priority=ItemPriority.HIGH, min_price=_d("80"), max_price=_d("200"), sort_order=1,
        ),
        ShoppingItem(
            id="item-shower-curtain", name="Shower curtain", category=ItemCategory.BATHROOM, phase=pre,
            priority=ItemPriority.MEDIUM, max_price=_d("60"), sort_order=2,
        ),
        ShoppingItem(
            id="item-washer", name="Washing machine", category=ItemCategory.HOUSE, phase=post,
            priority=ItemPriority.HIGH, min_price=_d("1500"), max_price=_d("2200"), sort_order=1,
        ),
        ShoppingItem(
            id="item-cleaning", name="Cleaning supplies", category=ItemCategory.HOUSE, phase=pre,
            priority=ItemPriority.ESSENTIAL, min_price=_d("100"), max_price=_d("200"), sort_order=2,
        ),
    )


def seed_checklist() -> tuple[ChecklistItem, ...]:
    tasks = (
        "Define the monthly budget",
        "Build an emergency fund",
        "Visit apartments",
        "Read and sign the lease",
        "Transfer utilities to my name",
        "Set up internet installation",
        "Book the moving truck",
        "Update address with bank and employer",
    )
    return tuple(
        ChecklistItem(id=f"check-{n}", description=text, sort_order=n)
        for n, text in enumerate(tasks, start=1)
    )


def seed_state() -> AppState:
    """A fresh copy of the seeded dataset."""
    return AppState(
        items=seed_items(),
        expenses=seed_expenses(),
        expense_categories=seed_categories(),
        incomes=seed_incomes(),
        checklist=seed_checklist(),
        scenarios=(),
        settings=UserSettings(),
        timeline=(),
    )
