"""
Shared fixtures for Home Alone Tracker tests.

No test touches the network: the remote backend is exercised through
httpx.MockTransport and a fake change feed, local storage through tmp_path.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from home_tracker.data.seed import seed_state
from home_tracker.models.budget import (
    ChecklistItem,
    Expense,
    ExpenseCategory,
    Income,
    ItemCategory,
    ItemPhase,
    Mode,
    ShoppingItem,
)
from home_tracker.policy.rules import TimelinePolicy
from home_tracker.services.storage.memory import InMemoryStorage
from home_tracker.store import TrackerStore
from home_tracker.timeline.recorder import TimelineRecorder

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def seeded_state():
    return seed_state()


@pytest.fixture
def categories() -> list[ExpenseCategory]:
    return [
        ExpenseCategory(id="cat-housing", name="Housing", sort_order=1),
        ExpenseCategory(id="cat-food", name="Food", sort_order=2),
    ]


@pytest.fixture
def expenses() -> list[Expense]:
    return [
        Expense(id="exp-rent", category_id="cat-housing", name="Rent", current_value=Decimal("1200")),
        Expense(id="exp-food", category_id="cat-food", name="Groceries", current_value=Decimal("600")),
        Expense(id="exp-snacks", category_id="cat-food", name="Snacks", current_value=Decimal("200")),
        Expense(
            id="exp-gym", category_id="cat-housing", name="Gym",
            current_value=Decimal("100"), active=False,
        ),
    ]


@pytest.fixture
def income() -> Income:
    return Income(mode=Mode.PREPARATION, salary=Decimal("3000"), benefit=Decimal("500"))


@pytest.fixture
def fridge() -> ShoppingItem:
    return ShoppingItem(
        id="item-fridge",
        name="Refrigerator",
        category=ItemCategory.KITCHEN,
        phase=ItemPhase.PRE_MOVE,
        min_price=Decimal("500"),
        max_price=Decimal("800"),
    )


@pytest.fixture
def task() -> ChecklistItem:
    return ChecklistItem(id="check-lease", description="Sign the lease", sort_order=1)


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def make_store(memory_storage):
    """
    Factory for loaded stores on in-memory storage with a fixed clock.

    Usage:
        store = await make_store()
        store = await make_store(initial_state, policy=TimelinePolicy(log_mode_switch=True))
    """
    async def _make(initial=None, policy=None, history_limit=50, storage=None):
        storage = storage or memory_storage
        if initial is not None:
            storage.state = initial
        store = TrackerStore(
            storage,
            recorder=TimelineRecorder(policy=policy or TimelinePolicy(), clock=lambda: FIXED_NOW),
            clock=lambda: FIXED_NOW,
            history_limit=history_limit,
        )
        await store.load()
        return store

    return _make
