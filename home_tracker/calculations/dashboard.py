"""
Dashboard derivations.

build_dashboard aggregates every number the home page shows from one
state snapshot.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Optional

from home_tracker.calculations.finance import financial_summary
from home_tracker.calculations.periods import as_utc_datetime, days_remaining
from home_tracker.calculations.shopping import pre_move_savings_plan, purchase_progress
from home_tracker.models.budget import (
    ChecklistItem,
    ItemPhase,
    ItemPriority,
    ItemStatus,
    Mode,
    ShoppingItem,
    UserSettings,
)
from home_tracker.models.state import AppState
from home_tracker.models.summary import ChecklistProgress, DashboardSummary, NextSteps
from home_tracker.policy.rules import filter_for_mode

MAX_NEXT_TASKS = 3
MAX_NEXT_ESSENTIALS = 3
MAX_NEXT_SAVING = 2
RECENT_EVENTS = 5


def checklist_progress(
    checklist: Iterable[ChecklistItem],
    today: Optional[date] = None,
) -> ChecklistProgress:
    """Completion counts. Overdue = pending with a target date before today."""
    tasks = list(checklist)
    completed = sum(1 for t in tasks if t.completed)
    overdue = 0
    if today is not None:
        overdue = sum(
            1 for t in tasks
            if not t.completed and t.target_date is not None and t.target_date < today
        )
    return ChecklistProgress(
        total=len(tasks),
        completed=completed,
        overdue=overdue,
        percent_complete=completed / len(tasks) * 100 if tasks else 0.0,
    )


def next_steps(
    items: Iterable[ShoppingItem],
    checklist: Iterable[ChecklistItem],
) -> NextSteps:
    """
    What to do next:
    - the first pending checklist tasks, in order
    - essential pre-move items not yet bought
    - items already being saved for
    """
    items = sorted(items, key=lambda i: i.sort_order)
    pending_tasks = sorted(
        (t for t in checklist if not t.completed),
        key=lambda t: t.sort_order,
    )
    essentials = [
        i for i in items
        if i.phase == ItemPhase.PRE_MOVE
        and i.priority == ItemPriority.ESSENTIAL
        and i.status != ItemStatus.PURCHASED
    ]
    saving = [i for i in items if i.status == ItemStatus.SAVING and i.amount_saved > 0]

    return NextSteps(
        tasks=pending_tasks[:MAX_NEXT_TASKS],
        essential_items=essentials[:MAX_NEXT_ESSENTIALS],
        saving_items=saving[:MAX_NEXT_SAVING],
    )


def should_suggest_living_mode(settings: UserSettings, now: Optional[datetime] = None) -> bool:
    """The move date has passed but the app is still in preparation mode."""
    if settings.current_mode != Mode.PREPARATION or settings.target_move_date is None:
        return False
    return days_remaining(settings.target_move_date, now) <= 0


def build_dashboard(state: AppState, now: Optional[datetime] = None) -> DashboardSummary:
    mode = state.current_mode
    target = state.settings.target_move_date
    today = as_utc_datetime(now).date() if now is not None else date.today()

    return DashboardSummary(
        mode=mode,
        financial=financial_summary(
            state.income_for(mode),
            filter_for_mode(state.expenses, mode),
            state.expense_categories,
        ),
        pre_move=purchase_progress(state.items, ItemPhase.PRE_MOVE),
        post_move=purchase_progress(state.items, ItemPhase.POST_MOVE),
        checklist=checklist_progress(state.checklist, today),
        next_steps=next_steps(state.items, state.checklist),
        savings_plan=pre_move_savings_plan(state.items, target, now),
        days_until_move=days_remaining(target, now) if target else None,
        suggest_living_mode=should_suggest_living_mode(state.settings, now),
        recent_events=sorted(state.timeline, key=lambda e: e.timestamp, reverse=True)[:RECENT_EVENTS],
    )
