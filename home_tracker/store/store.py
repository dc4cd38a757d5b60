"""
Tracker State Store

The single source of truth for all tracker data.

DESIGN DECISION: The store is an explicit object, constructed with its
storage backend and timeline recorder, never a module-level global.
Every mutation:
1. Computes a new immutable AppState from the current one
2. Swaps it in (the previous snapshot goes to the history)
3. Schedules the durable write as an asyncio task and returns it

The caller may await MutationResult.write, or ignore it. Writes are
issued in mutation order. A failed write is logged and raises the
unsynced indicator; the local state is NOT rolled back. Row-level
backends get the failed changes replayed ahead of the next write, and
the indicator only clears once storage has caught up.

TRADEOFFS:
- Optimistic local state means the UI can run ahead of durable storage
  until the next successful write
- Last write wins: a live change from the remote backend replaces a
  whole collection, whatever the store had locally
"""

import asyncio
from collections import deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, TypeVar, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field

from home_tracker.calculations import (
    build_dashboard,
    expenses_with_category,
    financial_summary,
    next_checklist_sort_order,
    next_expense_sort_order,
    next_item_sort_order,
    purchase_progress,
    simulate_budget,
    snapshot_expenses,
    snapshot_income,
)
from home_tracker.data.seed import seed_state
from home_tracker.models.budget import (
    ChecklistItem,
    DomainModel,
    Expense,
    Income,
    ItemPhase,
    ItemStatus,
    Mode,
    NewChecklistItem,
    NewExpense,
    NewShoppingItem,
    Scenario,
    ScenarioExpense,
    ScenarioIncome,
    UserSettings,
)
from home_tracker.models.state import AppState, Collection
from home_tracker.models.summary import (
    DashboardSummary,
    ExpenseWithCategory,
    FinancialSummary,
    PurchaseProgress,
    SimulationResult,
)
from home_tracker.models.timeline import TimelineEvent
from home_tracker.policy.rules import filter_for_mode
from home_tracker.services.storage.interface import (
    LoadSource,
    StateChange,
    StateStorageInterface,
    StorageError,
)
from home_tracker.timeline.recorder import TimelineRecorder
from home_tracker.validation.validator import (
    EntityValidator,
    InvalidTransitionError,
    apply_updates,
)

logger = structlog.get_logger()

DraftT = TypeVar("DraftT", bound=DomainModel)

DEFAULT_HISTORY_LIMIT = 50


class EntityNotFoundError(KeyError):
    """No entity with the given id exists in the collection."""
    pass


class MutationResult(BaseModel):
    """
    Outcome of one store mutation.

    write is the scheduled durable write (None when nothing needed
    persisting). Awaiting it yields True on success, False on failure.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: AppState
    changes: list[StateChange] = Field(default_factory=list)
    events: list[TimelineEvent] = Field(default_factory=list)
    write: Optional[asyncio.Task] = None

    async def wait(self) -> bool:
        """Await the durable write. True when there was nothing to write."""
        if self.write is None:
            return True
        return await self.write


def _utc_clock() -> datetime:
    return datetime.now(timezone.utc)


def _draft(model: type[DraftT], value: Union[DraftT, Mapping[str, Any]]) -> DraftT:
    if isinstance(value, model):
        return value
    return model.model_validate(dict(value))


def _replace(entities: Sequence[DomainModel], updated: DomainModel) -> tuple:
    return tuple(updated if e.id == updated.id else e for e in entities)


def _without(entities: Sequence[DomainModel], entity_id: str) -> tuple:
    return tuple(e for e in entities if e.id != entity_id)


def _with_replay(
    unsent: Sequence[StateChange],
    changes: Sequence[StateChange],
) -> list[StateChange]:
    """
    Prefix a batch with the changes a failed write left behind.

    A new change to an entity that is still unsent supersedes the old one
    and is sent as an upsert, since the row may not exist remotely yet.
    """
    pending: dict[tuple, StateChange] = {
        (c.collection, c.entity_id): c for c in unsent
    }
    for change in changes:
        key = (change.collection, change.entity_id)
        if key in pending:
            del pending[key]
            change = change.as_upsert()
        pending[key] = change
    return list(pending.values())


def _expense_snapshot(
    value: Union[Mapping[str, Any], Iterable[Expense]],
) -> dict[str, ScenarioExpense]:
    if isinstance(value, Mapping):
        return {
            expense_id: (
                entry if isinstance(entry, ScenarioExpense)
                else ScenarioExpense.model_validate(entry)
            )
            for expense_id, entry in value.items()
        }
    return snapshot_expenses(value)


def _income_snapshot(value: Union[ScenarioIncome, Income, Mapping[str, Any]]) -> ScenarioIncome:
    if isinstance(value, ScenarioIncome):
        return value
    if isinstance(value, Mapping):
        return ScenarioIncome.model_validate(dict(value))
    return snapshot_income(value)


class TrackerStore:
    """
    Holds the current AppState and applies mutations to it.

    Usage:
        store = TrackerStore(LocalJsonStorage(path))
        await store.load()
        result = await store.deposit_to_item("item-fridge", Decimal("300"))
        await result.wait()  # optional

    Read views (active_income, active_expenses, ...) are always derived
    from the current snapshot for the current mode.
    """

    def __init__(
        self,
        storage: StateStorageInterface,
        recorder: Optional[TimelineRecorder] = None,
        clock: Optional[Callable[[], datetime]] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        seed_factory: Callable[[], AppState] = seed_state,
        validator: Optional[EntityValidator] = None,
    ):
        self._storage = storage
        self._clock = clock or _utc_clock
        self._recorder = recorder or TimelineRecorder(clock=self._clock)
        self._seed_factory = seed_factory
        self._validator = validator or EntityValidator()

        self._state = AppState.empty()
        self._history: deque[AppState] = deque(maxlen=max(0, history_limit))
        self._pending: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._subscribed = False

        # Load state
        self.is_loaded = False
        self.load_error: Optional[str] = None
        self.load_source: Optional[LoadSource] = None

        # Sync indicator
        self.has_unsynced_changes = False
        self.last_sync_error: Optional[str] = None
        self._unsent: list[StateChange] = []
        self._reset_failed = False

    # =========================================================================
    # LOAD / LIFECYCLE
    # =========================================================================

    async def load(self) -> AppState:
        """
        Load the initial state from storage.

        Never raises on storage failure: the store still becomes loaded,
        with empty collections and load_error set.
        """
        if not self._subscribed:
            self._storage.subscribe(self._on_remote_change)
            self._subscribed = True

        try:
            result = await self._storage.load()
        except StorageError as e:
            logger.error("state_load_failed", error=str(e), error_type=type(e).__name__)
            self._state = AppState.empty()
            self.load_error = str(e) or type(e).__name__
            self.load_source = None
        else:
            self._state = result.state
            self.load_error = None
            self.load_source = result.source

        # Local state now mirrors storage again
        self._unsent = []
        self._reset_failed = False
        self.has_unsynced_changes = False
        self.last_sync_error = None
        self._history.clear()
        self._recorder.reset()
        self.is_loaded = True
        return self._state

    async def flush(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def close(self) -> None:
        await self.flush()
        await self._storage.close()

    # =========================================================================
    # SNAPSHOTS AND VIEWS
    # =========================================================================

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def history(self) -> tuple[AppState, ...]:
        """Previous snapshots, oldest first."""
        return tuple(self._history)

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending)

    @property
    def active_mode(self) -> Mode:
        return self._state.current_mode

    @property
    def active_income(self) -> Income:
        return self._state.income_for(self.active_mode)

    @property
    def active_expenses(self) -> list[Expense]:
        return filter_for_mode(self._state.expenses, self.active_mode)

    @property
    def expenses_with_category(self) -> list[ExpenseWithCategory]:
        return expenses_with_category(self.active_expenses, self._state.expense_categories)

    @property
    def financial_summary(self) -> FinancialSummary:
        return financial_summary(
            self.active_income,
            self.active_expenses,
            self._state.expense_categories,
        )

    def purchase_progress(self, phase: ItemPhase) -> PurchaseProgress:
        return purchase_progress(self._state.items, phase)

    def dashboard(self, now: Optional[datetime] = None) -> DashboardSummary:
        return build_dashboard(self._state, now or self._clock())

    def simulate(
        self,
        expense_overrides: Optional[Mapping[str, Any]] = None,
        income_override: Optional[ScenarioIncome] = None,
    ) -> SimulationResult:
        """What-if on the active mode's budget. Never touches the state."""
        return simulate_budget(
            self.active_income,
            self.active_expenses,
            expense_overrides=expense_overrides,
            income_override=income_override,
        )

    def get(self, collection: Collection, entity_id: str) -> DomainModel:
        entity = self._state.find(collection, entity_id)
        if entity is None:
            raise EntityNotFoundError(f"No {collection.value} entry with id '{entity_id}'")
        return entity

    # =========================================================================
    # SHOPPING ITEMS
    # =========================================================================

    async def add_item(self, draft: Union[NewShoppingItem, Mapping[str, Any]]) -> MutationResult:
        draft = _draft(NewShoppingItem, draft)
        sort_order = draft.sort_order
        if sort_order is None:
            sort_order = next_item_sort_order(self._state.items, draft.category, draft.phase)
        item = draft.build(sort_order)
        self._report_issues(item)
        return self._commit(
            self._state.evolve(items=self._state.items + (item,)),
            [StateChange.insert(Collection.ITEMS, item)],
        )

    async def update_item(self, item_id: str, updates: Mapping[str, Any]) -> MutationResult:
        before = self.get(Collection.ITEMS, item_id)
        after = apply_updates(before, updates)
        self._report_issues(after)
        return self._commit_update(Collection.ITEMS, after)

    async def delete_item(self, item_id: str) -> MutationResult:
        return self._commit_delete(Collection.ITEMS, item_id)

    async def deposit_to_item(
        self,
        item_id: str,
        amount: Union[Decimal, int, str],
    ) -> MutationResult:
        """
        Put money aside for an item.

        Forces status to SAVING whatever it was before, even for a zero
        deposit.

        Raises:
            ValueError: Negative amount
            InvalidTransitionError: The item is already purchased
        """
        amount = Decimal(str(amount))
        if amount < 0:
            raise ValueError(f"Deposit amount cannot be negative: {amount}")

        before = self.get(Collection.ITEMS, item_id)
        if before.status == ItemStatus.PURCHASED:
            raise InvalidTransitionError(f"'{before.name}' is already purchased")

        after = apply_updates(before, {
            "amount_saved": before.amount_saved + amount,
            "status": ItemStatus.SAVING,
        })
        logger.info(
            "item_deposit",
            item_id=item_id,
            amount=str(amount),
            amount_saved=str(after.amount_saved),
        )
        return self._commit_update(Collection.ITEMS, after)

    async def mark_item_purchased(
        self,
        item_id: str,
        actual_price: Union[Decimal, int, str],
    ) -> MutationResult:
        """
        Record the purchase (terminal) and append a purchase event.

        Raises:
            InvalidTransitionError: The item is already purchased
        """
        before = self.get(Collection.ITEMS, item_id)
        if before.status == ItemStatus.PURCHASED:
            raise InvalidTransitionError(f"'{before.name}' is already purchased")

        after = apply_updates(before, {
            "status": ItemStatus.PURCHASED,
            "actual_price": Decimal(str(actual_price)),
            "purchase_date": self._clock(),
        })
        event = self._recorder.item_purchased(after)
        return self._commit_update(Collection.ITEMS, after, [event])

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def add_expense(self, draft: Union[NewExpense, Mapping[str, Any]]) -> MutationResult:
        """Visibility comes from the draft, never from the current mode."""
        draft = _draft(NewExpense, draft)
        sort_order = draft.sort_order
        if sort_order is None:
            sort_order = next_expense_sort_order(self._state.expenses, draft.category_id)
        expense = draft.build(sort_order)
        self._report_issues(expense)
        return self._commit(
            self._state.evolve(expenses=self._state.expenses + (expense,)),
            [StateChange.insert(Collection.EXPENSES, expense)],
        )

    async def update_expense(self, expense_id: str, updates: Mapping[str, Any]) -> MutationResult:
        """Merge fields. A significant current_value change appends a budget-change event."""
        before = self.get(Collection.EXPENSES, expense_id)
        after = apply_updates(before, updates)
        self._report_issues(after)
        event = self._recorder.expense_updated(before, after)
        return self._commit_update(Collection.EXPENSES, after, [event] if event else [])

    async def toggle_expense_active(self, expense_id: str) -> MutationResult:
        before = self.get(Collection.EXPENSES, expense_id)
        after = apply_updates(before, {"active": not before.active})
        return self._commit_update(Collection.EXPENSES, after)

    async def delete_expense(self, expense_id: str) -> MutationResult:
        self._recorder.forget_expense(expense_id)
        return self._commit_delete(Collection.EXPENSES, expense_id)

    # =========================================================================
    # INCOME
    # =========================================================================

    async def update_income(self, updates: Mapping[str, Any]) -> MutationResult:
        """
        Merge fields into the income record of the CURRENT mode only.

        Raises:
            InvalidUpdateError: updates try to change id or mode
        """
        mode = self.active_mode
        after = apply_updates(self._state.income_for(mode), updates, immutable=("id", "mode"))
        incomes = dict(self._state.incomes)
        incomes[mode] = after
        return self._commit(
            self._state.evolve(incomes=incomes),
            [StateChange.update(Collection.INCOMES, after)],
        )

    # =========================================================================
    # CHECKLIST
    # =========================================================================

    async def add_checklist_item(
        self,
        draft: Union[NewChecklistItem, Mapping[str, Any]],
    ) -> MutationResult:
        draft = _draft(NewChecklistItem, draft)
        task = draft.build(next_checklist_sort_order(self._state.checklist))
        self._report_issues(task)
        return self._commit(
            self._state.evolve(checklist=self._state.checklist + (task,)),
            [StateChange.insert(Collection.CHECKLIST, task)],
        )

    async def update_checklist_item(self, task_id: str, updates: Mapping[str, Any]) -> MutationResult:
        before = self.get(Collection.CHECKLIST, task_id)
        after = apply_updates(before, updates)
        self._report_issues(after)
        event = self._recorder.checklist_toggled(before, after)
        return self._commit_update(Collection.CHECKLIST, after, [event] if event else [])

    async def toggle_checklist_completed(self, task_id: str) -> MutationResult:
        """Flip completion. Only completing a task appends an event."""
        before: ChecklistItem = self.get(Collection.CHECKLIST, task_id)
        after = apply_updates(before, {"completed": not before.completed})
        event = self._recorder.checklist_toggled(before, after)
        return self._commit_update(Collection.CHECKLIST, after, [event] if event else [])

    async def delete_checklist_item(self, task_id: str) -> MutationResult:
        return self._commit_delete(Collection.CHECKLIST, task_id)

    # =========================================================================
    # SCENARIOS
    # =========================================================================

    async def save_scenario(
        self,
        name: str,
        expense_snapshot: Union[Mapping[str, Any], Iterable[Expense]],
        income_snapshot: Union[ScenarioIncome, Income, Mapping[str, Any]],
        resulting_balance: Union[Decimal, int, str],
        description: Optional[str] = None,
    ) -> MutationResult:
        """
        Store an immutable scenario.

        The snapshots are captured as given: pass the simulated values,
        not the live ones. expense_snapshot is either a map of
        expense id -> {current_value, active} or the expenses themselves.
        """
        scenario = Scenario(
            name=name,
            description=description,
            configuration={
                "expenses": _expense_snapshot(expense_snapshot),
                "income": _income_snapshot(income_snapshot),
            },
            resulting_balance=Decimal(str(resulting_balance)),
            created_at=self._clock(),
        )
        logger.info("scenario_saved", scenario_id=scenario.id, name=scenario.name)
        return self._commit(
            self._state.evolve(scenarios=self._state.scenarios + (scenario,)),
            [StateChange.insert(Collection.SCENARIOS, scenario)],
        )

    async def save_simulation(
        self,
        name: str,
        result: SimulationResult,
        description: Optional[str] = None,
    ) -> MutationResult:
        return await self.save_scenario(
            name,
            result.expense_snapshot,
            result.income_snapshot,
            result.balance,
            description=description,
        )

    async def delete_scenario(self, scenario_id: str) -> MutationResult:
        return self._commit_delete(Collection.SCENARIOS, scenario_id)

    # =========================================================================
    # SETTINGS AND TIMELINE
    # =========================================================================

    async def update_settings(self, updates: Mapping[str, Any]) -> MutationResult:
        """Merge into settings. A target date change appends a date-change event."""
        before = self._state.settings
        after: UserSettings = apply_updates(before, updates, immutable=())
        events = self._recorder.settings_updated(before, after)
        return self._commit(
            self._state.evolve(settings=after),
            [StateChange.update(Collection.SETTINGS, after)],
            events,
        )

    async def switch_mode(self, mode: Mode) -> MutationResult:
        return await self.update_settings({"current_mode": mode})

    async def add_note(
        self,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> MutationResult:
        event = self._recorder.note(title, description, metadata)
        return self._commit(self._state, [], [event])

    # =========================================================================
    # RESET
    # =========================================================================

    async def reset_to_seed(self) -> MutationResult:
        """
        Discard all live and stored data and restore the seed dataset.

        Destructive and irreversible. The history is cleared as well.
        """
        state = self._seed_factory()
        logger.warning("state_reset_to_seed", previous_items=len(self._state.items))

        self._history.clear()
        self._recorder.reset()
        self._state = state
        write = self._track(self._reset_storage(state))
        return MutationResult(state=state, write=write)

    # =========================================================================
    # LIVE CHANGES
    # =========================================================================

    def replace_collection(
        self,
        collection: Collection,
        entities: Sequence[DomainModel],
    ) -> AppState:
        """
        Replace one collection wholesale, without persisting.

        Used for live changes from the remote backend (last write wins).
        """
        if collection == Collection.INCOMES:
            value: Any = {mode: Income(mode=mode) for mode in Mode}
            value.update({income.mode: income for income in entities})
        elif collection == Collection.SETTINGS:
            value = entities[0] if entities else UserSettings()
        else:
            value = tuple(entities)

        if collection == Collection.EXPENSES:
            remaining = {e.id for e in entities}
            for expense in self._state.expenses:
                if expense.id not in remaining:
                    self._recorder.forget_expense(expense.id)

        self._history.append(self._state)
        self._state = self._state.evolve(**{collection.value: value})
        logger.debug("collection_replaced", collection=collection.value, count=len(entities))
        return self._state

    def _on_remote_change(self, collection: Collection, entities: Sequence[DomainModel]) -> None:
        self.replace_collection(collection, entities)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _report_issues(self, entity: BaseModel) -> None:
        """Log semantic issues. They never block the mutation."""
        for issue in self._validator.validate(entity):
            log = getattr(logger, issue.severity)
            log(
                "validation_issue",
                entity_type=type(entity).__name__,
                entity_id=getattr(entity, "id", None),
                field=issue.field,
                issue_type=issue.issue_type,
                message=issue.message,
            )

    def _commit_update(
        self,
        collection: Collection,
        entity: DomainModel,
        events: Sequence[TimelineEvent] = (),
    ) -> MutationResult:
        entities = _replace(getattr(self._state, collection.value), entity)
        return self._commit(
            self._state.evolve(**{collection.value: entities}),
            [StateChange.update(collection, entity)],
            events,
        )

    def _commit_delete(self, collection: Collection, entity_id: str) -> MutationResult:
        """Deleting an unknown id is a no-op."""
        if self._state.find(collection, entity_id) is None:
            logger.debug("delete_unknown_id", collection=collection.value, entity_id=entity_id)
            return MutationResult(state=self._state)
        entities = _without(getattr(self._state, collection.value), entity_id)
        return self._commit(
            self._state.evolve(**{collection.value: entities}),
            [StateChange.delete(collection, entity_id)],
        )

    def _commit(
        self,
        state: AppState,
        changes: Sequence[StateChange],
        events: Sequence[TimelineEvent] = (),
    ) -> MutationResult:
        """Swap in the new snapshot, then schedule its write."""
        changes = list(changes)
        events = list(events)
        if events:
            state = state.evolve(timeline=state.timeline + tuple(events))
            changes.extend(StateChange.insert(Collection.TIMELINE, e) for e in events)

        self._history.append(self._state)
        self._state = state

        write = self._track(self._write(changes, state)) if changes else None
        return MutationResult(state=state, changes=changes, events=events, write=write)

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, changes: list[StateChange], state: AppState) -> bool:
        whole_state = self._storage.persists_whole_state
        async with self._write_lock:
            outgoing = changes if whole_state else _with_replay(self._unsent, changes)
            try:
                await self._storage.persist(outgoing, state)
            except StorageError as e:
                if not whole_state:
                    # Any change of the batch may or may not have landed
                    self._unsent = [c.as_upsert() for c in outgoing]
                self._mark_unsynced(e, collections=sorted({c.collection.value for c in outgoing}))
                return False
            if self._unsent:
                logger.info("unsent_changes_replayed", count=len(self._unsent))
            self._unsent = []
            if whole_state:
                self._reset_failed = False
            self._mark_synced()
        return True


    async def _reset_storage(self, state: AppState) -> bool:
        async with self._write_lock:
            try:
                await self._storage.reset(state)
            except StorageError as e:
                self._reset_failed = True
                self._mark_unsynced(e, operation="reset")
                return False
            self._reset_failed = False
            self._unsent = []
            self._mark_synced()
        return True

    def _mark_unsynced(self, error: StorageError, **context: Any) -> None:
        logger.error(
            "state_write_failed",
            error=str(error),
            error_type=type(error).__name__,
            **context,
        )
        self.has_unsynced_changes = True
        self.last_sync_error = str(error) or type(error).__name__

    def _mark_synced(self) -> None:
        """Clear the indicator unless storage still lags behind."""
        if self._unsent or self._reset_failed:
            return
        if self.has_unsynced_changes:
            logger.info("state_resynced")
        self.has_unsynced_changes = False
        self.last_sync_error = None

