"""
Supabase Storage Implementation

DESIGN DECISION: Supabase is the remote backend of record when its URL
and anon key are configured. We talk to it over plain HTTP (PostgREST)
with httpx rather than a client SDK:
1. Six tables, row-level CRUD and ordered reads is all we need
2. httpx transports can be swapped for tests (no network in tests)
3. Retries and error mapping stay under our control

TRADEOFFS:
- Settings and timeline have no remote table. They are kept in a local
  JSON sidecar file next to the remote data.
- Writes are replayed row by row from the store's change list; there is
  no transaction across rows (single user, last write wins).
- Live changes re-fetch the whole table instead of patching one row.

Row format: snake_case columns that do not always match the domain field
names (saved_amount vs amount_saved, is_active vs active, ...). The
mapper functions below are the ONLY place that knows the row format.
"""

import asyncio
import json
from collections.abc import Callable, Sequence
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, Union

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from home_tracker.models.budget import (
    ChecklistItem,
    DomainModel,
    Expense,
    ExpenseCategory,
    Income,
    Mode,
    Scenario,
    ScenarioConfiguration,
    ShoppingItem,
    UserSettings,
)
from home_tracker.models.state import SCHEMA_VERSION, AppState, Collection
from home_tracker.models.timeline import TimelineEvent
from home_tracker.services.storage.interface import (
    ChangeKind,
    ChangeListener,
    ConnectionError,
    LoadResult,
    LoadSource,
    LoadTimeoutError,
    NotFoundError,
    StateChange,
    StateStorageInterface,
    StorageError,
)
from home_tracker.services.storage.local_json import atomic_write_json
from home_tracker.services.storage.realtime import ChangeFeed

logger = structlog.get_logger()

DEFAULT_LOAD_TIMEOUT = 10.0


# =============================================================================
# VALUE CONVERSION
# =============================================================================

def _num(value: Optional[Decimal]) -> Optional[float]:
    """Decimal -> JSON number (PostgREST numeric columns accept floats)."""
    return float(value) if value is not None else None


def _dec(value: Any) -> Optional[Decimal]:
    """JSON number/string -> Decimal, going through str to avoid float noise."""
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# =============================================================================
# ROW MAPPERS
# =============================================================================

def item_to_row(item: ShoppingItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category.value,
        "phase": item.phase.value,
        "priority": item.priority.value,
        "min_price": _num(item.min_price),
        "max_price": _num(item.max_price),
        "actual_price": _num(item.actual_price),
        "saved_amount": _num(item.amount_saved),
        "status": item.status.value,
        "purchased_at": _iso(item.purchase_date),
        "notes": item.note,
        "sort_order": item.sort_order,
    }


def item_from_row(row: dict) -> ShoppingItem:
    return ShoppingItem(
        id=str(row["id"]),
        name=row["name"],
        category=row["category"],
        phase=row["phase"],
        priority=row.get("priority") or "medium",
        min_price=_dec(row.get("min_price")),
        max_price=_dec(row.get("max_price")),
        actual_price=_dec(row.get("actual_price")),
        amount_saved=_dec(row.get("saved_amount")) or Decimal("0"),
        status=row.get("status") or "pending",
        purchase_date=row.get("purchased_at"),
        note=row.get("notes"),
        sort_order=row.get("sort_order") or 0,
    )


def expense_to_row(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "category_id": expense.category_id,
        "name": expense.name,
        "min_value": _num(expense.min_value),
        "max_value": _num(expense.max_value),
        "current_value": _num(expense.current_value),
        "kind": expense.type.value,
        "funding_source": expense.source.value,
        "is_active": expense.active,
        "notes": expense.note,
        "sort_order": expense.sort_order,
        "visibility": expense.visibility.value,
    }


def expense_from_row(row: dict) -> Expense:
    return Expense(
        id=str(row["id"]),
        category_id=str(row["category_id"]),
        name=row["name"],
        min_value=_dec(row.get("min_value")),
        max_value=_dec(row.get("max_value")),
        current_value=_dec(row.get("current_value")) or Decimal("0"),
        type=row.get("kind") or "variable",
        source=row.get("funding_source") or "salary",
        active=bool(row.get("is_active", True)),
        note=row.get("notes"),
        sort_order=row.get("sort_order") or 0,
        visibility=row.get("visibility") or "both",
    )


def category_to_row(category: ExpenseCategory) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "icon": category.icon,
        "sort_order": category.sort_order,
    }


def category_from_row(row: dict) -> ExpenseCategory:
    return ExpenseCategory(
        id=str(row["id"]),
        name=row["name"],
        icon=row.get("icon") or "",
        sort_order=row.get("sort_order") or 0,
    )


def income_to_row(income: Income) -> dict:
    return {
        "id": income.id,
        "mode": income.mode.value,
        "salary": _num(income.salary),
        "benefit": _num(income.benefit),
        "extras": _num(income.extras),
        "reference_month": income.reference_month,
    }


def income_from_row(row: dict) -> Income:
    return Income(
        id=str(row["id"]),
        mode=row.get("mode") or Mode.PREPARATION.value,
        salary=_dec(row.get("salary")) or Decimal("0"),
        benefit=_dec(row.get("benefit")) or Decimal("0"),
        extras=_dec(row.get("extras")) or Decimal("0"),
        reference_month=row.get("reference_month"),
    )


def checklist_to_row(task: ChecklistItem) -> dict:
    return {
        "id": task.id,
        "description": task.description,
        "target_date": _iso(task.target_date),
        "is_completed": task.completed,
        "notes": task.note,
        "sort_order": task.sort_order,
    }


def checklist_from_row(row: dict) -> ChecklistItem:
    return ChecklistItem(
        id=str(row["id"]),
        description=row["description"],
        target_date=row.get("target_date"),
        completed=bool(row.get("is_completed", False)),
        note=row.get("notes"),
        sort_order=row.get("sort_order") or 0,
    )


def scenario_to_row(scenario: Scenario) -> dict:
    return {
        "id": scenario.id,
        "name": scenario.name,
        "description": scenario.description,
        # jsonb column; keeps the camelCase document shape
        "configuration": scenario.configuration.model_dump(mode="json", by_alias=True),
        "resulting_balance": _num(scenario.resulting_balance),
        "created_at": _iso(scenario.created_at),
    }


def scenario_from_row(row: dict) -> Scenario:
    configuration = row.get("configuration") or {}
    if isinstance(configuration, str):
        configuration = json.loads(configuration)
    return Scenario(
        id=str(row["id"]),
        name=row["name"],
        description=row.get("description"),
        configuration=ScenarioConfiguration.model_validate(configuration),
        resulting_balance=_dec(row.get("resulting_balance")) or Decimal("0"),
        created_at=row["created_at"],
    )


class TableSpec:
    """How one collection maps to a remote table."""

    def __init__(
        self,
        table: str,
        to_row: Callable[[Any], dict],
        from_row: Callable[[dict], DomainModel],
        order: str = "sort_order.asc",
    ):
        self.table = table
        self.to_row = to_row
        self.from_row = from_row
        self.order = order


TABLES: dict[Collection, TableSpec] = {
    Collection.ITEMS: TableSpec("items", item_to_row, item_from_row),
    Collection.EXPENSES: TableSpec("expenses", expense_to_row, expense_from_row),
    Collection.EXPENSE_CATEGORIES: TableSpec("expense_categories", category_to_row, category_from_row),
    Collection.INCOMES: TableSpec("income", income_to_row, income_from_row, order="created_at.desc"),
    Collection.CHECKLIST: TableSpec("checklist", checklist_to_row, checklist_from_row),
    Collection.SCENARIOS: TableSpec("scenarios", scenario_to_row, scenario_from_row, order="created_at.desc"),
}

TABLE_TO_COLLECTION = {spec.table: collection for collection, spec in TABLES.items()}


# =============================================================================
# REST CLIENT
# =============================================================================

class SupabaseRestClient:
    """
    Minimal PostgREST client for the Supabase REST endpoint.

    Handles authentication headers, error mapping and retry logic for
    writes. 5xx responses and transport failures are ConnectionErrors
    (retried); other HTTP errors are StorageErrors (not retried).
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_max_wait: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._retry_attempts = max(1, retry_attempts)
        self._retry_max_wait = retry_max_wait
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {access_token or anon_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict] = None,
        payload: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._client.request(
                method,
                f"/{table}",
                params=params,
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = f"{method} {table} failed with {status}: {e.response.text[:200]}"
            if status >= 500 or status == 429:
                raise ConnectionError(message) from e
            raise StorageError(message) from e
        except httpx.TransportError as e:
            raise ConnectionError(f"{method} {table} could not reach Supabase: {e}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"{method} {table} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StorageError(
                f"{method} {table} returned a non-JSON body: {response.text[:200]}"
            ) from e

    async def _write(self, method: str, table: str, **kwargs: Any) -> Any:
        """Run a write with exponential backoff on transient failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=1, min=0, max=self._retry_max_wait),
            retry=retry_if_exception_type(ConnectionError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "supabase_write_retry",
                        method=method,
                        table=table,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await self._request(method, table, **kwargs)

    async def select(self, table: str, order: str = "sort_order.asc") -> list[dict]:
        rows = await self._request("GET", table, params={"select": "*", "order": order})
        return rows or []

    async def insert(self, table: str, rows: Union[dict, list[dict]]) -> list[dict]:
        return await self._write(
            "POST", table, payload=rows, prefer="return=representation"
        ) or []

    async def upsert(self, table: str, row: dict) -> list[dict]:
        return await self._write(
            "POST",
            table,
            params={"on_conflict": "id"},
            payload=row,
            prefer="resolution=merge-duplicates,return=representation",
        ) or []

    async def update(self, table: str, row_id: str, row: dict) -> dict:
        rows = await self._write(
            "PATCH",
            table,
            params={"id": f"eq.{row_id}"},
            payload=row,
            prefer="return=representation",
        )
        if not rows:
            raise NotFoundError(f"{table} row not found: {row_id}")
        return rows[0]

    async def delete(self, table: str, row_id: str) -> None:
        await self._write("DELETE", table, params={"id": f"eq.{row_id}"})

    async def delete_all(self, table: str) -> None:
        # PostgREST refuses unfiltered deletes
        await self._write("DELETE", table, params={"id": "not.is.null"})

    async def close(self) -> None:
        await self._client.aclose()


# =============================================================================
# SIDECAR (settings + timeline)
# =============================================================================

class LocalSidecar:
    """
    Settings and timeline for the remote backend, kept in a local file.

    Missing or unreadable file -> defaults (logged, never raised).
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def read(self) -> tuple[UserSettings, tuple[TimelineEvent, ...]]:
        if not self.path.exists():
            return UserSettings(), ()
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            settings = UserSettings.model_validate(document.get("settings") or {})
            timeline = tuple(
                TimelineEvent.model_validate(event) for event in document.get("timeline") or []
            )
        except (OSError, ValueError, AttributeError) as e:
            # ValueError covers JSONDecodeError and pydantic's ValidationError
            logger.error("sidecar_malformed", path=str(self.path), error=str(e))
            return UserSettings(), ()
        return settings, timeline

    def write(self, state: AppState) -> None:
        document = {
            "schemaVersion": SCHEMA_VERSION,
            "settings": state.settings.model_dump(mode="json", by_alias=True),
            "timeline": [e.model_dump(mode="json", by_alias=True) for e in state.timeline],
        }
        try:
            atomic_write_json(self.path, document)
        except OSError as e:
            raise StorageError(f"Failed to write sidecar {self.path}: {e}") from e


# =============================================================================
# STORAGE ADAPTER
# =============================================================================

class SupabaseStorage(StateStorageInterface):
    """
    Remote-synchronized state backend.

    Load: six parallel table reads under one shared timeout; any failure
    fails the whole load.
    Persist: one REST write per changed row (income upserted).
    Live changes: the change feed names a table, the adapter re-fetches it
    and hands the full collection to every listener.
    """

    def __init__(
        self,
        client: SupabaseRestClient,
        sidecar: LocalSidecar,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
        change_feed: Optional[ChangeFeed] = None,
    ):
        self._client = client
        self._sidecar = sidecar
        self._load_timeout = load_timeout
        self._feed = change_feed
        self._listeners: list[ChangeListener] = []

    # =========================================================================
    # LOAD
    # =========================================================================

    async def load(self) -> LoadResult:
        collections = list(TABLES)
        try:
            results = await asyncio.wait_for(
                asyncio.gather(*(self.fetch_collection(c) for c in collections)),
                timeout=self._load_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("remote_load_timeout", timeout_seconds=self._load_timeout)
            raise LoadTimeoutError(
                f"Remote load exceeded {self._load_timeout} seconds"
            ) from e

        fetched = dict(zip(collections, results))
        settings, timeline = await asyncio.to_thread(self._sidecar.read)
        state = AppState(
            items=fetched[Collection.ITEMS],
            expenses=fetched[Collection.EXPENSES],
            expense_categories=fetched[Collection.EXPENSE_CATEGORIES],
            incomes={income.mode: income for income in fetched[Collection.INCOMES]},
            checklist=fetched[Collection.CHECKLIST],
            scenarios=fetched[Collection.SCENARIOS],
            settings=settings,
            timeline=timeline,
        )
        logger.info(
            "state_loaded",
            backend="supabase",
            items=len(state.items),
            expenses=len(state.expenses),
            checklist=len(state.checklist),
            scenarios=len(state.scenarios),
        )

        if self._feed is not None:
            await self._feed.start([spec.table for spec in TABLES.values()], self._on_table_changed)

        return LoadResult(state=state, source=LoadSource.REMOTE)

    async def fetch_collection(self, collection: Collection) -> tuple[DomainModel, ...]:
        """Read one table and map its rows to entities."""
        spec = TABLES[collection]
        rows = await self._client.select(spec.table, order=spec.order)
        try:
            entities = [spec.from_row(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            # ValueError covers pydantic's ValidationError and bad decimals
            raise StorageError(f"Malformed row in {spec.table}: {e}") from e

        if collection == Collection.INCOMES:
            # Rows come newest first: keep the newest record per mode
            newest: dict[Mode, Income] = {}
            for income in entities:
                newest.setdefault(income.mode, income)
            entities = list(newest.values())
        return tuple(entities)

    # =========================================================================
    # WRITE
    # =========================================================================

    async def persist(self, changes: Sequence[StateChange], state: AppState) -> None:
        sidecar_dirty = False
        for change in changes:
            if change.collection in (Collection.SETTINGS, Collection.TIMELINE):
                sidecar_dirty = True
                continue
            await self._apply(change)
        if sidecar_dirty:
            await asyncio.to_thread(self._sidecar.write, state)

    async def _apply(self, change: StateChange) -> None:
        spec = TABLES[change.collection]
        if change.kind == ChangeKind.DELETE:
            await self._client.delete(spec.table, change.entity_id)
        elif change.collection == Collection.INCOMES or change.kind == ChangeKind.UPSERT:
            await self._client.upsert(spec.table, spec.to_row(change.entity))
        elif change.kind == ChangeKind.INSERT:
            await self._client.insert(spec.table, spec.to_row(change.entity))
        else:
            await self._client.update(spec.table, change.entity_id, spec.to_row(change.entity))

    async def reset(self, state: AppState) -> None:
        """Wipe the six tables and insert state's rows (normally the seed)."""
        # Children before parents (expenses reference categories)
        for collection in (
            Collection.EXPENSES,
            Collection.EXPENSE_CATEGORIES,
            Collection.ITEMS,
            Collection.INCOMES,
            Collection.CHECKLIST,
            Collection.SCENARIOS,
        ):
            await self._client.delete_all(TABLES[collection].table)

        for collection in (
            Collection.EXPENSE_CATEGORIES,
            Collection.EXPENSES,
            Collection.ITEMS,
            Collection.INCOMES,
            Collection.CHECKLIST,
            Collection.SCENARIOS,
        ):
            spec = TABLES[collection]
            entities = (
                list(state.incomes.values())
                if collection == Collection.INCOMES
                else getattr(state, collection.value)
            )
            if entities:
                await self._client.insert(spec.table, [spec.to_row(e) for e in entities])

        await asyncio.to_thread(self._sidecar.write, state)
        logger.warning("state_reset", backend="supabase")

    # =========================================================================
    # LIVE CHANGES
    # =========================================================================

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    async def _on_table_changed(self, table: str) -> None:
        collection = TABLE_TO_COLLECTION.get(table)
        if collection is None:
            logger.debug("realtime_unknown_table", table=table)
            return
        try:
            entities = await self.fetch_collection(collection)
        except StorageError as e:
            logger.error("realtime_refetch_failed", table=table, error=str(e))
            return
        logger.info("realtime_collection_refreshed", table=table, count=len(entities))
        for listener in self._listeners:
            listener(collection, entities)

    async def close(self) -> None:
        if self._feed is not None:
            await self._feed.stop()
        await self._client.close()

