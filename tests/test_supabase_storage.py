"""
Tests for the Supabase adapter, the live change feed parser and auth.

No network: every request goes through httpx.MockTransport, and the
change feed is a fake that hands its callback back to the test.
"""

import asyncio
import json
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

import httpx
from websockets.datastructures import Headers
from websockets.exceptions import InvalidHandshake, InvalidStatus
from websockets.http11 import Response

from home_tracker.models import (
    AppState,
    ChecklistItem,
    Collection,
    Expense,
    Income,
    ItemStatus,
    Mode,
    NewChecklistItem,
    NewShoppingItem,
    ShoppingItem,
    TimelineEventBuilder,
    UserSettings,
)
from home_tracker.services.auth import AuthError, Session, SupabaseAuth
from home_tracker.services.storage import (
    ChangeFeed,
    ConnectionError,
    LoadSource,
    LoadTimeoutError,
    LocalSidecar,
    NotFoundError,
    RealtimeChangeFeed,
    StateChange,
    StorageError,
    SupabaseRestClient,
    SupabaseStorage,
)
from home_tracker.services.storage import realtime
from home_tracker.services.storage.realtime import (
    heartbeat_message,
    join_message,
    parse_change_message,
)
from home_tracker.services.storage.supabase import (
    expense_from_row,
    expense_to_row,
    item_from_row,
    item_to_row,
    scenario_from_row,
)
from home_tracker.store import TrackerStore

BASE_URL = "https://project.supabase.co"


def _rows() -> dict[str, list[dict]]:
    return {
        "items": [
            {
                "id": 1, "name": "Fridge", "category": "kitchen", "phase": "pre-move",
                "priority": "essential", "min_price": 500, "max_price": 800,
                "saved_amount": "120.50", "status": "saving", "sort_order": 1,
            },
        ],
        "expenses": [
            {
                "id": "exp-1", "category_id": "cat-1", "name": "Rent",
                "min_value": 1200, "current_value": 1200, "kind": "fixed",
                "funding_source": "salary", "is_active": False,
                "visibility": "living", "sort_order": 1,
            },
        ],
        "expense_categories": [{"id": "cat-1", "name": "Housing", "icon": None, "sort_order": 1}],
        "income": [
            {"id": "inc-new", "mode": "living", "salary": 4000, "benefit": 500, "extras": 0},
            {"id": "inc-old", "mode": "living", "salary": 3000, "benefit": 0, "extras": 0},
            {"id": "inc-prep", "mode": "preparation", "salary": 2500, "benefit": 0, "extras": 0},
        ],
        "checklist": [
            {"id": "c1", "description": "Lease", "target_date": "2026-04-01", "is_completed": True, "sort_order": 1},
        ],
        "scenarios": [
            {
                "id": "s1", "name": "Cheap flat",
                "configuration": json.dumps({
                    "expenses": {"exp-1": {"currentValue": "1000", "active": True}},
                    "income": {"salary": "3000"},
                }),
                "resulting_balance": 2000,
                "created_at": "2026-02-01T10:00:00+00:00",
            },
        ],
    }


class FakeBackend:
    """Routes /rest/v1/<table> requests and records writes."""

    def __init__(self, rows: dict[str, list[dict]] = None):
        self.rows = rows if rows is not None else _rows()
        self.requests: list[httpx.Request] = []
        self.failures: dict[str, list[int]] = {}

    def table(self, request: httpx.Request) -> str:
        return request.url.path.rsplit("/", 1)[-1]

    def writes(self) -> list[tuple[str, str, dict]]:
        return [
            (r.method, self.table(r), dict(r.url.params))
            for r in self.requests if r.method != "GET"
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = self.table(request)
        statuses = self.failures.get(table)
        if statuses:
            return httpx.Response(statuses.pop(0), text="backend says no")
        if request.method == "GET":
            return httpx.Response(200, json=self.rows.get(table, []))
        if request.method == "DELETE":
            return httpx.Response(204)
        body = json.loads(request.content)
        return httpx.Response(201 if request.method == "POST" else 200, json=body if isinstance(body, list) else [body])


class FakeFeed(ChangeFeed):
    def __init__(self):
        self.tables = None
        self.on_change = None
        self.stopped = False

    async def start(self, tables, on_change):
        self.tables = list(tables)
        self.on_change = on_change

    async def stop(self):
        self.stopped = True


def _client(handler, **kwargs) -> SupabaseRestClient:
    return SupabaseRestClient(
        BASE_URL,
        "anon-key",
        retry_max_wait=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sidecar(tmp_path) -> LocalSidecar:
    return LocalSidecar(tmp_path / "sidecar.json")


@pytest.fixture
def storage(backend, sidecar) -> SupabaseStorage:
    return SupabaseStorage(_client(backend), sidecar)


class TestRowMappers:
    """Tests for the row <-> entity mapping."""

    def test_item_columns(self, fridge):
        """Test domain names map to the remote column names."""
        row = item_to_row(fridge.model_copy(update={"amount_saved": Decimal("120.5"), "note": "x"}))
        assert row["saved_amount"] == 120.5
        assert row["notes"] == "x"
        assert "amount_saved" not in row

    def test_purchased_item_round_trip(self, fridge):
        """Test a purchased item survives the row format."""
        purchased = ShoppingItem.model_validate({
            **fridge.model_dump(),
            "status": ItemStatus.PURCHASED,
            "actual_price": Decimal("750.25"),
            "purchase_date": datetime(2026, 2, 1, 15, 0, tzinfo=timezone.utc),
        })
        assert item_from_row(item_to_row(purchased)) == purchased

    def test_expense_columns(self):
        """Test active, type and source use their remote names."""
        expense = Expense(id="e", category_id="c", name="Gym", current_value=Decimal("99.90"), active=False)
        row = expense_to_row(expense)
        assert row["is_active"] is False
        assert row["kind"] == "variable"
        assert row["funding_source"] == "salary"
        assert expense_from_row(row) == expense

    def test_decimals_avoid_float_noise(self):
        """Test numeric columns come back as exact decimals."""
        item = item_from_row({
            "id": "i", "name": "Lamp", "category": "house", "phase": "post-move", "saved_amount": 0.1,
        })
        assert item.amount_saved == Decimal("0.1")
        assert item.status == ItemStatus.PENDING

    def test_scenario_configuration_as_json_string(self):
        """Test jsonb columns delivered as strings are decoded."""
        scenario = scenario_from_row(_rows()["scenarios"][0])
        assert scenario.configuration.expenses["exp-1"].current_value == Decimal("1000")
        assert scenario.configuration.income.salary == Decimal("3000")


class TestRemoteLoad:
    """Tests for the six-table initial load."""

    @pytest.mark.anyio
    async def test_load_builds_state(self, storage, backend):
        """Test every collection is fetched and mapped."""
        result = await storage.load()
        state = result.state
        assert result.source == LoadSource.REMOTE
        assert state.items[0].id == "1"
        assert state.items[0].amount_saved == Decimal("120.50")
        assert state.expenses[0].active is False
        assert state.expense_categories[0].icon == ""
        assert state.checklist[0].target_date == date(2026, 4, 1)
        assert state.scenarios[0].name == "Cheap flat"
        assert state.settings == UserSettings()
        assert state.timeline == ()

        tables = {backend.table(r) for r in backend.requests}
        assert tables == {"items", "expenses", "expense_categories", "income", "checklist", "scenarios"}

    @pytest.mark.anyio
    async def test_newest_income_per_mode(self, storage, backend):
        """Test the newest income row wins for each mode."""
        state = (await storage.load()).state
        assert state.income_for(Mode.LIVING).id == "inc-new"
        assert state.income_for(Mode.PREPARATION).id == "inc-prep"
        income_request = next(r for r in backend.requests if backend.table(r) == "income")
        assert income_request.url.params["order"] == "created_at.desc"

    @pytest.mark.anyio
    async def test_missing_income_defaults(self, sidecar):
        """Test a mode without an income row gets a zero record."""
        rows = _rows()
        rows["income"] = []
        state = (await SupabaseStorage(_client(FakeBackend(rows)), sidecar).load()).state
        assert state.income_for(Mode.LIVING).salary == Decimal("0")

    @pytest.mark.anyio
    async def test_failing_table_fails_load(self, storage, backend):
        """Test one failing table fails the whole load."""
        backend.failures["expenses"] = [500]
        with pytest.raises(ConnectionError):
            await storage.load()

    @pytest.mark.anyio
    async def test_client_error_is_storage_error(self, storage, backend):
        """Test 4xx responses map to StorageError."""
        backend.failures["items"] = [401]
        with pytest.raises(StorageError):
            await storage.load()

    @pytest.mark.anyio
    async def test_malformed_row_fails_load(self, sidecar):
        """Test rows missing required columns are reported."""
        rows = _rows()
        del rows["items"][0]["name"]
        with pytest.raises(StorageError, match="Malformed row in items"):
            await SupabaseStorage(_client(FakeBackend(rows)), sidecar).load()

    @pytest.mark.anyio
    async def test_load_timeout(self, sidecar):
        """Test a slow backend fails the load with LoadTimeoutError."""
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=[])

        storage = SupabaseStorage(_client(slow), sidecar, load_timeout=0.05)
        with pytest.raises(LoadTimeoutError):
            await storage.load()

    @pytest.mark.anyio
    async def test_non_json_body_is_storage_error(self, sidecar):
        """Test an HTML page from a wrong URL maps to StorageError."""
        def html(request):
            return httpx.Response(200, text="<html>not postgrest</html>")

        with pytest.raises(StorageError, match="non-JSON"):
            await SupabaseStorage(_client(html), sidecar).load()

    @pytest.mark.anyio
    async def test_redirect_loop_is_storage_error(self, sidecar):
        """Test httpx errors outside the transport family are still mapped."""
        def redirect(request):
            return httpx.Response(302, headers={"Location": str(request.url)})

        client = SupabaseRestClient(
            BASE_URL,
            "anon-key",
            transport=httpx.MockTransport(redirect),
        )
        client._client.follow_redirects = True
        with pytest.raises(StorageError):
            await client.select("items")

    @pytest.mark.anyio
    async def test_store_survives_non_json_body(self, sidecar):
        """Test a garbled remote load leaves the store loaded with an error."""
        def html(request):
            return httpx.Response(200, text="<html>not postgrest</html>")

        store = TrackerStore(SupabaseStorage(_client(html), sidecar))
        await store.load()
        assert store.is_loaded is True
        assert store.load_error is not None
        assert store.state.items == ()

    @pytest.mark.anyio
    async def test_settings_and_timeline_from_sidecar(self, storage, sidecar, fixed_now):
        """Test settings and timeline come from the local sidecar file."""
        event = TimelineEventBuilder.note("Signed", timestamp=fixed_now)
        sidecar.write(AppState(
            settings=UserSettings(target_move_date=date(2026, 5, 1), current_mode=Mode.LIVING),
            timeline=(event,),
        ))
        state = (await storage.load()).state
        assert state.settings.current_mode == Mode.LIVING
        assert state.timeline == (event,)

    def test_malformed_sidecar_defaults(self, sidecar):
        """Test an unreadable sidecar falls back to defaults."""
        sidecar.path.write_text("{broken")
        assert sidecar.read() == (UserSettings(), ())


class TestRemoteWrites:
    """Tests for replaying store changes as REST writes."""

    @pytest.mark.anyio
    async def test_persist_issues_row_writes(self, storage, backend, fridge, seeded_state):
        """Test inserts POST, updates PATCH, deletes DELETE, income upserts."""
        expense = seeded_state.find(Collection.EXPENSES, "exp-rent")
        income = Income(id="inc-1", mode=Mode.LIVING, salary=Decimal("4200"))
        await storage.persist([
            StateChange.insert(Collection.ITEMS, fridge),
            StateChange.update(Collection.EXPENSES, expense),
            StateChange.delete(Collection.CHECKLIST, "check-1"),
            StateChange.update(Collection.INCOMES, income),
        ], seeded_state)

        assert backend.writes() == [
            ("POST", "items", {}),
            ("PATCH", "expenses", {"id": "eq.exp-rent"}),
            ("DELETE", "checklist", {"id": "eq.check-1"}),
            ("POST", "income", {"on_conflict": "id"}),
        ]
        upsert = backend.requests[-1]
        assert "merge-duplicates" in upsert.headers["Prefer"]
        assert json.loads(upsert.content)["salary"] == 4200.0

    @pytest.mark.anyio
    async def test_requests_carry_auth_headers(self, sidecar, backend, fridge, seeded_state):
        """Test the session token authorizes writes."""
        storage = SupabaseStorage(_client(backend, access_token="user-token"), sidecar)
        await storage.persist([StateChange.insert(Collection.ITEMS, fridge)], seeded_state)
        request = backend.requests[0]
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer user-token"

    @pytest.mark.anyio
    async def test_settings_and_timeline_go_to_sidecar(self, storage, backend, sidecar, seeded_state):
        """Test sidecar collections never reach the REST endpoint."""
        state = seeded_state.evolve(settings=UserSettings(current_mode=Mode.LIVING))
        await storage.persist([StateChange.update(Collection.SETTINGS, state.settings)], state)
        assert backend.requests == []
        settings, timeline = sidecar.read()
        assert settings.current_mode == Mode.LIVING
        assert timeline == ()

    @pytest.mark.anyio
    async def test_transient_failures_are_retried(self, storage, backend, fridge, seeded_state):
        """Test 5xx responses are retried until success."""
        backend.failures["items"] = [503, 503]
        await storage.persist([StateChange.insert(Collection.ITEMS, fridge)], seeded_state)
        assert len(backend.requests) == 3

    @pytest.mark.anyio
    async def test_retries_give_up(self, storage, backend, fridge, seeded_state):
        """Test the last transient failure is raised after all attempts."""
        backend.failures["items"] = [503, 503, 503]
        with pytest.raises(ConnectionError):
            await storage.persist([StateChange.insert(Collection.ITEMS, fridge)], seeded_state)
        assert len(backend.requests) == 3

    @pytest.mark.anyio
    async def test_client_errors_are_not_retried(self, storage, backend, fridge, seeded_state):
        """Test 4xx responses fail at once."""
        backend.failures["items"] = [400]
        with pytest.raises(StorageError):
            await storage.persist([StateChange.insert(Collection.ITEMS, fridge)], seeded_state)
        assert len(backend.requests) == 1

    @pytest.mark.anyio
    async def test_update_of_missing_row(self, sidecar, seeded_state):
        """Test a PATCH that matches nothing raises NotFoundError."""
        def empty_patch(request):
            return httpx.Response(200, json=[])

        storage = SupabaseStorage(_client(empty_patch), sidecar)
        task = ChecklistItem(id="gone", description="x")
        with pytest.raises(NotFoundError):
            await storage.persist([StateChange.update(Collection.CHECKLIST, task)], seeded_state)

    @pytest.mark.anyio
    async def test_reset_wipes_and_reinserts(self, storage, backend, sidecar, seeded_state):
        """Test reset clears every table and inserts the given state."""
        await storage.reset(seeded_state)
        deletes = [w for w in backend.writes() if w[0] == "DELETE"]
        inserts = [w[1] for w in backend.writes() if w[0] == "POST"]
        assert len(deletes) == 6
        assert all(params == {"id": "not.is.null"} for _, _, params in deletes)
        # No scenarios in the seed
        assert inserts == ["expense_categories", "expenses", "items", "income", "checklist"]
        assert sidecar.path.exists()


class TestUnsyncedReplay:
    """Tests for re-sending changes a failed remote write left behind."""

    @pytest.mark.anyio
    async def test_later_write_replays_failed_change(self, backend, sidecar):
        """Test the indicator stays honest until the failed row is written."""
        store = TrackerStore(SupabaseStorage(_client(backend), sidecar))
        await store.load()
        backend.failures["checklist"] = [400]

        failed = await store.add_checklist_item(NewChecklistItem(description="Buy curtains"))
        assert await failed.wait() is False
        assert store.has_unsynced_changes is True
        task_id = failed.changes[0].entity_id

        backend.requests.clear()
        written = await store.add_item(NewShoppingItem(name="Kettle", category="kitchen", phase="pre-move"))
        assert await written.wait() is True
        assert store.has_unsynced_changes is False

        posts = [r for r in backend.requests if r.method == "POST"]
        assert [backend.table(r) for r in posts] == ["checklist", "items"]
        replayed = json.loads(posts[0].content)
        assert replayed["id"] == task_id
        assert posts[0].url.params["on_conflict"] == "id"

    @pytest.mark.anyio
    async def test_indicator_stays_up_while_replay_fails(self, backend, sidecar):
        """Test an unrelated successful table does not hide the backlog."""
        store = TrackerStore(SupabaseStorage(_client(backend), sidecar))
        await store.load()
        backend.failures["checklist"] = [400, 400]

        await store.add_checklist_item(NewChecklistItem(description="Buy curtains"))
        second = await store.add_item(NewShoppingItem(name="Kettle", category="kitchen", phase="pre-move"))
        assert await second.wait() is False
        assert store.has_unsynced_changes is True

        third = await store.add_note("Signed the lease")
        assert await third.wait() is True
        assert store.has_unsynced_changes is False
        assert {backend.table(r) for r in backend.requests if r.method == "POST"} >= {"checklist", "items"}

    @pytest.mark.anyio
    async def test_update_of_unsent_entity_becomes_upsert(self, backend, sidecar):
        """Test a later update of a never-written row does not PATCH it."""
        store = TrackerStore(SupabaseStorage(_client(backend), sidecar))
        await store.load()
        backend.failures["checklist"] = [400]

        added = await store.add_checklist_item(NewChecklistItem(description="Buy curtains"))
        await added.wait()
        task_id = added.changes[0].entity_id

        backend.requests.clear()
        toggled = await store.toggle_checklist_completed(task_id)
        assert await toggled.wait() is True
        assert [r.method for r in backend.requests if backend.table(r) == "checklist"] == ["POST"]
        assert json.loads(backend.requests[0].content)["is_completed"] is True


class TestLiveChanges:
    """Tests for the change feed wiring."""

    @pytest.mark.anyio
    async def test_feed_started_after_load(self, backend, sidecar):
        """Test the feed subscribes to the six tables."""
        feed = FakeFeed()
        storage = SupabaseStorage(_client(backend), sidecar, change_feed=feed)
        await storage.load()
        assert set(feed.tables) == {"items", "expenses", "expense_categories", "income", "checklist", "scenarios"}

        await storage.close()
        assert feed.stopped is True

    @pytest.mark.anyio
    async def test_change_refetches_collection(self, backend, sidecar):
        """Test a change notification delivers the whole fresh collection."""
        feed = FakeFeed()
        storage = SupabaseStorage(_client(backend), sidecar, change_feed=feed)
        received = []
        storage.subscribe(lambda collection, entities: received.append((collection, entities)))
        await storage.load()

        backend.rows["items"].append({
            "id": 2, "name": "Bed", "category": "bedroom", "phase": "pre-move", "sort_order": 1,
        })
        await feed.on_change("items")

        assert len(received) == 1
        collection, entities = received[0]
        assert collection == Collection.ITEMS
        assert [e.name for e in entities] == ["Fridge", "Bed"]

    @pytest.mark.anyio
    async def test_unknown_table_and_refetch_failure(self, backend, sidecar):
        """Test unknown tables and failed re-fetches notify nobody."""
        feed = FakeFeed()
        storage = SupabaseStorage(_client(backend), sidecar, change_feed=feed)
        received = []
        storage.subscribe(lambda collection, entities: received.append(collection))
        await storage.load()

        await feed.on_change("audit_log")
        backend.failures["expenses"] = [500]
        await feed.on_change("expenses")
        assert received == []

    @pytest.mark.anyio
    async def test_store_applies_remote_change(self, backend, sidecar):
        """Test a remote change replaces the collection in a loaded store."""
        feed = FakeFeed()
        store = TrackerStore(SupabaseStorage(_client(backend), sidecar, change_feed=feed))
        await store.load()
        backend.rows["checklist"] = []
        await feed.on_change("checklist")
        assert store.state.checklist == ()
        assert len(store.history) == 1


class TestRealtimeMessages:
    """Tests for the Realtime wire messages."""

    @pytest.mark.parametrize("raw,table", [
        (
            '{"event": "postgres_changes", "topic": "realtime:public:items",'
            ' "payload": {"data": {"table": "expenses", "type": "UPDATE"}}}',
            "expenses",
        ),
        ('{"event": "INSERT", "topic": "realtime:public:checklist", "payload": {}}', "checklist"),
        ('{"event": "DELETE", "topic": "x", "payload": {"table": "income"}}', "income"),
        ('{"event": "phx_reply", "topic": "realtime:public:items", "payload": {}}', None),
        ('{"event": "INSERT", "topic": "phoenix", "payload": {}}', None),
        ("[1, 2]", None),
        ("not json", None),
        (None, None),
    ])
    def test_parse_change_message(self, raw, table):
        """Test only change events name a table."""
        assert parse_change_message(raw) == table

    def test_join_message(self):
        """Test the channel join covers every change on one table."""
        message = join_message("items", "1")
        assert message["topic"] == "realtime:public:items"
        assert message["event"] == "phx_join"
        assert message["payload"]["config"]["postgres_changes"][0]["table"] == "items"

    def test_heartbeat_message(self):
        """Test heartbeats go to the phoenix topic."""
        assert heartbeat_message("7") == {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": "7"}


def _rejection(status: int) -> InvalidStatus:
    return InvalidStatus(Response(status, "rejected", Headers()))


class TestRealtimeConnection:
    """Tests for how the feed reacts to failed connections."""

    @pytest.fixture
    def failing_connect(self, monkeypatch):
        """Replace the websocket connect with one raising queued errors."""
        errors: list[Exception] = []
        calls: list[str] = []

        def fake_connect(url):
            calls.append(url)
            raise errors.pop(0)

        monkeypatch.setattr(realtime, "connect", fake_connect)
        return errors, calls

    async def _noop(self, table: str) -> None:
        return None

    @pytest.mark.anyio
    async def test_rejected_key_stops_feed(self, failing_connect):
        """Test a 4xx handshake rejection ends the feed without retrying."""
        errors, calls = failing_connect
        errors.append(_rejection(401))
        feed = RealtimeChangeFeed("wss://project.supabase.co/realtime", reconnect_seconds=0)
        await asyncio.wait_for(feed._run(["items"], self._noop), timeout=1)
        assert len(calls) == 1

    @pytest.mark.anyio
    async def test_handshake_failures_reconnect(self, failing_connect):
        """Test server-side and protocol handshake failures are retried."""
        errors, calls = failing_connect
        errors.extend([InvalidHandshake("bad upgrade"), _rejection(503), _rejection(403)])
        feed = RealtimeChangeFeed("wss://project.supabase.co/realtime", reconnect_seconds=0)
        await asyncio.wait_for(feed._run(["items"], self._noop), timeout=1)
        assert len(calls) == 3

    @pytest.mark.anyio
    async def test_started_feed_ends_cleanly_on_rejection(self, failing_connect):
        """Test the background task finishes instead of dying with an error."""
        errors, _ = failing_connect
        errors.append(_rejection(401))
        feed = RealtimeChangeFeed("wss://project.supabase.co/realtime", reconnect_seconds=0)
        await feed.start(["items"], self._noop)
        task = feed._task
        await asyncio.wait_for(asyncio.shield(task), timeout=1)
        assert task.exception() is None
        await feed.stop()


class TestSupabaseAuth:
    """Tests for the session provider."""

    def _auth(self, handler) -> SupabaseAuth:
        return SupabaseAuth(BASE_URL, "anon-key", transport=httpx.MockTransport(handler))

    @pytest.mark.anyio
    async def test_sign_in(self):
        """Test a successful password grant returns a session."""
        def handler(request):
            assert request.url.path == "/auth/v1/token"
            assert request.url.params["grant_type"] == "password"
            assert json.loads(request.content) == {"email": "me@home.dev", "password": "pw"}
            return httpx.Response(200, json={
                "access_token": "tok",
                "refresh_token": "ref",
                "expires_in": 3600,
                "user": {"id": "user-1", "email": "me@home.dev"},
            })

        session = await self._auth(handler).sign_in("me@home.dev", "pw")
        assert session.access_token == "tok"
        assert session.user_id == "user-1"
        assert session.is_expired() is False

    @pytest.mark.anyio
    async def test_sign_in_rejected(self):
        """Test bad credentials raise AuthError."""
        auth = self._auth(lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
        with pytest.raises(AuthError, match="Invalid email or password"):
            await auth.sign_in("me@home.dev", "wrong")

    @pytest.mark.anyio
    async def test_sign_out_tolerates_stale_token(self):
        """Test signing out an expired session is not an error."""
        auth = self._auth(lambda request: httpx.Response(401))
        await auth.sign_out(Session(access_token="stale"))

    @pytest.mark.anyio
    async def test_sign_out_server_error(self):
        """Test other failures on sign out are reported."""
        auth = self._auth(lambda request: httpx.Response(500))
        with pytest.raises(AuthError):
            await auth.sign_out(Session(access_token="tok"))

    @pytest.mark.anyio
    @pytest.mark.parametrize("status,valid", [(200, True), (401, False)])
    async def test_is_session_valid(self, status, valid):
        """Test token validity follows the user endpoint."""
        auth = self._auth(lambda request: httpx.Response(status, json={}))
        assert await auth.is_session_valid("tok") is valid

    @pytest.mark.anyio
    async def test_empty_token_is_invalid(self):
        """Test an empty token is invalid without a request."""
        def handler(request):
            raise AssertionError("no request expected")

        assert await self._auth(handler).is_session_valid("") is False

    def test_session_expiry(self):
        """Test sessions without an expiry never expire."""
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert Session(access_token="t").is_expired(now) is False
        assert Session(access_token="t", expires_at=now).is_expired(now) is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
