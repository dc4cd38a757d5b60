"""
Live Change Feed

Supabase Realtime speaks the Phoenix channel protocol over a websocket:
join one channel per table, send a heartbeat every 30 seconds, and
receive "postgres_changes" messages on any insert/update/delete.

The feed only reports WHICH table changed. The storage adapter decides
what to do (re-fetch the whole table).
"""

import asyncio
import itertools
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Optional

import structlog
from websockets.asyncio.client import connect
from websockets.exceptions import InvalidStatus, InvalidURI, WebSocketException

logger = structlog.get_logger()

TableChangedCallback = Callable[[str], Awaitable[None]]

HEARTBEAT_SECONDS = 30.0
RECONNECT_SECONDS = 5.0

CHANGE_EVENTS = {"postgres_changes", "INSERT", "UPDATE", "DELETE"}


class ChangeFeed(ABC):
    """Source of "table X changed" notifications."""

    @abstractmethod
    async def start(self, tables: Sequence[str], on_change: TableChangedCallback) -> None:
        """Begin delivering notifications for the given tables."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        pass


def join_message(table: str, ref: str) -> dict:
    return {
        "topic": f"realtime:public:{table}",
        "event": "phx_join",
        "payload": {
            "config": {
                "postgres_changes": [
                    {"event": "*", "schema": "public", "table": table},
                ],
            },
        },
        "ref": ref,
    }


def heartbeat_message(ref: str) -> dict:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": ref}


def parse_change_message(raw: Any) -> Optional[str]:
    """
    Return the table a Realtime message reports a change for.

    Replies, heartbeats, presence and anything unparsable yield None.
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(message, dict) or message.get("event") not in CHANGE_EVENTS:
        return None

    payload = message.get("payload") or {}
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, dict) and data.get("table"):
        return data["table"]
    if isinstance(payload, dict) and payload.get("table"):
        return payload["table"]

    topic = message.get("topic") or ""
    if topic.startswith("realtime:"):
        return topic.rsplit(":", 1)[-1]
    return None


def _log_unexpected_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("realtime_feed_crashed", error=str(error), error_type=type(error).__name__)


class RealtimeChangeFeed(ChangeFeed):
    """
    Supabase Realtime websocket client.

    Runs in a background task and reconnects after connection loss.
    Callback failures are logged and do not stop the feed.
    """

    def __init__(
        self,
        url: str,
        heartbeat_seconds: float = HEARTBEAT_SECONDS,
        reconnect_seconds: float = RECONNECT_SECONDS,
    ):
        self._url = url
        self._heartbeat_seconds = heartbeat_seconds
        self._reconnect_seconds = reconnect_seconds
        self._refs = itertools.count(1)
        self._task: Optional[asyncio.Task] = None

    async def start(self, tables: Sequence[str], on_change: TableChangedCallback) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(list(tables), on_change))
        self._task.add_done_callback(_log_unexpected_exit)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self, tables: list[str], on_change: TableChangedCallback) -> None:
        while True:
            try:
                async with connect(self._url) as websocket:
                    for table in tables:
                        await websocket.send(json.dumps(join_message(table, str(next(self._refs)))))
                    logger.info("realtime_connected", tables=tables)
                    heartbeat = asyncio.create_task(self._heartbeat(websocket))
                    try:
                        async for raw in websocket:
                            table = parse_change_message(raw)
                            if table is not None:
                                await self._notify(on_change, table)
                    finally:
                        heartbeat.cancel()
            except InvalidURI as e:
                logger.error("realtime_invalid_url", error=str(e))
                return
            except InvalidStatus as e:
                status = e.response.status_code
                if 400 <= status < 500:
                    # Wrong or expired key: retrying will not help
                    logger.error("realtime_rejected", status=status, error=str(e))
                    return
                logger.warning(
                    "realtime_disconnected",
                    status=status,
                    error=str(e),
                    retry_in_seconds=self._reconnect_seconds,
                )
            except (WebSocketException, OSError) as e:
                logger.warning(
                    "realtime_disconnected",
                    error=str(e),
                    retry_in_seconds=self._reconnect_seconds,
                )
            await asyncio.sleep(self._reconnect_seconds)

    async def _heartbeat(self, websocket) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            await websocket.send(json.dumps(heartbeat_message(str(next(self._refs)))))

    async def _notify(self, on_change: TableChangedCallback, table: str) -> None:
        try:
            await on_change(table)
        except Exception as e:
            logger.error("realtime_callback_failed", table=table, error=str(e))
