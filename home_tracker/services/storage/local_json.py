"""
Local JSON File Storage

DESIGN DECISION: The whole state lives in ONE JSON document.
Every mutation rewrites the entire document (no incremental diff):
the data is small and single-user, and a full rewrite can never leave
the file half-updated thanks to the atomic temp-file + rename write.

TRADEOFFS:
- Version mismatch defaults to a full reseed (migration_strategy=reseed).
  A schema bump therefore discards user data unless the upgrade
  strategy is configured and a migration path exists.
- An unreadable or invalid document is treated as absent (seed),
  never partially trusted.

File layout:
    {
      "schemaVersion": 2,
      "items": [...], "expenses": [...], "expenseCategories": [...],
      "incomes": {"preparation": {...}, "living": {...}},
      "checklist": [...], "scenarios": [...],
      "settings": {...}, "timeline": [...]
    }
"""

import asyncio
import json
import os
import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from home_tracker.config.settings import MigrationStrategy
from home_tracker.data.seed import seed_state
from home_tracker.models.state import SCHEMA_VERSION, AppState
from home_tracker.services.storage.interface import (
    ChangeListener,
    LoadResult,
    LoadSource,
    MigrationError,
    StateChange,
    StateStorageInterface,
    StorageError,
)
from home_tracker.services.storage.migrations import can_migrate, migrate

logger = structlog.get_logger()


def atomic_write_json(path: Path, document: dict) -> None:
    """
    Write a JSON document atomically.

    The content goes to a temp file in the same directory, is fsynced,
    then renamed over the target. The temp file is removed on failure.

    Raises:
        OSError: If writing or renaming fails
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_name: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            suffix=".tmp",
            prefix=path.name + "-",
            dir=path.parent,
            delete=False,
        ) as tf:
            temp_name = tf.name
            json.dump(document, tf, ensure_ascii=False, indent=2)
            tf.flush()
            os.fsync(tf.fileno())
        os.replace(temp_name, path)
        temp_name = None
    finally:
        if temp_name is not None:
            try:
                os.unlink(temp_name)
            except OSError:
                logger.warning("temp_file_cleanup_failed", path=temp_name)


class LocalJsonStorage(StateStorageInterface):
    """
    State persisted to a single JSON file on disk.

    File I/O runs in a worker thread so the event loop is never blocked.
    """

    persists_whole_state = True

    def __init__(
        self,
        path: Union[str, Path],
        migration_strategy: MigrationStrategy = MigrationStrategy.RESEED,
        seed_factory: Callable[[], AppState] = seed_state,
    ):
        self.path = Path(path).expanduser()
        self.migration_strategy = migration_strategy
        self._seed_factory = seed_factory

    # =========================================================================
    # LOAD
    # =========================================================================

    async def load(self) -> LoadResult:
        result = await asyncio.to_thread(self._load_sync)
        if result.source != LoadSource.STORED:
            # Bring the file in line with what was loaded (seed or upgraded data)
            await self._write_or_log(result.state)
        logger.info(
            "state_loaded",
            backend="local",
            path=str(self.path),
            source=result.source.value,
            stored_version=result.stored_version,
        )
        return result

    def _load_sync(self) -> LoadResult:
        if not self.path.exists():
            return LoadResult(state=self._seed_factory(), source=LoadSource.SEED)

        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error("state_blob_malformed", path=str(self.path), error=str(e))
            return LoadResult(state=self._seed_factory(), source=LoadSource.SEED)

        if not isinstance(document, dict):
            logger.error("state_blob_malformed", path=str(self.path), error="not a JSON object")
            return LoadResult(state=self._seed_factory(), source=LoadSource.SEED)

        version = document.get("schemaVersion")
        source = LoadSource.STORED
        if version != SCHEMA_VERSION:
            if self.migration_strategy == MigrationStrategy.UPGRADE and can_migrate(version):
                try:
                    document = migrate(document)
                    source = LoadSource.MIGRATED
                except MigrationError as e:
                    logger.error("state_migration_failed", stored_version=version, error=str(e))
                    return self._reseed(version)
            else:
                return self._reseed(version)

        try:
            state = AppState.from_document(document)
        except ValidationError as e:
            logger.error(
                "state_blob_malformed",
                path=str(self.path),
                error_count=e.error_count(),
                error=str(e),
            )
            return LoadResult(state=self._seed_factory(), source=LoadSource.SEED)

        return LoadResult(
            state=state,
            source=source,
            stored_version=version if isinstance(version, int) else None,
        )

    def _reseed(self, version: object) -> LoadResult:
        logger.warning(
            "state_reseeded_on_version_mismatch",
            stored_version=version,
            expected_version=SCHEMA_VERSION,
            strategy=self.migration_strategy.value,
        )
        return LoadResult(
            state=self._seed_factory(),
            source=LoadSource.RESEEDED,
            stored_version=version if isinstance(version, int) else None,
        )

    # =========================================================================
    # WRITE
    # =========================================================================

    async def persist(self, changes: Sequence[StateChange], state: AppState) -> None:
        """Rewrite the whole document. The change list is not needed here."""
        await self._write(state)

    async def _write(self, state: AppState) -> None:
        try:
            await asyncio.to_thread(atomic_write_json, self.path, state.to_document())
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

    async def _write_or_log(self, state: AppState) -> None:
        try:
            await self._write(state)
        except StorageError as e:
            logger.error("state_write_failed", backend="local", error=str(e))

    async def reset(self, state: AppState) -> None:
        """Delete the file. The next mutation writes a fresh one."""
        try:
            await asyncio.to_thread(self.path.unlink, missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {self.path}: {e}") from e
        logger.warning("state_reset", backend="local", path=str(self.path))

    def subscribe(self, listener: ChangeListener) -> None:
        """A local file has no live feed; the listener is never called."""
        return None
