"""
Durable Document Migrations

Per-version transform chain for the local JSON document. Each step takes
a document of version N and returns one of version N+1; migrate() walks
the chain up to SCHEMA_VERSION.

Only used with migration_strategy=upgrade. The default strategy reseeds
on any version mismatch.

Version history:
    1: single income record, expenses without visibility, no settings or timeline
    2: one income per mode, expense visibility, settings, timeline
"""

import copy
from collections.abc import Callable

from home_tracker.models.budget import ExpenseVisibility, Mode, new_id
from home_tracker.models.state import SCHEMA_VERSION
from home_tracker.services.storage.interface import MigrationError

Migration = Callable[[dict], dict]


def _v1_to_v2(document: dict) -> dict:
    """Split the single income into one record per mode, add the v2 collections."""
    income = document.pop("income", None) or {}
    incomes = {}
    for mode in Mode:
        record = {
            "salary": income.get("salary", "0"),
            "benefit": income.get("benefit", "0"),
            "extras": income.get("extras", "0"),
            "referenceMonth": income.get("referenceMonth"),
        }
        # The existing record keeps its id as the preparation income
        record["id"] = income.get("id") if mode == Mode.PREPARATION and income.get("id") else new_id()
        record["mode"] = mode.value
        incomes[mode.value] = record
    document["incomes"] = incomes

    for expense in document.get("expenses", []):
        expense.setdefault("visibility", ExpenseVisibility.BOTH.value)

    document.setdefault("settings", {"targetMoveDate": None, "currentMode": Mode.PREPARATION.value})
    document.setdefault("timeline", [])
    return document


MIGRATIONS: dict[int, Migration] = {
    1: _v1_to_v2,
}


def can_migrate(version: object, target: int = SCHEMA_VERSION) -> bool:
    if not isinstance(version, int) or isinstance(version, bool) or version > target:
        return False
    return all(step in MIGRATIONS for step in range(version, target))


def migrate(document: dict, target: int = SCHEMA_VERSION) -> dict:
    """
    Upgrade a stored document to the target version.

    The input is not modified.

    Raises:
        MigrationError: Unknown version, a downgrade, or a gap in the chain
    """
    version = document.get("schemaVersion")
    if not can_migrate(version, target):
        raise MigrationError(f"No migration path from version {version!r} to {target}")

    upgraded = copy.deepcopy(document)
    for step in range(version, target):
        try:
            upgraded = MIGRATIONS[step](upgraded)
        except (KeyError, TypeError, AttributeError) as e:
            raise MigrationError(f"Migration {step} -> {step + 1} failed: {e}") from e
        upgraded["schemaVersion"] = step + 1
    return upgraded
