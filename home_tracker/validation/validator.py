"""
Two-Stage Entity Validation

DESIGN DECISION: The store only accepts entities that passed validation.

STAGE 1 - SCHEMA VALIDATION (blocking):
- Types, required fields, non-negative money
- Entity invariants (purchased <=> actual price, fixed expense range)
- Done by the pydantic models themselves; apply_updates re-runs it on
  every partial update so a merge can never produce an invalid entity

STAGE 2 - SEMANTIC VALIDATION (advisory):
- Inverted price ranges
- Expense value outside its suggested range
- Pending checklist task past its target date
- Reported as issues; only "error" issues should block a UI form

IMPORTANT: Validation NEVER silently fixes issues.
"""

from collections.abc import Mapping
from datetime import date
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, Field

from home_tracker.formatting import format_currency, format_date
from home_tracker.models.budget import (
    ChecklistItem,
    DomainModel,
    Expense,
    NewExpense,
    NewShoppingItem,
    ShoppingItem,
)

EntityT = TypeVar("EntityT", bound=DomainModel)


class InvalidUpdateError(ValueError):
    """A partial update names a field that cannot be changed."""
    pass


class InvalidTransitionError(ValueError):
    """An operation is not allowed from the entity's current state."""
    pass


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'inverted_range', 'outside_range', 'overdue')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


def _field_name(model: type[BaseModel], key: str) -> Optional[str]:
    """Resolve a field name or its camelCase alias to the field name."""
    if key in model.model_fields:
        return key
    for name, info in model.model_fields.items():
        if info.alias == key:
            return name
    return None


def apply_updates(
    entity: EntityT,
    updates: Mapping[str, Any],
    immutable: tuple[str, ...] = ("id",),
) -> EntityT:
    """
    Merge a partial update into an entity and re-validate the result.

    Raises:
        InvalidUpdateError: Unknown field, or an immutable field changed
        pydantic.ValidationError: The merged entity breaks an invariant
    """
    model = type(entity)
    resolved: dict[str, Any] = {}
    for key, value in updates.items():
        name = _field_name(model, key)
        if name is None:
            raise InvalidUpdateError(f"{model.__name__} has no field '{key}'")
        if name in immutable and value != getattr(entity, name):
            raise InvalidUpdateError(f"{model.__name__}.{name} cannot be changed")
        resolved[name] = value

    return model.model_validate(entity.merged_with(resolved))


# =============================================================================
# STAGE 2 - SEMANTIC CHECKS
# =============================================================================

class EntityValidator:
    """
    Semantic checks on entities and creation drafts.

    Usage:
        issues = EntityValidator().validate(expense)
        if EntityValidator.has_errors(issues): ...
    """

    def __init__(self, today: Optional[date] = None):
        self._today = today

    def validate(self, entity: BaseModel) -> list[ValidationIssue]:
        if isinstance(entity, (ShoppingItem, NewShoppingItem)):
            return self._validate_item(entity)
        if isinstance(entity, (Expense, NewExpense)):
            return self._validate_expense(entity)
        if isinstance(entity, ChecklistItem):
            return self._validate_checklist_item(entity)
        return []

    def _validate_item(self, item) -> list[ValidationIssue]:
        issues = []
        if (
            item.min_price is not None
            and item.max_price is not None
            and item.min_price > item.max_price
        ):
            issues.append(ValidationIssue(
                field="min_price",
                issue_type="inverted_range",
                message=(
                    f"Minimum price {format_currency(item.min_price)} is above "
                    f"maximum price {format_currency(item.max_price)}"
                ),
                severity="error",
                suggested_fix="Swap the two prices",
            ))
        return issues

    def _validate_expense(self, expense) -> list[ValidationIssue]:
        issues = []
        low, high = expense.min_value, expense.max_value

        if low is not None and high is not None and low > high:
            issues.append(ValidationIssue(
                field="min_value",
                issue_type="inverted_range",
                message=(
                    f"Minimum {format_currency(low)} is above "
                    f"maximum {format_currency(high)}"
                ),
                severity="error",
                suggested_fix="Swap the two values",
            ))
            return issues

        # The range is advisory: report, never clamp
        value = expense.current_value
        if low is not None and value < low:
            issues.append(ValidationIssue(
                field="current_value",
                issue_type="outside_range",
                message=f"{expense.name} is below its suggested minimum of {format_currency(low)}",
                severity="info",
            ))
        elif high is not None and value > high:
            issues.append(ValidationIssue(
                field="current_value",
                issue_type="outside_range",
                message=f"{expense.name} is above its suggested maximum of {format_currency(high)}",
                severity="info",
            ))
        return issues

    def _validate_checklist_item(self, task: ChecklistItem) -> list[ValidationIssue]:
        today = self._today or date.today()
        if task.completed or task.target_date is None or task.target_date >= today:
            return []
        return [ValidationIssue(
            field="target_date",
            issue_type="overdue",
            message=f"'{task.description}' was due on {format_date(task.target_date)}",
            severity="warning",
            suggested_fix="Complete the task or move its target date",
        )]

    @staticmethod
    def has_errors(issues: list[ValidationIssue]) -> bool:
        return any(issue.severity == "error" for issue in issues)

    @staticmethod
    def get_user_friendly_summary(issues: list[ValidationIssue]) -> str:
        """
        One line per issue, errors first.

        This is what we show to non-technical users.
        """
        if not issues:
            return "All checks passed."

        order = {"error": 0, "warning": 1, "info": 2}
        labels = {"error": "Fix", "warning": "Check", "info": "Note"}
        lines = []
        for issue in sorted(issues, key=lambda i: order[i.severity]):
            line = f"{labels[issue.severity]}: {issue.message}"
            if issue.suggested_fix:
                line += f" ({issue.suggested_fix})"
            lines.append(line)
        return "\n".join(lines)


def validate_entity(entity: BaseModel, today: Optional[date] = None) -> list[ValidationIssue]:
    """Shortcut for EntityValidator(today).validate(entity)."""
    return EntityValidator(today=today).validate(entity)
