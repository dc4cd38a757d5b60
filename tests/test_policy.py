"""
Tests for mode visibility, timeline policy, the recorder and validation.
"""

import pytest
from datetime import date
from decimal import Decimal

from pydantic import ValidationError

from home_tracker.config import AppSettings
from home_tracker.models import (
    ChecklistItem,
    Expense,
    ExpenseType,
    ExpenseVisibility,
    ItemStatus,
    Mode,
    NewShoppingItem,
    TimelineEventType,
    UserSettings,
)
from home_tracker.policy import TimelinePolicy, filter_for_mode, is_visible_in_mode
from home_tracker.timeline import TimelineRecorder
from home_tracker.validation import (
    EntityValidator,
    InvalidUpdateError,
    apply_updates,
    validate_entity,
)


def _expense(value: str = "100", visibility: ExpenseVisibility = ExpenseVisibility.BOTH) -> Expense:
    return Expense(
        id="exp-1", category_id="cat", name="Power",
        current_value=Decimal(value), visibility=visibility,
    )


class TestVisibility:
    """Tests for the mode visibility filter."""

    @pytest.mark.parametrize("visibility,mode,visible", [
        (ExpenseVisibility.BOTH, Mode.PREPARATION, True),
        (ExpenseVisibility.BOTH, Mode.LIVING, True),
        (ExpenseVisibility.LIVING, Mode.LIVING, True),
        (ExpenseVisibility.LIVING, Mode.PREPARATION, False),
        (ExpenseVisibility.PREPARATION, Mode.PREPARATION, True),
        (ExpenseVisibility.PREPARATION, Mode.LIVING, False),
    ])
    def test_is_visible_in_mode(self, visibility, mode, visible):
        """Test visibility is the mode itself or both."""
        assert is_visible_in_mode(_expense(visibility=visibility), mode) is visible

    def test_filter_for_mode_on_seed(self, seeded_state):
        """Test that preparation mode hides living-only expenses."""
        preparation = filter_for_mode(seeded_state.expenses, Mode.PREPARATION)
        living = filter_for_mode(seeded_state.expenses, Mode.LIVING)
        assert "exp-rent" not in {e.id for e in preparation}
        assert "exp-rent" in {e.id for e in living}
        assert len(living) == len(seeded_state.expenses)


class TestTimelinePolicy:
    """Tests for timeline-worthiness rules."""

    def test_budget_threshold(self):
        """Test 9% is quiet and 10% or more is logged."""
        policy = TimelinePolicy()
        assert policy.is_significant_budget_change(Decimal("100"), Decimal("109")) is False
        assert policy.is_significant_budget_change(Decimal("100"), Decimal("110")) is True
        assert policy.is_significant_budget_change(Decimal("100"), Decimal("111")) is True
        assert policy.is_significant_budget_change(Decimal("100"), Decimal("89")) is True

    def test_threshold_is_relative(self):
        """Test small expenses log on smaller absolute deltas."""
        policy = TimelinePolicy()
        assert policy.is_significant_budget_change(Decimal("50"), Decimal("55")) is True
        assert policy.is_significant_budget_change(Decimal("2000"), Decimal("2150")) is False

    def test_from_zero(self):
        """Test any change away from zero is significant, no change never is."""
        policy = TimelinePolicy()
        assert policy.is_significant_budget_change(Decimal("0"), Decimal("1")) is True
        assert policy.is_significant_budget_change(Decimal("0"), Decimal("0")) is False

    def test_custom_threshold(self):
        """Test the threshold is tunable."""
        policy = TimelinePolicy(budget_change_threshold_pct=5.0)
        assert policy.is_significant_budget_change(Decimal("100"), Decimal("105")) is True

    def test_negative_threshold_rejected(self):
        """Test a negative threshold is a configuration error."""
        with pytest.raises(ValueError):
            TimelinePolicy(budget_change_threshold_pct=-1)

    def test_checklist_only_on_completion(self):
        """Test only the false -> true transition logs."""
        policy = TimelinePolicy()
        assert policy.should_log_checklist(False, True) is True
        assert policy.should_log_checklist(True, False) is False
        assert policy.should_log_checklist(True, True) is False

    def test_date_change(self):
        """Test setting, moving and clearing the date all log."""
        policy = TimelinePolicy()
        assert policy.should_log_date_change(None, date(2026, 5, 1)) is True
        assert policy.should_log_date_change(date(2026, 5, 1), None) is True
        assert policy.should_log_date_change(date(2026, 5, 1), date(2026, 5, 1)) is False

    def test_mode_switch_silent_by_default(self):
        """Test mode switches are quiet unless enabled."""
        assert TimelinePolicy().should_log_mode_switch(Mode.PREPARATION, Mode.LIVING) is False
        enabled = TimelinePolicy(log_mode_switch=True)
        assert enabled.should_log_mode_switch(Mode.PREPARATION, Mode.LIVING) is True
        assert enabled.should_log_mode_switch(Mode.LIVING, Mode.LIVING) is False

    def test_from_settings(self):
        """Test the policy is built from app settings."""
        policy = TimelinePolicy.from_settings(
            AppSettings(budget_change_threshold_pct=20.0, log_mode_switch=True)
        )
        assert policy.budget_change_threshold_pct == Decimal("20.0")
        assert policy.log_mode_switch is True


class TestTimelineRecorder:
    """Tests for event recording with per-expense baselines."""

    def test_slow_drift_measured_against_baseline(self):
        """Test 100 -> 109 is quiet and a following 111 logs against 100."""
        recorder = TimelineRecorder()
        v100, v109, v111 = _expense("100"), _expense("109"), _expense("111")
        assert recorder.expense_updated(v100, v109) is None
        event = recorder.expense_updated(v109, v111)
        assert event is not None
        assert event.type == TimelineEventType.BUDGET_CHANGE
        assert event.metadata["old_value"] == "109"
        assert event.metadata["baseline"] == "100"
        assert event.metadata["new_value"] == "111"
        assert event.description == "From R$ 109,00 to R$ 111,00"

    def test_event_keeps_prior_value_and_baseline(self):
        """Test a drift-triggered event shows the step and what it was measured against."""
        recorder = TimelineRecorder()
        assert recorder.expense_updated(_expense("100"), _expense("109")) is None
        event = recorder.expense_updated(_expense("109"), _expense("118"))
        assert event.metadata == {
            "expense_id": "exp-1",
            "old_value": "109",
            "new_value": "118",
            "baseline": "100",
        }
        assert event.description == "From R$ 109,00 to R$ 118,00"

    def test_baseline_moves_after_logging(self):
        """Test the baseline becomes the last logged value."""
        recorder = TimelineRecorder()
        assert recorder.expense_updated(_expense("100"), _expense("120")) is not None
        # 125 is only ~4% above the new baseline of 120
        assert recorder.expense_updated(_expense("120"), _expense("125")) is None

    def test_unchanged_value_is_quiet(self):
        """Test updates that keep the value log nothing."""
        assert TimelineRecorder().expense_updated(_expense("100"), _expense("100")) is None

    def test_forget_expense_resets_baseline(self):
        """Test forgetting an expense drops its baseline."""
        recorder = TimelineRecorder()
        recorder.expense_updated(_expense("100"), _expense("105"))
        recorder.forget_expense("exp-1")
        # Measured against 105 instead of 100: 111 is ~5.7%, not 11%
        assert recorder.expense_updated(_expense("105"), _expense("111")) is None

    def test_checklist_toggled(self):
        """Test only completing a task produces an event."""
        recorder = TimelineRecorder()
        pending = ChecklistItem(id="t", description="Lease")
        done = pending.model_copy(update={"completed": True})
        assert recorder.checklist_toggled(pending, done).title == "Completed: Lease"
        assert recorder.checklist_toggled(done, pending) is None

    def test_settings_updated(self):
        """Test date changes log and mode switches follow the policy."""
        before = UserSettings()
        after = UserSettings(target_move_date=date(2026, 5, 1), current_mode=Mode.LIVING)

        quiet = TimelineRecorder().settings_updated(before, after)
        assert [e.type for e in quiet] == [TimelineEventType.DATE_CHANGE]

        loud = TimelineRecorder(TimelinePolicy(log_mode_switch=True)).settings_updated(before, after)
        assert [e.type for e in loud] == [TimelineEventType.DATE_CHANGE, TimelineEventType.NOTE]
        assert loud[1].title == "Switched to living mode"

    def test_uses_clock(self, fixed_now):
        """Test events are stamped with the injected clock."""
        event = TimelineRecorder(clock=lambda: fixed_now).note("Signed the lease")
        assert event.timestamp == fixed_now
        assert event.type == TimelineEventType.NOTE


class TestApplyUpdates:
    """Tests for validated partial updates."""

    def test_merges_fields(self, fridge):
        """Test a partial update keeps untouched fields."""
        updated = apply_updates(fridge, {"note": "Frost free"})
        assert updated.note == "Frost free"
        assert updated.max_price == fridge.max_price
        assert fridge.note is None

    def test_accepts_aliases(self, fridge):
        """Test camelCase keys are accepted."""
        assert apply_updates(fridge, {"maxPrice": "900"}).max_price == Decimal("900")

    def test_rejects_unknown_field(self, fridge):
        """Test unknown fields are refused."""
        with pytest.raises(InvalidUpdateError):
            apply_updates(fridge, {"colour": "white"})

    def test_rejects_id_change(self, fridge):
        """Test ids are immutable."""
        with pytest.raises(InvalidUpdateError):
            apply_updates(fridge, {"id": "other"})

    def test_same_id_is_allowed(self, fridge):
        """Test restating the current id is harmless."""
        assert apply_updates(fridge, {"id": fridge.id}).id == fridge.id

    def test_revalidates_invariants(self, fridge):
        """Test a merge cannot break the purchase invariant."""
        with pytest.raises(ValidationError):
            apply_updates(fridge, {"status": ItemStatus.PURCHASED})

    def test_revalidates_bounds(self, fridge):
        """Test negative amounts are refused on update."""
        with pytest.raises(ValidationError):
            apply_updates(fridge, {"amount_saved": Decimal("-1")})

    @pytest.mark.parametrize("key", ["max_value", "maxValue", "min_value"])
    def test_fixed_expense_bound_update_wins(self, key):
        """Test setting one bound of a fixed expense moves both."""
        rent = Expense(
            category_id="cat", name="Rent", type=ExpenseType.FIXED,
            min_value=Decimal("100"), current_value=Decimal("100"),
        )
        updated = apply_updates(rent, {key: Decimal("150")})
        assert (updated.min_value, updated.max_value) == (Decimal("150"), Decimal("150"))

    def test_fixed_expense_both_bounds_min_wins(self):
        """Test setting both bounds of a fixed expense keeps the minimum."""
        rent = Expense(category_id="cat", name="Rent", type="fixed", min_value=Decimal("100"))
        updated = apply_updates(rent, {"min_value": Decimal("120"), "max_value": Decimal("150")})
        assert (updated.min_value, updated.max_value) == (Decimal("120"), Decimal("120"))

    def test_switching_to_fixed_with_one_bound(self):
        """Test a bound given together with the type change applies to both."""
        power = Expense(
            category_id="cat", name="Power",
            min_value=Decimal("80"), max_value=Decimal("150"),
        )
        updated = apply_updates(power, {"type": "fixed", "max_value": Decimal("120")})
        assert (updated.min_value, updated.max_value) == (Decimal("120"), Decimal("120"))


class TestEntityValidator:
    """Tests for semantic (advisory) validation."""

    def test_inverted_price_range_is_error(self):
        """Test an inverted range is reported as an error."""
        draft = NewShoppingItem(
            name="Sofa", category="house", phase="post-move",
            min_price=Decimal("900"), max_price=Decimal("500"),
        )
        issues = validate_entity(draft)
        assert [i.issue_type for i in issues] == ["inverted_range"]
        assert EntityValidator.has_errors(issues) is True

    def test_value_outside_range_is_info(self):
        """Test values outside the advisory range are only informational."""
        expense = Expense(
            category_id="cat", name="Power",
            min_value=Decimal("80"), max_value=Decimal("150"), current_value=Decimal("200"),
        )
        issues = validate_entity(expense)
        assert [i.severity for i in issues] == ["info"]
        assert EntityValidator.has_errors(issues) is False

    def test_overdue_task_is_warning(self):
        """Test a pending task past its date is a warning."""
        task = ChecklistItem(description="Lease", target_date=date(2026, 1, 10))
        issues = EntityValidator(today=date(2026, 3, 1)).validate(task)
        assert [i.severity for i in issues] == ["warning"]

    def test_completed_task_is_never_overdue(self):
        """Test completed tasks are not flagged."""
        task = ChecklistItem(description="Lease", target_date=date(2026, 1, 10), completed=True)
        assert EntityValidator(today=date(2026, 3, 1)).validate(task) == []

    def test_summary(self):
        """Test the user-facing summary lists errors first."""
        assert EntityValidator.get_user_friendly_summary([]) == "All checks passed."
        draft = NewShoppingItem(
            name="Sofa", category="house", phase="post-move",
            min_price=Decimal("900"), max_price=Decimal("500"),
        )
        summary = EntityValidator.get_user_friendly_summary(validate_entity(draft))
        assert summary.startswith("Fix: Minimum price R$ 900,00")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
