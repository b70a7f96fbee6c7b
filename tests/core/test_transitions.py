import pytest

from src.tutor_crm_backend.core.transitions import LessonChange, completion_state, validate_transition
from src.tutor_crm_backend.database.db_enums import LessonState, RejectionKind


class TestAcceptedTransitions:

    @pytest.mark.parametrize("current, change, expected", [
        (LessonState.SCHEDULED, LessonChange(paid=True), LessonState.PREPAID),
        (LessonState.SCHEDULED, LessonChange(completed=True), LessonState.DEBT),
        (LessonState.SCHEDULED, LessonChange(completed=True, paid=True), LessonState.COMPLETED),
        (LessonState.SCHEDULED, LessonChange(cancelled=True), LessonState.CANCELLED),
        (LessonState.PREPAID, LessonChange(completed=True), LessonState.COMPLETED),
        (LessonState.PREPAID, LessonChange(paid=False), LessonState.SCHEDULED),
        (LessonState.PREPAID, LessonChange(cancelled=True), LessonState.CANCELLED),
        (LessonState.DEBT, LessonChange(paid=True), LessonState.COMPLETED),
    ])
    def test_allowed(self, current, change, expected):
        result = validate_transition(current, change)
        assert result.accepted is True
        assert result.previous_state == current
        assert result.resulting_state == expected
        assert result.reason is None

    @pytest.mark.parametrize("state", list(LessonState))
    def test_empty_change_keeps_state(self, state):
        result = validate_transition(state, LessonChange())
        assert result.accepted is True
        assert result.resulting_state == state

    def test_reasserting_current_flags_is_a_no_op(self):
        result = validate_transition(LessonState.COMPLETED, LessonChange(completed=True, paid=True))
        assert result.accepted is True
        assert result.resulting_state == LessonState.COMPLETED


class TestRejectedTransitions:

    @pytest.mark.parametrize("current, change", [
        (LessonState.COMPLETED, LessonChange(completed=False)),
        (LessonState.DEBT, LessonChange(completed=False)),
        (LessonState.COMPLETED, LessonChange(paid=False)),
        (LessonState.COMPLETED, LessonChange(cancelled=True)),
        (LessonState.DEBT, LessonChange(cancelled=True)),
        (LessonState.SCHEDULED, LessonChange(cancelled=True, paid=True)),
        (LessonState.CANCELLED, LessonChange(paid=True)),
        (LessonState.CANCELLED, LessonChange(completed=True)),
        (LessonState.CANCELLED, LessonChange(cancelled=False)),
    ])
    def test_rejected(self, current, change):
        result = validate_transition(current, change)
        assert result.accepted is False
        assert result.kind == RejectionKind.INVALID_TRANSITION
        assert result.resulting_state == current
        assert result.reason


class TestCompletionState:

    def test_paid_lesson_completes(self):
        assert completion_state(LessonState.PREPAID) == LessonState.COMPLETED

    def test_unpaid_lesson_becomes_debt(self):
        assert completion_state(LessonState.SCHEDULED) == LessonState.DEBT

    @pytest.mark.parametrize("state", [LessonState.COMPLETED, LessonState.DEBT, LessonState.CANCELLED])
    def test_other_states_unchanged(self, state):
        assert completion_state(state) == state
