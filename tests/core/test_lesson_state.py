import pytest
from itertools import product
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from src.tutor_crm_backend.core.lesson_state import (
    LessonFlags,
    LessonSnapshot,
    derive_state,
    flags_for_state,
    state_from_flags,
)
from src.tutor_crm_backend.database.db_enums import LessonState


class TestDeriveState:

    @pytest.mark.parametrize("completed, paid, cancelled", list(product([False, True], repeat=3)))
    def test_every_flag_combination_has_exactly_one_state(self, completed, paid, cancelled):
        state = derive_state(completed, paid, cancelled)
        assert state in set(LessonState)
        if cancelled:
            assert state == LessonState.CANCELLED

    @pytest.mark.parametrize("completed, paid, expected", [
        (False, False, LessonState.SCHEDULED),
        (False, True, LessonState.PREPAID),
        (True, True, LessonState.COMPLETED),
        (True, False, LessonState.DEBT),
    ])
    def test_non_cancelled_states(self, completed, paid, expected):
        assert derive_state(completed, paid, False) == expected
        assert state_from_flags(LessonFlags(completed, paid, False)) == expected

    def test_all_eight_inputs_cover_all_five_states(self):
        states = {derive_state(*flags) for flags in product([False, True], repeat=3)}
        assert states == set(LessonState)


class TestFlagsForState:

    @pytest.mark.parametrize("state", [
        LessonState.SCHEDULED, LessonState.PREPAID, LessonState.COMPLETED, LessonState.DEBT
    ])
    def test_flags_round_trip(self, state):
        completed, paid = flags_for_state(state)
        assert derive_state(completed, paid, False) == state

    def test_cancelled_has_no_canonical_flags(self):
        with pytest.raises(ValueError):
            flags_for_state(LessonState.CANCELLED)


class TestLessonSnapshot:

    def test_missing_end_time_means_one_hour(self):
        start = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
        snapshot = LessonSnapshot(start_time=start)
        assert snapshot.effective_end == start + timedelta(minutes=60)

    def test_explicit_end_time_is_kept(self):
        start = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
        snapshot = LessonSnapshot(start_time=start, end_time=start + timedelta(minutes=90))
        assert snapshot.effective_end == start + timedelta(minutes=90)

    def test_from_record_derives_state_and_normalizes_times(self):
        record = SimpleNamespace(
            id=uuid4(),
            student_id=uuid4(),
            start_time=datetime(2025, 3, 10, 15, 0),
            end_time=None,
            cost=1500,
            is_completed=True,
            is_paid=False,
            is_cancelled=False,
        )
        snapshot = LessonSnapshot.from_record(record)

        assert snapshot.state == LessonState.DEBT
        assert snapshot.start_time.tzinfo is not None
        assert snapshot.start_time == datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
        assert snapshot.end_time is None
        assert snapshot.cost == 1500
