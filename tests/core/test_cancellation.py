import pytest
from datetime import datetime, timezone

from src.tutor_crm_backend.core.cancellation import decide_cancellation
from src.tutor_crm_backend.database.db_enums import CancellationOutcomeEnum

LESSON_START = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


class TestNoticeBoundary:

    def test_exactly_five_hours_is_refundable(self):
        decision = decide_cancellation(LESSON_START, datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc), cost=1500)
        assert decision.refundable is True
        assert decision.outcome == CancellationOutcomeEnum.REFUND
        assert decision.amount == 1500
        assert decision.hours_before_start == 5

    def test_one_minute_late_is_income(self):
        decision = decide_cancellation(LESSON_START, datetime(2025, 3, 12, 10, 1, tzinfo=timezone.utc), cost=1500)
        assert decision.refundable is False
        assert decision.outcome == CancellationOutcomeEnum.INCOME
        assert decision.amount == 1500
        assert decision.hours_before_start == 4

    def test_days_ahead_is_refundable(self):
        decision = decide_cancellation(LESSON_START, datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc))
        assert decision.refundable is True
        assert decision.hours_before_start == 54

    def test_past_lesson_is_income(self):
        decision = decide_cancellation(LESSON_START, datetime(2025, 3, 12, 17, 0, tzinfo=timezone.utc))
        assert decision.refundable is False
        assert decision.hours_before_start == -2


class TestNoticeOverride:

    @pytest.mark.parametrize("notice_hours, refundable", [(2, True), (3, True), (4, False)])
    def test_custom_notice(self, notice_hours, refundable):
        now = datetime(2025, 3, 12, 12, 0, tzinfo=timezone.utc)
        decision = decide_cancellation(LESSON_START, now, cost=100, notice_hours=notice_hours)
        assert decision.refundable is refundable

    def test_description_follows_outcome(self):
        refund = decide_cancellation(LESSON_START, datetime(2025, 3, 11, 0, 0, tzinfo=timezone.utc))
        income = decide_cancellation(LESSON_START, datetime(2025, 3, 12, 14, 0, tzinfo=timezone.utc))
        assert "credit" in refund.description
        assert "revenue" in income.description
