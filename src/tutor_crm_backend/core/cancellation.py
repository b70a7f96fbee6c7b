'''
Cancellation / refund policy.

A lesson cancelled with at least CANCELLATION_NOTICE_HOURS of notice is
refundable: its cost goes back to the student's credit. Later cancellations
(including lessons already running or past) keep the cost as revenue.
'''
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import CancellationOutcomeEnum
from ..common.config import settings


class CancellationDecision(BaseModel):
    refundable: bool
    amount: int
    outcome: CancellationOutcomeEnum
    hours_before_start: int

    model_config = ConfigDict(frozen=True)

    @property
    def description(self) -> str:
        if self.refundable:
            return "The lesson cost is returned to the student's prepaid credit."
        return "The lesson cost is kept as revenue."


def decide_cancellation(
    scheduled_start: datetime,
    now: datetime,
    cost: int = 0,
    notice_hours: Optional[int] = None
) -> CancellationDecision:
    """
    Decides whether cancelling a lesson starting at `scheduled_start` at time
    `now` is refundable. Exactly `notice_hours` of notice still counts.
    """
    if notice_hours is None:
        notice_hours = settings.CANCELLATION_NOTICE_HOURS

    notice = scheduled_start - now
    refundable = notice >= timedelta(hours=notice_hours)

    return CancellationDecision(
        refundable=refundable,
        amount=cost,
        outcome=CancellationOutcomeEnum.REFUND if refundable else CancellationOutcomeEnum.INCOME,
        hours_before_start=int(notice.total_seconds() // 3600),
    )
