'''
Financial summaries across all students.
'''
from collections import defaultdict
from typing import Annotated

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import CancellationOutcomeEnum, LessonState
from ..models import finance as finance_models
from ..core.lesson_state import LessonSnapshot
from ..core.ledger import compute_balance
from ..common.logger import log
from .lesson_service import LessonService


class FinancialSummaryService:
    """
    Builds center-wide reports. Every report first runs the auto-advance
    sweep so that past lessons are counted in their final state.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        lesson_service: Annotated[LessonService, Depends(LessonService)]
    ):
        self.db = db
        self.lesson_service = lesson_service

    async def _all_snapshots(self) -> list[LessonSnapshot]:
        result = await self.db.execute(select(db_models.Lessons))
        return [LessonSnapshot.from_record(l) for l in result.scalars().all()]

    async def get_stats(self) -> finance_models.FinancialStats:
        try:
            await self.lesson_service.auto_advance()

            totals = {state: finance_models.StateTotals() for state in LessonState}
            for lesson in await self._all_snapshots():
                totals[lesson.state].count += 1
                totals[lesson.state].amount += lesson.cost

            outcome_rows = await self.db.execute(
                select(db_models.LessonCancellations.outcome, func.coalesce(func.sum(db_models.LessonCancellations.amount), 0))
                .group_by(db_models.LessonCancellations.outcome)
            )
            by_outcome = {outcome: amount for outcome, amount in outcome_rows.all()}

            total_payments = await self.db.scalar(
                select(func.coalesce(func.sum(db_models.Payments.amount), 0))
            )

            return finance_models.FinancialStats(
                scheduled=totals[LessonState.SCHEDULED],
                prepaid=totals[LessonState.PREPAID],
                completed=totals[LessonState.COMPLETED],
                debt=totals[LessonState.DEBT],
                cancelled=totals[LessonState.CANCELLED],
                refunded_amount=by_outcome.get(CancellationOutcomeEnum.REFUND.value, 0),
                cancellation_income=by_outcome.get(CancellationOutcomeEnum.INCOME.value, 0),
                total_payments=total_payments or 0,
                total_debt=totals[LessonState.DEBT].amount,
                total_prepaid=totals[LessonState.PREPAID].amount,
            )
        except Exception as e:
            log.error(f"Error building financial stats: {e}", exc_info=True)
            raise

    async def get_debts(self) -> list[finance_models.StudentDebtRead]:
        """Students with at least one lesson in debt, largest debt first."""
        try:
            await self.lesson_service.auto_advance()

            by_student = defaultdict(list)
            for lesson in await self._all_snapshots():
                by_student[lesson.student_id].append(lesson)

            result = await self.db.execute(select(db_models.Students))
            debts = []
            for student in result.scalars().all():
                summary = compute_balance(by_student.get(student.id, []))
                if summary.debt_amount <= 0:
                    continue
                debts.append(finance_models.StudentDebtRead(
                    student_id=student.id,
                    full_name=student.full_name,
                    debt_amount=summary.debt_amount,
                    debt_lessons_count=summary.debt_lessons_count,
                    balance=summary.balance,
                ))
            debts.sort(key=lambda d: d.debt_amount, reverse=True)
            log.info(f"{len(debts)} student(s) currently have debt.")
            return debts
        except Exception as e:
            log.error(f"Error building debt list: {e}", exc_info=True)
            raise
