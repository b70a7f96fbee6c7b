'''
Student management and ledger recomputation.
'''
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..models import student as student_models
from ..models import finance as finance_models
from ..core.lesson_state import LessonSnapshot
from ..core.ledger import BalanceSummary, CancellationRecord, PaymentRecord, compute_balance
from ..common.logger import log


class StudentService:
    """Service for student CRUD and the cached balance on each student."""

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    # --- Private Data-Fetching Helpers ---

    async def get_student_by_id(self, student_id: UUID) -> db_models.Students:
        """Fetches a student or raises 404."""
        student = await self.db.get(db_models.Students, student_id)
        if not student:
            log.warning(f"Student {student_id} not found.")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Student not found."
            )
        return student

    async def _load_ledger_inputs(
        self, student_id: UUID
    ) -> tuple[list[LessonSnapshot], list[PaymentRecord], list[CancellationRecord]]:
        lessons_result = await self.db.execute(
            select(db_models.Lessons).filter(db_models.Lessons.student_id == student_id)
        )
        lessons = [LessonSnapshot.from_record(l) for l in lessons_result.scalars().all()]

        payments_result = await self.db.execute(
            select(db_models.Payments)
            .options(selectinload(db_models.Payments.lessons))
            .filter(db_models.Payments.student_id == student_id)
        )
        payments = [PaymentRecord.from_record(p) for p in payments_result.scalars().all()]

        cancellations_result = await self.db.execute(
            select(db_models.LessonCancellations)
            .join(db_models.Lessons)
            .filter(db_models.Lessons.student_id == student_id)
        )
        cancellations = [
            CancellationRecord.model_validate(c) for c in cancellations_result.scalars().all()
        ]
        return lessons, payments, cancellations

    # --- Ledger ---

    async def recalculate_balance(self, student_id: UUID) -> BalanceSummary:
        """
        Recomputes the student's ledger from all of their lessons and payments
        and writes the result back to the cached `balance` column.
        """
        log.info(f"Recalculating balance for student {student_id}.")
        try:
            student = await self.get_student_by_id(student_id)
            # Pending flag changes must be visible to the queries below.
            await self.db.flush()

            lessons, payments, cancellations = await self._load_ledger_inputs(student_id)
            summary = compute_balance(lessons, payments, cancellations)

            if student.balance != summary.balance:
                log.info(f"Balance of student {student_id} changed: {student.balance} -> {summary.balance}.")
            student.balance = summary.balance
            await self.db.flush()
            return summary
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error recalculating balance for student {student_id}: {e}", exc_info=True)
            raise

    async def recalculate_balances(self, student_ids: set[UUID]) -> None:
        for student_id in student_ids:
            await self.recalculate_balance(student_id)

    async def sync_all_balances(self) -> finance_models.SyncBalancesResult:
        """Recomputes the cached balance of every student."""
        log.info("Synchronizing balances of all students.")
        result = await self.db.execute(select(db_models.Students.id))
        student_ids = list(result.scalars().all())
        for student_id in student_ids:
            await self.recalculate_balance(student_id)
        return finance_models.SyncBalancesResult(updated_students=len(student_ids))

    async def get_balance_summary(self, student_id: UUID) -> finance_models.StudentBalanceRead:
        student = await self.get_student_by_id(student_id)
        summary = await self.recalculate_balance(student_id)
        return finance_models.StudentBalanceRead(
            student_id=student.id,
            full_name=student.full_name,
            balance=summary.balance,
            prepaid_amount=summary.prepaid_amount,
            debt_amount=summary.debt_amount,
            prepaid_lessons_count=summary.prepaid_lessons_count,
            debt_lessons_count=summary.debt_lessons_count,
            refunded_credit=summary.refunded_credit,
            total_paid=summary.total_paid,
            last_payment_date=summary.last_payment_date,
            payment_history=[
                finance_models.PaymentHistoryItem.model_validate(p, from_attributes=True)
                for p in summary.payment_history
            ],
        )

    # --- CRUD ---

    async def list_students(self, search: Optional[str] = None) -> list[db_models.Students]:
        stmt = select(db_models.Students).order_by(db_models.Students.full_name)
        if search:
            stmt = stmt.filter(db_models.Students.full_name.ilike(f"%{search}%"))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_student(self, student_data: student_models.StudentCreate) -> db_models.Students:
        log.info(f"Creating student '{student_data.full_name}'.")
        try:
            student = db_models.Students(**student_data.model_dump(), balance=0)
            self.db.add(student)
            await self.db.flush()
            await self.db.refresh(student)
            return student
        except Exception as e:
            log.error(f"Error creating student: {e}", exc_info=True)
            raise

    async def update_student(
        self, student_id: UUID, update_data: student_models.StudentUpdate
    ) -> db_models.Students:
        student = await self.get_student_by_id(student_id)
        for field, value in update_data.model_dump(exclude_unset=True).items():
            setattr(student, field, value)
        await self.db.flush()
        await self.db.refresh(student)
        log.info(f"Updated student {student_id}.")
        return student

    async def delete_student(self, student_id: UUID) -> None:
        """Deletes the student together with their lessons, payments and cancellations."""
        await self.get_student_by_id(student_id)
        try:
            lesson_ids = select(db_models.Lessons.id).filter(db_models.Lessons.student_id == student_id)
            payment_ids = select(db_models.Payments.id).filter(db_models.Payments.student_id == student_id)

            await self.db.execute(delete(db_models.t_payment_lessons).where(
                db_models.t_payment_lessons.c.lesson_id.in_(lesson_ids)
                | db_models.t_payment_lessons.c.payment_id.in_(payment_ids)
            ))
            await self.db.execute(delete(db_models.LessonCancellations).where(
                db_models.LessonCancellations.lesson_id.in_(lesson_ids)
            ))
            await self.db.execute(delete(db_models.Lessons).where(db_models.Lessons.student_id == student_id))
            await self.db.execute(delete(db_models.Payments).where(db_models.Payments.student_id == student_id))
            await self.db.execute(delete(db_models.Students).where(db_models.Students.id == student_id))
            log.info(f"Deleted student {student_id}.")
        except Exception as e:
            log.error(f"Error deleting student {student_id}: {e}", exc_info=True)
            raise
