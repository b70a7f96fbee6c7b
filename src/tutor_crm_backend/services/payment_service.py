'''
Payments: recording, linking to lessons, prepayment of a period and reversal.
'''
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import PaymentTypeEnum
from ..models import payment as payment_models
from ..models.lesson import LessonRead
from ..core.lesson_state import LessonSnapshot, flags_for_state
from ..core.ledger import reverse_payment_state, validate_payment_allocation
from ..common.clock import Clock, as_utc, get_clock
from ..common.logger import log
from .student_service import StudentService


class PaymentService:
    """Service for creating, reading and deleting payments."""

    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        student_service: Annotated[StudentService, Depends(StudentService)],
        clock: Annotated[Clock, Depends(get_clock)]
    ):
        self.db = db
        self.student_service = student_service
        self.clock = clock

    # --- Private Data-Fetching Helpers ---

    async def _get_payment_internal(self, payment_id: UUID) -> db_models.Payments:
        """Fetches a payment with its linked lessons. Raises 404 if not found."""
        stmt = select(db_models.Payments).options(
            selectinload(db_models.Payments.lessons)
        ).filter(db_models.Payments.id == payment_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        payment = result.scalars().first()
        if not payment:
            log.warning(f"Payment {payment_id} not found.")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Payment not found."
            )
        return payment

    async def _lock_lessons(self, lesson_ids: list[UUID]) -> list[db_models.Lessons]:
        if not lesson_ids:
            return []
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.id.in_(lesson_ids)
        ).with_for_update()
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _linked_lesson_ids(
        self, lesson_ids: list[UUID], exclude_payment_id: Optional[UUID] = None
    ) -> set[UUID]:
        """Which of the given lessons are linked to a payment (other than `exclude_payment_id`)."""
        if not lesson_ids:
            return set()
        links = db_models.t_payment_lessons
        stmt = select(links.c.lesson_id).where(links.c.lesson_id.in_(lesson_ids))
        if exclude_payment_id is not None:
            stmt = stmt.where(links.c.payment_id != exclude_payment_id)
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def _record_payment(
        self,
        student_id: UUID,
        amount: int,
        payment_date,
        description: Optional[str],
        payment_type: PaymentTypeEnum,
        lesson_ids: list[UUID]
    ) -> db_models.Payments:
        """
        Validates the allocation, then stores the payment, its lesson links and
        the new lesson flags in the current transaction.
        """
        lessons = await self._lock_lessons(lesson_ids)
        allocation = validate_payment_allocation(
            student_id,
            amount,
            lesson_ids,
            [LessonSnapshot.from_record(l) for l in lessons],
            linked_lesson_ids=await self._linked_lesson_ids(lesson_ids),
        )
        if not allocation.accepted:
            log.warning(f"Rejected payment for student {student_id}: {allocation.reason}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"kind": allocation.kind.value, "message": allocation.reason}
            )

        for lesson in lessons:
            lesson.is_completed, lesson.is_paid = flags_for_state(allocation.resulting_states[lesson.id])

        payment = db_models.Payments(
            student_id=student_id,
            amount=amount,
            payment_date=as_utc(payment_date),
            description=description,
            payment_type=payment_type.value,
            lessons=lessons,
        )
        self.db.add(payment)
        await self.db.flush()

        await self.student_service.recalculate_balance(student_id)
        log.info(
            f"Recorded {payment_type.value} payment {payment.id} of {amount} for student {student_id}, "
            f"{len(lessons)} lesson(s) linked, {allocation.allocated} allocated."
        )
        return await self._get_payment_internal(payment.id)

    # --- Public Methods ---

    async def list_payments(self, student_id: Optional[UUID] = None) -> list[db_models.Payments]:
        stmt = select(db_models.Payments).options(
            selectinload(db_models.Payments.lessons)
        ).order_by(db_models.Payments.payment_date.desc())
        if student_id:
            stmt = stmt.filter(db_models.Payments.student_id == student_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_payment(self, payment_id: UUID) -> db_models.Payments:
        return await self._get_payment_internal(payment_id)

    async def create_payment(self, payment_data: payment_models.PaymentCreate) -> db_models.Payments:
        """Records a payment, marking every linked lesson as paid."""
        log.info(f"Creating payment of {payment_data.amount} for student {payment_data.student_id}.")
        try:
            await self.student_service.get_student_by_id(payment_data.student_id)
            return await self._record_payment(
                student_id=payment_data.student_id,
                amount=payment_data.amount,
                payment_date=payment_data.payment_date,
                description=payment_data.description,
                payment_type=PaymentTypeEnum.REGULAR,
                lesson_ids=list(dict.fromkeys(payment_data.lesson_ids)),
            )
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error creating payment: {e}", exc_info=True)
            raise

    async def create_prepayment(self, prepayment_data: payment_models.PrepaymentCreate) -> db_models.Payments:
        """
        Pays every unpaid, non-cancelled lesson of the student scheduled within
        the period with one payment covering their total cost.
        """
        log.info(
            f"Creating prepayment for student {prepayment_data.student_id} "
            f"({prepayment_data.period_start} - {prepayment_data.period_end})."
        )
        try:
            await self.student_service.get_student_by_id(prepayment_data.student_id)

            stmt = select(db_models.Lessons).filter(
                db_models.Lessons.student_id == prepayment_data.student_id,
                db_models.Lessons.start_time >= as_utc(prepayment_data.period_start),
                db_models.Lessons.start_time <= as_utc(prepayment_data.period_end),
                db_models.Lessons.is_paid.is_(False),
                db_models.Lessons.is_cancelled.is_(False),
            ).order_by(db_models.Lessons.start_time)
            result = await self.db.execute(stmt)
            lessons = list(result.scalars().all())

            if not lessons:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="There are no unpaid lessons in the selected period."
                )

            period = f"{prepayment_data.period_start:%Y-%m-%d} - {prepayment_data.period_end:%Y-%m-%d}"
            return await self._record_payment(
                student_id=prepayment_data.student_id,
                amount=sum(l.cost for l in lessons),
                payment_date=prepayment_data.payment_date or self.clock(),
                description=prepayment_data.description or f"Prepayment for {period} ({len(lessons)} lessons)",
                payment_type=PaymentTypeEnum.PREPAYMENT,
                lesson_ids=[l.id for l in lessons],
            )
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error creating prepayment: {e}", exc_info=True)
            raise

    async def delete_payment(self, payment_id: UUID) -> None:
        """Deletes a payment and returns its linked lessons to unpaid."""
        log.info(f"Deleting payment {payment_id}.")
        try:
            payment = await self._get_payment_internal(payment_id)
            student_id = payment.student_id
            lessons = await self._lock_lessons([l.id for l in payment.lessons])
            # Lessons another payment still covers stay paid.
            still_covered = await self._linked_lesson_ids([l.id for l in lessons], exclude_payment_id=payment_id)

            for lesson in lessons:
                if lesson.id in still_covered:
                    continue
                snapshot = LessonSnapshot.from_record(lesson)
                reverted = reverse_payment_state(snapshot.state)
                if reverted != snapshot.state:
                    lesson.is_completed, lesson.is_paid = flags_for_state(reverted)

            payment.lessons.clear()
            await self.db.flush()
            await self.db.delete(payment)
            await self.db.flush()

            await self.student_service.recalculate_balance(student_id)
            log.info(
                f"Deleted payment {payment_id}; {len(lessons) - len(still_covered)} lesson(s) returned to unpaid."
            )
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error deleting payment {payment_id}: {e}", exc_info=True)
            raise

    async def get_unpaid_lessons(self, student_id: UUID) -> payment_models.UnpaidLessonsRead:
        """Unpaid, non-cancelled lessons of a student, oldest first."""
        await self.student_service.get_student_by_id(student_id)
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.student_id == student_id,
            db_models.Lessons.is_paid.is_(False),
            db_models.Lessons.is_cancelled.is_(False),
        ).order_by(db_models.Lessons.start_time)
        result = await self.db.execute(stmt)
        return payment_models.UnpaidLessonsRead(
            student_id=student_id,
            lessons=[LessonRead.model_validate(l) for l in result.scalars().all()],
        )
