'''
Student ledger: balance = prepaid lessons - lessons in debt.

Balances are always recomputed from the complete lesson / payment set of a
student; nothing here applies deltas to a stored balance.
'''
from datetime import datetime
from typing import Collection, Iterable, Optional, Any, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import LessonState, RejectionKind, PaymentTypeEnum, CancellationOutcomeEnum
from ..common.clock import as_utc
from .lesson_state import LessonSnapshot
from .transitions import LessonChange, validate_transition


class PaymentRecord(BaseModel):
    id: Optional[UUID] = None
    student_id: Optional[UUID] = None
    amount: int
    payment_date: datetime
    description: Optional[str] = None
    payment_type: PaymentTypeEnum = PaymentTypeEnum.REGULAR
    lesson_ids: tuple[UUID, ...] = ()

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_record(cls, record: Any) -> 'PaymentRecord':
        """Builds a record from a `db_models.Payments` row with `lessons` loaded."""
        return cls(
            id=record.id,
            student_id=record.student_id,
            amount=record.amount,
            payment_date=as_utc(record.payment_date),
            description=record.description,
            payment_type=record.payment_type,
            lesson_ids=tuple(lesson.id for lesson in record.lessons),
        )


class CancellationRecord(BaseModel):
    lesson_id: UUID
    outcome: CancellationOutcomeEnum
    amount: int
    was_paid: bool

    model_config = ConfigDict(frozen=True, from_attributes=True)


class BalanceSummary(BaseModel):
    balance: int
    prepaid_amount: int
    debt_amount: int
    prepaid_lessons_count: int = 0
    debt_lessons_count: int = 0
    refunded_credit: int = 0
    total_paid: int = 0
    last_payment_date: Optional[datetime] = None
    payment_history: list[PaymentRecord] = Field(default_factory=list)


def compute_balance(
    lessons: Iterable[LessonSnapshot],
    payments: Iterable[PaymentRecord] = (),
    cancellations: Iterable[CancellationRecord] = ()
) -> BalanceSummary:
    """
    Aggregates a student's lessons and payments.

    prepaid_amount: cost of lessons paid but not yet held.
    debt_amount:    cost of lessons held but not yet paid.
    Cancelled lessons never count. Refunds of paid, cancelled lessons are
    reported separately as `refunded_credit`.
    """
    prepaid_amount = 0
    debt_amount = 0
    prepaid_count = 0
    debt_count = 0
    for lesson in lessons:
        if lesson.state == LessonState.PREPAID:
            prepaid_amount += lesson.cost
            prepaid_count += 1
        elif lesson.state == LessonState.DEBT:
            debt_amount += lesson.cost
            debt_count += 1

    history = sorted(payments, key=lambda p: p.payment_date, reverse=True)

    refunded_credit = sum(
        c.amount for c in cancellations
        if c.outcome == CancellationOutcomeEnum.REFUND and c.was_paid
    )

    return BalanceSummary(
        balance=prepaid_amount - debt_amount,
        prepaid_amount=prepaid_amount,
        debt_amount=debt_amount,
        prepaid_lessons_count=prepaid_count,
        debt_lessons_count=debt_count,
        refunded_credit=refunded_credit,
        total_paid=sum(p.amount for p in history),
        last_payment_date=history[0].payment_date if history else None,
        payment_history=history,
    )


class AllocationResult(BaseModel):
    accepted: bool
    allocated: int = 0
    resulting_states: dict[UUID, LessonState] = Field(default_factory=dict)
    reason: Optional[str] = None
    kind: Optional[RejectionKind] = None

    @classmethod
    def reject(cls, reason: str) -> 'AllocationResult':
        return cls(accepted=False, reason=reason, kind=RejectionKind.INCONSISTENT_PAYMENT)


def validate_payment_allocation(
    student_id: UUID,
    amount: int,
    requested_lesson_ids: Sequence[UUID],
    lessons: Iterable[LessonSnapshot],
    linked_lesson_ids: Collection[UUID] = ()
) -> AllocationResult:
    """
    Checks that a payment of `amount` can be linked to the requested lessons:
    every lesson exists, belongs to the student, is still unpaid, not
    cancelled and not covered by another payment (`linked_lesson_ids`), and
    the summed cost fits in the amount.
    """
    if amount <= 0:
        return AllocationResult.reject("The payment amount must be positive.")

    by_id = {lesson.id: lesson for lesson in lessons}
    requested = list(dict.fromkeys(requested_lesson_ids))

    missing = [lesson_id for lesson_id in requested if lesson_id not in by_id]
    if missing:
        return AllocationResult.reject(f"Lessons not found: {', '.join(str(m) for m in missing)}.")

    resulting_states = {}
    allocated = 0
    for lesson_id in requested:
        lesson = by_id[lesson_id]
        if lesson.student_id != student_id:
            return AllocationResult.reject(f"Lesson {lesson_id} does not belong to this student.")
        if lesson.state in (LessonState.PREPAID, LessonState.COMPLETED):
            return AllocationResult.reject(f"Lesson {lesson_id} is already paid.")
        if lesson_id in linked_lesson_ids:
            return AllocationResult.reject(f"Lesson {lesson_id} is already covered by another payment.")

        result = validate_transition(lesson.state, LessonChange(paid=True))
        if not result.accepted:
            return AllocationResult.reject(f"Lesson {lesson_id}: {result.reason}")

        resulting_states[lesson_id] = result.resulting_state
        allocated += lesson.cost

    if allocated > amount:
        return AllocationResult.reject(
            f"The linked lessons cost {allocated}, which exceeds the payment amount {amount}."
        )

    return AllocationResult(accepted=True, allocated=allocated, resulting_states=resulting_states)


def reverse_payment_state(state: LessonState) -> LessonState:
    """
    The state a linked lesson returns to when its payment is deleted.
    Cancelled lessons stay cancelled.
    """
    if state == LessonState.COMPLETED:
        return LessonState.DEBT
    if state == LessonState.PREPAID:
        return LessonState.SCHEDULED
    return state
