'''
Lesson lifecycle: creation (single and recurring), status changes,
cancellation under the notice policy, and the auto-advance sweep.
'''
from datetime import datetime, timedelta
from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import and_, delete, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database.engine import get_db_session
from ..database import models as db_models
from ..database.db_enums import LessonState, RejectionKind
from ..models import lesson as lesson_models
from ..core.lesson_state import LessonSnapshot, flags_for_state
from ..core.transitions import LessonChange, validate_transition
from ..core.cancellation import decide_cancellation
from ..core.auto_advance import StatusChange, sweep
from ..core.conflicts import (
    ConflictReport,
    RecurrencePattern,
    expand_recurrence,
    find_batch_conflicts,
    find_conflicts,
)
from ..common.clock import Clock, as_utc, get_clock
from ..common.config import settings
from ..common.logger import log
from .student_service import StudentService

# Key of the PostgreSQL advisory lock serializing conflict check + insert.
SCHEDULE_LOCK_KEY = 7_240_001


def _conflict_detail(report: ConflictReport) -> dict[str, Any]:
    return {
        "kind": report.kind.value,
        "message": report.message,
        "conflicts": [
            {
                "id": str(lesson.id),
                "student_id": str(lesson.student_id),
                "start_time": lesson.start_time.isoformat(),
                "end_time": lesson.effective_end.isoformat(),
            }
            for lesson in report.conflicting_lessons
        ],
    }


class LessonService:
    """Service for creating, reading and changing lessons."""

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

    async def _get_lesson_internal(self, lesson_id: UUID, for_update: bool = False) -> db_models.Lessons:
        """
        Fetches a lesson by ID. With `for_update` the row is locked until the
        end of the transaction. Raises 404 if not found.
        """
        stmt = select(db_models.Lessons).options(
            selectinload(db_models.Lessons.cancellation)
        ).filter(db_models.Lessons.id == lesson_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        lesson = result.scalars().first()
        if not lesson:
            log.warning(f"Lesson {lesson_id} not found.")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Lesson not found."
            )
        return lesson

    async def _has_payment_links(self, lesson_id: UUID) -> bool:
        links = db_models.t_payment_lessons
        result = await self.db.execute(
            select(links.c.payment_id).where(links.c.lesson_id == lesson_id).limit(1)
        )
        return result.first() is not None

    async def _lock_schedule(self) -> None:
        """
        Serializes conflict detection and lesson creation across transactions.
        Only PostgreSQL needs it; SQLite serializes writers by itself.
        """
        if self.db.get_bind().dialect.name == "postgresql":
            await self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": SCHEDULE_LOCK_KEY})

    async def _load_active_snapshots(self, window_start: datetime, window_end: datetime) -> list[LessonSnapshot]:
        """Non-cancelled lessons that may overlap [window_start, window_end)."""
        default_length = timedelta(minutes=settings.DEFAULT_LESSON_DURATION_MINUTES)
        stmt = select(db_models.Lessons).filter(
            db_models.Lessons.is_cancelled.is_(False),
            db_models.Lessons.start_time < window_end,
            or_(
                db_models.Lessons.end_time > window_start,
                and_(
                    db_models.Lessons.end_time.is_(None),
                    db_models.Lessons.start_time > window_start - default_length
                )
            )
        )
        result = await self.db.execute(stmt)
        return [LessonSnapshot.from_record(lesson) for lesson in result.scalars().all()]

    async def _check_conflicts(self, candidate: LessonSnapshot) -> None:
        """Raises 409 when `candidate` overlaps an existing non-cancelled lesson."""
        existing = await self._load_active_snapshots(candidate.start_time, candidate.effective_end)
        report = find_conflicts(candidate, existing)
        if report.has_conflict:
            log.warning(f"Schedule conflict for lesson at {candidate.start_time}: {report.message}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=_conflict_detail(report)
            )

    # --- Public Read Methods ---

    async def get_lesson(self, lesson_id: UUID) -> db_models.Lessons:
        return await self._get_lesson_internal(lesson_id)

    async def list_lessons(
        self,
        student_id: Optional[UUID] = None,
        state: Optional[LessonState] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None
    ) -> list[db_models.Lessons]:
        """Lists lessons ordered by start time, optionally filtered."""
        stmt = select(db_models.Lessons).order_by(db_models.Lessons.start_time)
        if student_id:
            stmt = stmt.filter(db_models.Lessons.student_id == student_id)
        if date_from:
            stmt = stmt.filter(db_models.Lessons.start_time >= as_utc(date_from))
        if date_to:
            stmt = stmt.filter(db_models.Lessons.start_time <= as_utc(date_to))
        if state == LessonState.CANCELLED:
            stmt = stmt.filter(db_models.Lessons.is_cancelled.is_(True))
        elif state is not None:
            completed, paid = flags_for_state(state)
            stmt = stmt.filter(
                db_models.Lessons.is_cancelled.is_(False),
                db_models.Lessons.is_completed.is_(completed),
                db_models.Lessons.is_paid.is_(paid),
            )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- Creation ---

    async def create_lesson(self, lesson_data: lesson_models.LessonCreate) -> db_models.Lessons:
        """Creates a single lesson after checking it against the schedule."""
        log.info(f"Creating lesson for student {lesson_data.student_id} at {lesson_data.start_time}.")
        try:
            await self.student_service.get_student_by_id(lesson_data.student_id)

            start_time = as_utc(lesson_data.start_time)
            end_time = as_utc(lesson_data.end_time) if lesson_data.end_time else None
            candidate = LessonSnapshot(
                student_id=lesson_data.student_id,
                start_time=start_time,
                end_time=end_time,
                cost=lesson_data.cost,
                state=LessonState.PREPAID if lesson_data.is_paid else LessonState.SCHEDULED,
            )

            await self._lock_schedule()
            await self._check_conflicts(candidate)

            lesson = db_models.Lessons(
                student_id=lesson_data.student_id,
                start_time=start_time,
                end_time=end_time,
                cost=lesson_data.cost,
                is_completed=False,
                is_paid=lesson_data.is_paid,
                is_cancelled=False,
                notes=lesson_data.notes,
                lesson_type=lesson_data.lesson_type.value,
            )
            self.db.add(lesson)
            await self.db.flush()
            await self.db.refresh(lesson)

            await self.student_service.recalculate_balance(lesson.student_id)
            log.info(f"Created lesson {lesson.id}.")
            return lesson
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error creating lesson: {e}", exc_info=True)
            raise

    async def create_bulk_lessons(
        self, bulk_data: lesson_models.BulkLessonCreate
    ) -> lesson_models.BulkLessonResult:
        """
        Expands a recurrence pattern into lessons for every student and persists
        the ones that do not conflict. With `abort_on_conflict` any conflict
        rejects the whole batch.
        """
        log.info(
            f"Bulk creating lessons for {len(bulk_data.student_ids)} student(s) "
            f"from {bulk_data.start_date} to {bulk_data.end_date}."
        )
        try:
            student_ids = list(dict.fromkeys(bulk_data.student_ids))
            for student_id in student_ids:
                await self.student_service.get_student_by_id(student_id)

            try:
                pattern = RecurrencePattern(
                    weekdays=frozenset(bulk_data.weekdays),
                    time_of_day=bulk_data.time_of_day,
                    duration_minutes=bulk_data.duration_minutes,
                    start_date=bulk_data.start_date,
                    end_date=bulk_data.end_date,
                    timezone=bulk_data.timezone or settings.CENTER_TIMEZONE,
                )
            except ValueError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

            drafts = expand_recurrence(
                pattern, student_ids, bulk_data.cost,
                is_paid=bulk_data.is_paid, notes=bulk_data.notes
            )
            if not drafts:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No lessons fall on the selected weekdays within the date range."
                )

            await self._lock_schedule()
            existing = await self._load_active_snapshots(
                min(d.start_time for d in drafts),
                max(d.end_time for d in drafts)
            )
            report = find_batch_conflicts(drafts, existing)

            conflicts = [
                lesson_models.BulkConflictRead(
                    student_id=c.draft.student_id,
                    start_time=c.draft.start_time,
                    end_time=c.draft.end_time,
                    reason=(
                        f"Overlaps {len(c.conflicting_lessons)} existing and "
                        f"{len(c.conflicting_drafts)} generated lesson(s)."
                    ),
                )
                for c in report.conflicts
            ]

            if report.has_conflict and (bulk_data.abort_on_conflict or not report.accepted):
                log.warning(f"Bulk creation rejected: {len(conflicts)} of {len(drafts)} lessons conflict.")
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail={
                        "kind": "schedule_conflict",
                        "message": f"{len(conflicts)} of {len(drafts)} generated lessons conflict with the schedule.",
                        "conflicts": [c.model_dump(mode="json") for c in conflicts],
                    }
                )

            created = [
                db_models.Lessons(
                    student_id=draft.student_id,
                    start_time=draft.start_time,
                    end_time=draft.end_time,
                    cost=draft.cost,
                    is_completed=False,
                    is_paid=draft.is_paid,
                    is_cancelled=False,
                    notes=draft.notes,
                    lesson_type=draft.lesson_type.value,
                )
                for draft in report.accepted
            ]
            self.db.add_all(created)
            await self.db.flush()

            await self.student_service.recalculate_balances({l.student_id for l in created})
            log.info(f"Bulk creation finished: {len(created)} created, {len(conflicts)} skipped.")
            return lesson_models.BulkLessonResult(
                created=[lesson_models.LessonRead.model_validate(l) for l in created],
                conflicts=conflicts,
            )
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error in bulk lesson creation: {e}", exc_info=True)
            raise

    # --- Status Changes ---

    async def _apply_cancellation(
        self, lesson: db_models.Lessons, scheduled_start: datetime
    ) -> db_models.LessonCancellations:
        """Sets the cancelled flag and records the refund decision for `scheduled_start`."""
        now = self.clock()
        decision = decide_cancellation(scheduled_start, now, cost=lesson.cost)

        lesson.is_cancelled = True
        cancellation = db_models.LessonCancellations(
            lesson_id=lesson.id,
            cancelled_at=now,
            outcome=decision.outcome.value,
            amount=decision.amount,
            was_paid=lesson.is_paid,
            hours_notice=decision.hours_before_start,
        )
        self.db.add(cancellation)
        lesson.cancellation = cancellation
        await self.db.flush()

        log.info(
            f"Lesson {lesson.id} cancelled {decision.hours_before_start}h before start: "
            f"{decision.outcome.value} of {decision.amount}. {decision.description}"
        )
        return cancellation

    async def update_lesson(
        self, lesson_id: UUID, update_data: lesson_models.LessonUpdate
    ) -> db_models.Lessons:
        """
        Applies a partial update. Flag changes are validated against the
        lifecycle rules; cancellation goes through the notice policy.
        """
        log.info(f"Updating lesson {lesson_id}.")
        try:
            lesson = await self._get_lesson_internal(lesson_id, for_update=True)
            current = LessonSnapshot.from_record(lesson)
            fields = update_data.model_dump(exclude_unset=True)

            change = LessonChange(
                completed=fields.get("is_completed"),
                paid=fields.get("is_paid"),
                cancelled=fields.get("is_cancelled"),
            )
            result = validate_transition(current.state, change)
            if not result.accepted:
                log.warning(f"Rejected change on lesson {lesson_id} ({current.state.value}): {result.reason}")
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"kind": result.kind.value, "message": result.reason}
                )

            reschedule = "start_time" in fields or "end_time" in fields
            if fields.get("is_cancelled") and reschedule:
                log.warning(f"Rejected cancellation combined with a time change on lesson {lesson_id}.")
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={
                        "kind": RejectionKind.INVALID_TRANSITION.value,
                        "message": "A lesson cannot be cancelled and rescheduled in the same change."
                    }
                )

            currently_paid = current.state in (LessonState.PREPAID, LessonState.COMPLETED)
            if fields.get("is_paid") is False and currently_paid and await self._has_payment_links(lesson_id):
                log.warning(f"Rejected un-paying lesson {lesson_id}: it is linked to a payment.")
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={
                        "kind": RejectionKind.INCONSISTENT_PAYMENT.value,
                        "message": "The lesson is covered by a payment; delete the payment instead."
                    }
                )

            if reschedule:
                if current.state not in (LessonState.SCHEDULED, LessonState.PREPAID):
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail={
                            "kind": "invalid_transition",
                            "message": f"A {current.state.value} lesson cannot be rescheduled."
                        }
                    )
                start_time = as_utc(fields["start_time"]) if fields.get("start_time") else current.start_time
                end_time = current.end_time
                if "end_time" in fields:
                    end_time = as_utc(fields["end_time"]) if fields["end_time"] else None
                if end_time is not None and end_time <= start_time:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="end_time must be after start_time"
                    )
                await self._lock_schedule()
                await self._check_conflicts(
                    current.model_copy(update={"start_time": start_time, "end_time": end_time})
                )
                lesson.start_time = start_time
                lesson.end_time = end_time

            if "notes" in fields:
                lesson.notes = fields["notes"]

            if result.resulting_state == LessonState.CANCELLED and current.state != LessonState.CANCELLED:
                await self._apply_cancellation(lesson, current.start_time)
            elif result.resulting_state != current.state:
                lesson.is_completed, lesson.is_paid = flags_for_state(result.resulting_state)
                log.info(f"Lesson {lesson_id}: {current.state.value} -> {result.resulting_state.value}.")

            await self.db.flush()
            await self.student_service.recalculate_balance(lesson.student_id)
            return lesson
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error updating lesson {lesson_id}: {e}", exc_info=True)
            raise

    async def preview_cancellation(self, lesson_id: UUID) -> lesson_models.CancellationPreview:
        """What cancelling the lesson right now would do, without changing anything."""
        lesson = await self._get_lesson_internal(lesson_id)
        current = LessonSnapshot.from_record(lesson)
        result = validate_transition(current.state, LessonChange(cancelled=True))
        decision = decide_cancellation(current.start_time, self.clock(), cost=lesson.cost)

        return lesson_models.CancellationPreview(
            lesson_id=lesson.id,
            can_cancel=result.accepted and current.state != LessonState.CANCELLED,
            refundable=decision.refundable,
            outcome=decision.outcome,
            amount=decision.amount,
            hours_before_start=decision.hours_before_start,
            message=result.reason or decision.description,
        )

    async def cancel_lesson(self, lesson_id: UUID) -> lesson_models.LessonCancelResult:
        log.info(f"Cancelling lesson {lesson_id}.")
        try:
            lesson = await self._get_lesson_internal(lesson_id, for_update=True)
            current = LessonSnapshot.from_record(lesson)
            if current.state == LessonState.CANCELLED:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"kind": "invalid_transition", "message": "The lesson is already cancelled."}
                )
            result = validate_transition(current.state, LessonChange(cancelled=True))
            if not result.accepted:
                log.warning(f"Rejected cancellation of lesson {lesson_id}: {result.reason}")
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"kind": result.kind.value, "message": result.reason}
                )

            cancellation = await self._apply_cancellation(lesson, current.start_time)
            await self.student_service.recalculate_balance(lesson.student_id)
            return lesson_models.LessonCancelResult(
                lesson=lesson_models.LessonRead.model_validate(lesson),
                cancellation=lesson_models.CancellationRead.model_validate(cancellation),
            )
        except HTTPException as http_exc:
            raise http_exc
        except Exception as e:
            log.error(f"Error cancelling lesson {lesson_id}: {e}", exc_info=True)
            raise

    async def delete_lesson(self, lesson_id: UUID) -> None:
        """Deletes a lesson and its payment links. Linked payments themselves are kept."""
        lesson = await self._get_lesson_internal(lesson_id)
        student_id = lesson.student_id
        try:
            await self.db.execute(delete(db_models.t_payment_lessons).where(
                db_models.t_payment_lessons.c.lesson_id == lesson_id
            ))
            await self.db.execute(delete(db_models.LessonCancellations).where(
                db_models.LessonCancellations.lesson_id == lesson_id
            ))
            await self.db.execute(delete(db_models.Lessons).where(db_models.Lessons.id == lesson_id))
            await self.student_service.recalculate_balance(student_id)
            log.info(f"Deleted lesson {lesson_id}.")
        except Exception as e:
            log.error(f"Error deleting lesson {lesson_id}: {e}", exc_info=True)
            raise

    # --- Sweep ---

    async def auto_advance(self) -> list[StatusChange]:
        """
        Completes every lesson whose start time has passed: paid lessons become
        completed, unpaid ones become debt. Safe to run repeatedly.
        """
        now = self.clock()
        try:
            stmt = select(db_models.Lessons).filter(
                db_models.Lessons.start_time < now,
                db_models.Lessons.is_cancelled.is_(False),
                db_models.Lessons.is_completed.is_(False),
            ).with_for_update(skip_locked=True)
            result = await self.db.execute(stmt)
            lessons = {lesson.id: lesson for lesson in result.scalars().all()}

            changes = sweep(now, [LessonSnapshot.from_record(l) for l in lessons.values()])
            for change in changes:
                lesson = lessons[change.lesson_id]
                lesson.is_completed, lesson.is_paid = flags_for_state(change.new_state)

            if changes:
                await self.db.flush()
                await self.student_service.recalculate_balances({c.student_id for c in changes})
                log.info(f"Auto-advance at {now.isoformat()}: {len(changes)} lesson(s) updated.")
            return changes
        except Exception as e:
            log.error(f"Error during auto-advance sweep: {e}", exc_info=True)
            raise
