'''
Schedule conflict detection for single lessons and recurring batches.
'''
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Sequence
from uuid import UUID
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..database.db_enums import LessonState, LessonTypeEnum, RejectionKind
from ..common.clock import as_utc
from ..common.config import settings
from .lesson_state import LessonSnapshot


def intervals_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Half-open intervals [start1, end1) and [start2, end2) overlap."""
    return start1 < end2 and start2 < end1


def lessons_overlap(first: LessonSnapshot, second: LessonSnapshot) -> bool:
    return intervals_overlap(first.start_time, first.effective_end, second.start_time, second.effective_end)


class ConflictReport(BaseModel):
    has_conflict: bool
    conflicting_lessons: list[LessonSnapshot] = Field(default_factory=list)
    kind: Optional[RejectionKind] = None

    @property
    def message(self) -> Optional[str]:
        if not self.has_conflict:
            return None
        times = ", ".join(
            f"{l.start_time:%Y-%m-%d %H:%M}-{l.effective_end:%H:%M}" for l in self.conflicting_lessons
        )
        return f"The lesson overlaps with: {times}"


def find_conflicts(candidate: LessonSnapshot, existing: Iterable[LessonSnapshot]) -> ConflictReport:
    """
    Returns every non-cancelled lesson in `existing` that overlaps `candidate`.
    The candidate never conflicts with itself (same id), and a cancelled
    candidate conflicts with nothing.
    """
    if candidate.state == LessonState.CANCELLED:
        return ConflictReport(has_conflict=False)

    conflicts = [
        lesson for lesson in existing
        if lesson.state != LessonState.CANCELLED
        and not (candidate.id is not None and lesson.id == candidate.id)
        and lessons_overlap(candidate, lesson)
    ]
    if not conflicts:
        return ConflictReport(has_conflict=False)
    return ConflictReport(has_conflict=True, conflicting_lessons=conflicts, kind=RejectionKind.SCHEDULE_CONFLICT)


# --- Recurring batches ---

class RecurrencePattern(BaseModel):
    """
    "Every <weekdays> at <time_of_day> between <start_date> and <end_date>".
    Weekdays follow Python's convention: 0 = Monday ... 6 = Sunday.
    """
    weekdays: frozenset[int]
    time_of_day: time
    duration_minutes: int = Field(gt=0)
    start_date: date
    end_date: date
    timezone: str = Field(default_factory=lambda: settings.CENTER_TIMEZONE)

    model_config = ConfigDict(frozen=True)

    @field_validator('weekdays')
    @classmethod
    def validate_weekdays(cls, value: frozenset[int]) -> frozenset[int]:
        if not value:
            raise ValueError('At least one weekday must be selected.')
        if any(day < 0 or day > 6 for day in value):
            raise ValueError('Weekdays must be between 0 (Monday) and 6 (Sunday).')
        return value

    @model_validator(mode='after')
    def validate_range(self) -> 'RecurrencePattern':
        if self.end_date < self.start_date:
            raise ValueError('end_date cannot be before start_date')
        return self


class LessonDraft(BaseModel):
    """A lesson generated from a pattern that has not been persisted yet."""
    student_id: UUID
    start_time: datetime
    end_time: datetime
    cost: int
    is_paid: bool = False
    notes: Optional[str] = None
    lesson_type: LessonTypeEnum = LessonTypeEnum.INDIVIDUAL
    # Drafts of the same group occurrence share a key and never conflict with each other.
    group_key: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def as_snapshot(self) -> LessonSnapshot:
        return LessonSnapshot(
            student_id=self.student_id,
            start_time=self.start_time,
            end_time=self.end_time,
            cost=self.cost,
            state=LessonState.PREPAID if self.is_paid else LessonState.SCHEDULED,
        )


def expand_recurrence(
    pattern: RecurrencePattern,
    student_ids: Sequence[UUID],
    cost: int,
    is_paid: bool = False,
    notes: Optional[str] = None
) -> list[LessonDraft]:
    """
    Expands `pattern` into concrete drafts, one per student per occurrence,
    in chronological order. Times are interpreted in the pattern's timezone and
    returned in UTC.
    """
    tz = ZoneInfo(pattern.timezone)
    lesson_type = LessonTypeEnum.GROUP if len(student_ids) > 1 else LessonTypeEnum.INDIVIDUAL
    drafts = []

    current = pattern.start_date
    while current <= pattern.end_date:
        if current.weekday() in pattern.weekdays:
            start = as_utc(datetime.combine(current, pattern.time_of_day, tzinfo=tz))
            end = start + timedelta(minutes=pattern.duration_minutes)
            group_key = start.isoformat() if lesson_type == LessonTypeEnum.GROUP else None
            for student_id in student_ids:
                drafts.append(LessonDraft(
                    student_id=student_id,
                    start_time=start,
                    end_time=end,
                    cost=cost,
                    is_paid=is_paid,
                    notes=notes,
                    lesson_type=lesson_type,
                    group_key=group_key,
                ))
        current += timedelta(days=1)

    return drafts


class DraftConflict(BaseModel):
    draft: LessonDraft
    conflicting_lessons: list[LessonSnapshot] = Field(default_factory=list)
    conflicting_drafts: list[LessonDraft] = Field(default_factory=list)


class BatchConflictReport(BaseModel):
    accepted: list[LessonDraft] = Field(default_factory=list)
    conflicts: list[DraftConflict] = Field(default_factory=list)

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)


def _same_group(first: LessonDraft, second: LessonDraft) -> bool:
    return first.group_key is not None and first.group_key == second.group_key


def find_batch_conflicts(
    drafts: Sequence[LessonDraft],
    existing: Iterable[LessonSnapshot]
) -> BatchConflictReport:
    """
    Checks every draft against the existing lessons and against the other
    drafts of the batch, and splits the batch into accepted and conflicting drafts.
    """
    active = [lesson for lesson in existing if lesson.state != LessonState.CANCELLED]
    snapshots = [draft.as_snapshot() for draft in drafts]
    report = BatchConflictReport()

    for i, draft in enumerate(drafts):
        with_existing = find_conflicts(snapshots[i], active).conflicting_lessons
        with_siblings = [
            other for j, other in enumerate(drafts)
            if j != i and not _same_group(draft, other) and lessons_overlap(snapshots[i], snapshots[j])
        ]
        if with_existing or with_siblings:
            report.conflicts.append(DraftConflict(
                draft=draft,
                conflicting_lessons=with_existing,
                conflicting_drafts=with_siblings,
            ))
        else:
            report.accepted.append(draft)

    return report
