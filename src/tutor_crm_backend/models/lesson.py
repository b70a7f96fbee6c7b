'''
API models for lessons, lesson status changes, cancellations and bulk creation.
'''
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from ..database.db_enums import LessonState, LessonTypeEnum, CancellationOutcomeEnum
from ..core.lesson_state import derive_state

# --- 1. API Input Models (for POST/PATCH) ---

class LessonCreate(BaseModel):
    student_id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None
    cost: int = Field(ge=0)
    is_paid: bool = False
    notes: Optional[str] = None
    lesson_type: LessonTypeEnum = LessonTypeEnum.INDIVIDUAL

    @model_validator(mode='after')
    def validate_times(self) -> 'LessonCreate':
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time')
        return self

class LessonUpdate(BaseModel):
    """
    A partial update. Flag fields go through status validation;
    time edits are re-checked for conflicts. Cost is fixed at creation.
    """
    is_completed: Optional[bool] = None
    is_paid: Optional[bool] = None
    is_cancelled: Optional[bool] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = None

class BulkLessonCreate(BaseModel):
    """
    Recurring lessons: one lesson per student on every selected weekday
    (0 = Monday ... 6 = Sunday) between start_date and end_date.
    """
    student_ids: list[UUID] = Field(min_length=1)
    weekdays: list[int] = Field(min_length=1)
    time_of_day: time
    duration_minutes: int = Field(default=60, gt=0)
    start_date: date
    end_date: date
    cost: int = Field(gt=0)
    is_paid: bool = False
    notes: Optional[str] = None
    timezone: Optional[str] = None
    # Reject the whole batch when any generated lesson conflicts.
    abort_on_conflict: bool = False


# --- 2. API Output Models (for GET) ---

class LessonRead(BaseModel):
    id: UUID
    student_id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None
    cost: int
    is_completed: bool
    is_paid: bool
    is_cancelled: bool
    notes: Optional[str] = None
    lesson_type: LessonTypeEnum
    created_at: datetime

    @computed_field
    @property
    def state(self) -> LessonState:
        return derive_state(self.is_completed, self.is_paid, self.is_cancelled)

    model_config = ConfigDict(from_attributes=True)

class CancellationPreview(BaseModel):
    lesson_id: UUID
    can_cancel: bool
    refundable: bool
    outcome: CancellationOutcomeEnum
    amount: int
    hours_before_start: int
    message: str

class CancellationRead(BaseModel):
    lesson_id: UUID
    cancelled_at: datetime
    outcome: CancellationOutcomeEnum
    amount: int
    was_paid: bool
    hours_notice: int

    model_config = ConfigDict(from_attributes=True)

class LessonCancelResult(BaseModel):
    lesson: LessonRead
    cancellation: CancellationRead

class BulkConflictRead(BaseModel):
    student_id: UUID
    start_time: datetime
    end_time: datetime
    reason: str

class BulkLessonResult(BaseModel):
    created: list[LessonRead]
    conflicts: list[BulkConflictRead]

    @computed_field
    @property
    def created_count(self) -> int:
        return len(self.created)

class StatusChangeRead(BaseModel):
    lesson_id: UUID
    student_id: UUID
    previous_state: LessonState
    new_state: LessonState

    model_config = ConfigDict(from_attributes=True)

class AutoUpdateResult(BaseModel):
    updated: list[StatusChangeRead]

    @computed_field
    @property
    def updated_count(self) -> int:
        return len(self.updated)
