'''
API models for payments.
'''
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from ..database.db_enums import PaymentTypeEnum
from .lesson import LessonRead

# --- 1. API Input Models (for POST) ---

class PaymentCreate(BaseModel):
    student_id: UUID
    amount: int = Field(gt=0)
    payment_date: datetime
    description: Optional[str] = None
    lesson_ids: list[UUID] = Field(default_factory=list)

class PrepaymentCreate(BaseModel):
    """Pays every unpaid, non-cancelled lesson of the student in [period_start, period_end]."""
    student_id: UUID
    period_start: datetime
    period_end: datetime
    payment_date: Optional[datetime] = None
    description: Optional[str] = None

    @model_validator(mode='after')
    def validate_period(self) -> 'PrepaymentCreate':
        if self.period_end <= self.period_start:
            raise ValueError('period_end must be after period_start')
        return self


# --- 2. API Output Models (for GET) ---

class PaymentRead(BaseModel):
    id: UUID
    student_id: UUID
    amount: int
    payment_date: datetime
    description: Optional[str] = None
    payment_type: PaymentTypeEnum
    created_at: datetime
    lessons: list[LessonRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

class UnpaidLessonsRead(BaseModel):
    student_id: UUID
    lessons: list[LessonRead]

    @computed_field
    @property
    def total_debt(self) -> int:
        return sum(lesson.cost for lesson in self.lessons)
